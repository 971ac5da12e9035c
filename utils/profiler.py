"""
A simple context manager for tick profiling.

This utility measures the execution time of one simulation tick, which is
useful for verifying that the real-time loop keeps up with its frame budget.
"""
import time
import logging

profiler_log = logging.getLogger('profiler')


class CodeProfiler:
    """
    A context manager to time the execution of a code block.

    Example:
        with CodeProfiler("Control Tick", budget_ms=16.7):
            sim.tick(dt)

    Attributes:
        name (str): The name of the code block being timed.
        budget_ms (float): Latency above which a warning is logged.
        elapsed_ms (float): Duration of the last timed block.
    """
    def __init__(self, name="", budget_ms=10.0, clock=time.perf_counter):
        self.name = name
        self.budget_ms = budget_ms
        self.elapsed_ms = 0.0
        self._clock = clock

    def __enter__(self):
        self.start_time = self._clock()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (self._clock() - self.start_time) * 1000
        profiler_log.debug("'%s' execution time: %.3f ms", self.name, self.elapsed_ms)
        if self.elapsed_ms > self.budget_ms:
            profiler_log.warning(
                "'%s' exceeded %.1f ms tick budget (%.3f ms).", self.name, self.budget_ms, self.elapsed_ms
            )
