"""
Timing Helpers.

Small wall-clock measurement helpers used by the cache and the text
transform pipeline to attach per-stage durations to log lines.

Example:
    with timeit("transform") as t:
        result = pipeline.transform(text)
    print(f"took {t.seconds:.4f}s")
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter


@dataclass
class Timing:
    """
    A finished measurement.

    Attributes:
        name: What was measured (e.g. "transform", "fetch").
        seconds: Elapsed wall-clock seconds.
    """
    name: str
    seconds: float


class timeit:
    """
    Context manager measuring the enclosed block with perf_counter().

    The result is available as ``timing`` once the block exits;
    ``seconds`` is a shortcut that returns -1.0 while still running.
    """

    def __init__(self, name: str):
        self.name = name
        self._t0 = 0.0
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0)

    @property
    def seconds(self) -> float:
        return self.timing.seconds if self.timing else -1.0
