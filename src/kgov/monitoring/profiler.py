"""Lightweight profiling helpers."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator


@dataclass
class Timing:
    start: float
    duration: float = 0.0


@contextmanager
def timed() -> Iterator[Timing]:
    timing = Timing(start=time.perf_counter())
    try:
        yield timing
    finally:
        timing.duration = time.perf_counter() - timing.start
