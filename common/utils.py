from __future__ import annotations

import math
import time


def round_half_up(v: float) -> int:
    """Round to nearest integer, ties away from zero (inputs are non-negative)."""
    return int(math.floor(v + 0.5))


def scale_by_pct(n: int, pct: float) -> int:
    """round(n * pct / 100) with half-up rounding."""
    return round_half_up(float(n) * float(pct) / 100.0)


def timer_ms(func):
    """
    Decorator that returns (result, elapsed_ms) for timing small functions.
    """
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        out = func(*args, **kwargs)
        dt_ms = (time.perf_counter() - t0) * 1e3
        return out, dt_ms
    return wrapper
