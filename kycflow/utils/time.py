import time


def now_ms() -> int:
    return int(time.time() * 1000)


def elapsed_ratio(started_ms: int, duration_ms: int, now: int) -> float:
    """
    Fraction of a fixed window that has elapsed, clamped to [0, 1].
    A non-positive window counts as fully elapsed.
    """
    if duration_ms <= 0:
        return 1.0
    return min(max((now - started_ms) / float(duration_ms), 0.0), 1.0)
