from typing import Optional, Tuple

from reviewbox.schedule import PatternLike, pattern_steps


def step_intervals(pattern: PatternLike) -> Tuple[int, ...]:
    """Interval sequence of a pattern, ordered by step number"""
    return tuple(step.interval_days for step in pattern_steps(pattern))


def compatible(a: Optional[PatternLike], b: Optional[PatternLike]) -> bool:
    """
    Two patterns are compatible when their intervals match step for step.

    Pattern id and name play no part; a missing pattern is only compatible
    with another missing pattern.
    """
    if a is None or b is None:
        return a is None and b is None
    return step_intervals(a) == step_intervals(b)
