"""Helpers shared by backoff strategies."""

from __future__ import annotations

import random


def jitter_up(duration: float, jitter: float) -> float:
    """Add random jitter to ``duration``, within the fraction ``jitter`` either way.

    For example 10 seconds with jitter 0.1 yields a value within [9, 11].
    """
    multiplier = jitter * (random.random() * 2 - 1)
    return duration * (1 + multiplier)


def exponent_base2(a: int) -> int:
    """Compute 2**(a-1) for a >= 1; the result for 0 is 0."""
    return (1 << a) >> 1