"""
Retry delay helpers shared by the broker reconnect loop and command dispatch.

Exponential backoff: base, 2*base, 4*base... capped at ``cap``.
"""

from __future__ import annotations


def next_delay(attempt: int, base: float, cap: float) -> float:
    """
    Return the delay in seconds before retry number ``attempt``.

    Args:
        attempt: 1-based count of consecutive failures so far
        base: Delay after the first failure
        cap: Upper bound for any single delay

    Returns:
        ``min(cap, base * 2 ** (attempt - 1))``, or 0.0 when attempt < 1
    """
    if attempt < 1 or base <= 0:
        return 0.0
    # Clamp the exponent so huge attempt counts do not overflow a float
    exponent = min(attempt - 1, 62)
    return float(min(cap, base * (2**exponent)))
