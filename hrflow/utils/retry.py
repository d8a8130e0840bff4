from __future__ import annotations

import random
from typing import Optional


def compute_backoff(
    attempt: int,
    base_delay: float,
    multiplier: float = 1.0,
    jitter: float = 0.0,
    cap: Optional[float] = None,
) -> float:
    """Delay before retry number ``attempt`` (1-based).

    With the default multiplier of 1.0 every retry waits ``base_delay``.
    """
    delay = base_delay * multiplier ** max(0, attempt - 1)
    if jitter:
        delay += random.uniform(0, jitter)
    if cap is not None:
        delay = min(delay, cap)
    return delay
