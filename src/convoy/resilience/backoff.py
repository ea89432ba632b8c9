"""Exponential backoff delays for reconnect attempts."""

from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from convoy.config.models import ReconnectConfig

JITTER_RATIO = 0.3


def compute_delay(
    attempt_count: int,
    config: ReconnectConfig,
    rng: random.Random | None = None,
) -> int:
    """Delay in milliseconds before the next attempt.

    ``attempt_count`` is the number of attempts already made, so the first
    reconnect waits exactly ``base_delay_ms``. With jitter enabled the capped
    delay is moved by a uniform offset of up to +/-30%.
    """
    delay = min(float(config.max_delay_ms), config.base_delay_ms * config.factor**attempt_count)
    if config.jitter:
        spread = delay * JITTER_RATIO
        delay += (rng or random).uniform(-spread, spread)
    return max(0, math.floor(delay))


def delay_schedule(config: ReconnectConfig, attempts: int) -> list[int]:
    """Un-jittered delays for the first ``attempts`` reconnects."""
    plain = config.model_copy(update={"jitter": False})
    return [compute_delay(n, plain) for n in range(attempts)]
