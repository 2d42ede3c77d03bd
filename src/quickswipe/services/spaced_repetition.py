"""SM-2 interval update rule.

quality: 0-5 (0-2 = lapse, 3-5 = successful recall).
In this product a "known" swipe is quality 4 and an "unknown" swipe is
quality 1.
"""
import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Optional

from quickswipe.config import KNOWN_QUALITY, MIN_EASE_FACTOR, UNKNOWN_QUALITY
from quickswipe.models.session_models import Decision

PASSING_QUALITY = 3


@dataclass
class SM2Input:
    """Current scheduling state of a record."""
    ease_factor: float
    interval: int
    repetitions: int


@dataclass
class SM2Output:
    """Next scheduling state of a record."""
    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime


def is_lapse(quality: int) -> bool:
    """Check whether a quality grade counts as a failed recall."""
    return quality < PASSING_QUALITY


def quality_for_decision(decision: Decision) -> int:
    """Map a known/unknown decision to its quality grade."""
    return KNOWN_QUALITY if decision == Decision.KNOWN else UNKNOWN_QUALITY


def calculate_sm2(state: SM2Input, quality: int, now: Optional[datetime] = None) -> SM2Output:
    """Calculate the next schedule based on recall quality.

    Args:
        state: Current ease factor, interval and repetitions.
        quality: Quality of recall (0-5). Callers keep it in range.
        now: Reference time; defaults to the current UTC time.

    Returns:
        SM2Output with the updated scheduling parameters. A lapse resets
        repetitions and interval but leaves the ease factor untouched.
    """
    if now is None:
        now = datetime.now(UTC)

    ease_factor = state.ease_factor

    if is_lapse(quality):
        repetitions = 0
        interval = 1
    else:
        repetitions = state.repetitions + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = 6
        else:
            # Halves round up, never to even
            interval = math.floor(state.interval * state.ease_factor + 0.5)

        ease_factor = state.ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
        ease_factor = max(MIN_EASE_FACTOR, ease_factor)

    return SM2Output(
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
        next_review_date=now + timedelta(days=interval),
    )
