"""
Spaced repetition scheduling for vocabulary cards.

This module implements the SM-2 variant used by the review screen. Each answer
is reduced to a binary correct/incorrect signal, mapped to an SM-2 quality
score, and fed through the update step to produce a complete replacement
schedule for the card.

Everything here is pure: no database access, no clock reads unless the caller
omits ``now``.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone


# Quality scores produced by the binary answer buttons
QUALITY_CORRECT = 5
QUALITY_INCORRECT = 2
PASSING_QUALITY = 3        # Anything below resets the card
MIN_QUALITY = 0
MAX_QUALITY = 5

# Algorithm constants
MIN_EASE = 1.3
DEFAULT_EASE = 2.5
DEFAULT_INTERVAL_DAYS = 1
FAILURE_EASE_PENALTY = 0.2
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6


@dataclass(frozen=True)
class SRSState:
    """Scheduling state of one card. Always replaced as a whole, never patched."""
    ease: float
    interval_days: int
    repetitions: int
    due_at: datetime

    @classmethod
    def initial(cls, now=None):
        """State of a card that has never been scheduled: due immediately."""
        return cls(
            ease=DEFAULT_EASE,
            interval_days=DEFAULT_INTERVAL_DAYS,
            repetitions=0,
            due_at=now_ms() if now is None else truncate_ms(now),
        )

    def as_fields(self):
        return {
            'ease': self.ease,
            'interval_days': self.interval_days,
            'repetitions': self.repetitions,
            'due_at': self.due_at,
        }


def truncate_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision so the value survives a to_iso round trip."""
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def now_ms() -> datetime:
    return truncate_ms(datetime.now(timezone.utc))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def answer_to_quality(correct: bool) -> int:
    """Map the review screen's correct/incorrect buttons onto SM-2 quality."""
    return QUALITY_CORRECT if correct else QUALITY_INCORRECT


def next_ease(ease: float, quality: int) -> float:
    """
    Ease factor after a passing answer.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at MIN_EASE.
    With q fixed at 5 this is EF + 0.1, so ease has no upper bound.
    """
    miss = 5 - quality
    return max(MIN_EASE, ease + (0.1 - miss * (0.08 + miss * 0.02)))


def calculate_next_review(state: SRSState, quality: int, now=None) -> SRSState:
    """
    Compute the schedule that follows one answer.

    Args:
        state: Current scheduling state (ease >= 1.3, interval >= 1, reps >= 0)
        quality: SM-2 recall score, 0 (blackout) to 5 (perfect); values
            outside that range are clamped into it
        now: Review time, defaults to the current UTC time

    Returns:
        A complete SRSState to persist in place of the old one.
    """
    quality = min(MAX_QUALITY, max(MIN_QUALITY, quality))

    now = now_ms() if now is None else truncate_ms(now)

    if quality < PASSING_QUALITY:
        return SRSState(
            ease=max(MIN_EASE, state.ease - FAILURE_EASE_PENALTY),
            interval_days=FIRST_INTERVAL,
            repetitions=0,
            due_at=now + timedelta(days=FIRST_INTERVAL),
        )

    ease = next_ease(state.ease, quality)
    if state.repetitions == 0:
        interval = FIRST_INTERVAL
    elif state.repetitions == 1:
        interval = SECOND_INTERVAL
    else:
        interval = round_half_up(state.interval_days * ease)

    return SRSState(
        ease=ease,
        interval_days=interval,
        repetitions=state.repetitions + 1,
        due_at=now + timedelta(days=interval),
    )


def is_due(due_at: datetime, now=None) -> bool:
    """A card is due when its due time has been reached; the boundary counts."""
    if now is None:
        now = datetime.now(timezone.utc)
    return due_at <= now


def calculate_error_rate(wrong_count: int, shown_count: int) -> float:
    """Error rate as an unrounded percentage; 0 for a card never shown."""
    if shown_count == 0:
        return 0
    return (wrong_count / shown_count) * 100


def to_iso(value):
    """
    Serialize a timestamp the way exported documents store it.

    UTC, millisecond precision, ``Z`` suffix: 2025-01-02T03:04:05.678Z
    """
    if value is None:
        return None
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S') + f'.{value.microsecond // 1000:03d}Z'


def parse_iso(text):
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if text is None or text == '':
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
