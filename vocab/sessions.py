"""
Review queue building.

A queue is the ordered list of card ids presented in one review session.
Building one is a read-only query: the whole candidate population is loaded
first (cards, stats, schedules), then filtered and ordered according to the
session mode. An empty queue is a normal result meaning "nothing to review".
"""

import logging
import random
from dataclasses import dataclass

from . import srs, storage
from .models import Wordbook

logger = logging.getLogger(__name__)


MODE_DUE = 'due'
MODE_NEW = 'new'
MODE_FREQUENT_ERRORS = 'frequent-errors'
MODE_MIXED = 'mixed'
MODE_STARRED = 'starred'
MODE_ORDERED = 'ordered'      # one wordbook
MODE_RANDOM = 'random'        # one wordbook

GLOBAL_MODES = (MODE_DUE, MODE_NEW, MODE_FREQUENT_ERRORS, MODE_MIXED, MODE_STARRED)
WORDBOOK_MODES = (MODE_ORDERED, MODE_RANDOM)
MODES = GLOBAL_MODES + WORDBOOK_MODES

ORDER_CREATED = 'created'
ORDER_ALPHABETICAL = 'alphabetical'
ORDERS = (ORDER_CREATED, ORDER_ALPHABETICAL)

FILTER_TOP_N = 'top-n'
FILTER_MIN_ERRORS = 'min-errors'
FILTER_MIN_ERROR_RATE = 'min-error-rate'

# Accepted parameter range per frequent-errors filter
ERROR_FILTER_RANGES = {
    FILTER_TOP_N: (1, 100),
    FILTER_MIN_ERRORS: (1, 50),
    FILTER_MIN_ERROR_RATE: (1, 100),
}
DEFAULT_TOP_N = 20


@dataclass(frozen=True)
class ErrorFilter:
    """The single filter applied to a frequent-errors session."""
    mode: str = FILTER_TOP_N
    value: int = DEFAULT_TOP_N

    def __post_init__(self):
        if self.mode not in ERROR_FILTER_RANGES:
            raise ValueError(f"Unknown error filter {self.mode!r}")
        low, high = ERROR_FILTER_RANGES[self.mode]
        if not low <= self.value <= high:
            raise ValueError(f"{self.mode} must be between {low} and {high}, got {self.value}")

    @classmethod
    def from_settings(cls, settings, mode=None):
        """
        The filter saved in settings.

        With ``mode``, that filter with its saved parameter instead of the
        settings' current choice.
        """
        values = {
            FILTER_TOP_N: settings.error_top_n,
            FILTER_MIN_ERRORS: settings.error_min_errors,
            FILTER_MIN_ERROR_RATE: settings.error_min_error_rate,
        }
        mode = mode or settings.error_filter_mode
        return cls(mode, values[mode])

    def apply(self, ranked):
        """Filter records already sorted by descending error rate."""
        if self.mode == FILTER_TOP_N:
            return ranked[:self.value]
        if self.mode == FILTER_MIN_ERRORS:
            return [r for r in ranked if r.stats.wrong_count >= self.value]
        return [r for r in ranked if r.stats.error_rate >= self.value]


def rank_by_error_rate(records):
    """
    Reviewed cards with at least one wrong answer, highest error rate first.

    sorted() is stable, so equal rates keep store order.
    """
    candidates = [r for r in records if r.stats.shown_count > 0 and r.stats.error_rate > 0]
    return sorted(candidates, key=lambda r: -r.stats.error_rate)


def _shuffled(records, rng):
    records = list(records)
    rng.shuffle(records)
    return records


def _select(mode, records, error_filter, rng, now):
    if mode == MODE_DUE:
        return [r for r in records if r.srs is not None and srs.is_due(r.srs.due_at, now)]
    if mode == MODE_NEW:
        return [r for r in records if r.stats.shown_count == 0]
    if mode == MODE_FREQUENT_ERRORS:
        return (error_filter or ErrorFilter()).apply(rank_by_error_rate(records))
    if mode == MODE_STARRED:
        return [r for r in records if r.card.star]
    return _shuffled(records, rng)


def _order_wordbook(records, order):
    if order == ORDER_CREATED:
        return sorted(records, key=lambda r: (r.card.created_at, r.card.pk))
    if order == ORDER_ALPHABETICAL:
        return sorted(records, key=lambda r: (r.card.headword.casefold(), r.card.created_at))
    raise ValueError(f"Unknown order {order!r}")


def select_records(
    mode,
    *,
    wordbook_id=None,
    order=ORDER_CREATED,
    error_filter=None,
    selected_wordbook_ids=None,
    rng=None,
    now=None,
):
    """
    Select and order the card records for one review session.

    Args:
        mode: One of MODES
        wordbook_id: Required for the per-wordbook modes (ordered, random)
        order: 'created' or 'alphabetical', for ordered mode
        error_filter: ErrorFilter for frequent-errors (defaults to top 20)
        selected_wordbook_ids: Restrict the global modes to these wordbooks
        rng: random.Random used for shuffling; a fresh one per call if omitted
        now: Reference time for due checks

    Raises:
        ValueError: unknown mode or order, or a wordbook mode without wordbook_id
        Wordbook.DoesNotExist: wordbook_id does not exist
    """
    if mode not in MODES:
        raise ValueError(f"Unknown review mode {mode!r}")
    if rng is None:
        rng = random.Random()

    if mode in WORDBOOK_MODES:
        if wordbook_id is None:
            raise ValueError(f"Mode {mode!r} needs a wordbook")
        Wordbook.objects.get(pk=wordbook_id)
        records = storage.load_population(wordbook_id=wordbook_id)
        if mode == MODE_ORDERED:
            selected = _order_wordbook(records, order)
        else:
            selected = _shuffled(records, rng)
    else:
        records = storage.load_population(selected_wordbook_ids=selected_wordbook_ids)
        selected = _select(mode, records, error_filter, rng, now)

    logger.info(f"Built {mode} queue: {len(selected)} of {len(records)} cards")
    return selected


def build_queue(mode, **options):
    """The ordered list of card ids for one review session; see select_records()."""
    return [r.card.pk for r in select_records(mode, **options)]


def session_summary(queue, today=None):
    """Queue size alongside today's progress toward the daily goal."""
    settings = storage.get_user_settings()
    record = storage.get_daily_review_record(today)
    reviewed_today = record.review_count if record else 0
    return {
        'queue_size': len(queue),
        'reviewed_today': reviewed_today,
        'daily_goal': settings.daily_goal,
        'remaining_to_goal': max(0, settings.daily_goal - reviewed_today),
    }
