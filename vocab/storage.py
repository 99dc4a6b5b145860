"""
Storage operations the scheduling core depends on.

Wordbooks and cards are required entities: touching a missing one raises the
model's DoesNotExist. Stats and SRS rows are optional extensions of a card,
keyed by card id and created lazily; their absence is the normal "never
reviewed" state and is resolved here, in one place, into default values.
"""

import logging
from dataclasses import dataclass

from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.utils import timezone

from . import srs
from .srs import SRSState
from .models import Wordbook, Card, CardStats, CardSRS, UserSettings, DailyReviewRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only copy of a card's counters; all zero for a card never reviewed."""
    shown_count: int = 0
    right_count: int = 0
    wrong_count: int = 0
    last_reviewed_at: object = None

    @classmethod
    def of(cls, stats):
        if stats is None:
            return cls()
        return cls(
            shown_count=stats.shown_count,
            right_count=stats.right_count,
            wrong_count=stats.wrong_count,
            last_reviewed_at=stats.last_reviewed_at,
        )

    @property
    def error_rate(self):
        return srs.calculate_error_rate(self.wrong_count, self.shown_count)


@dataclass(frozen=True)
class CardRecord:
    """A card together with everything the queue builder and analytics read."""
    card: Card
    stats: StatsSnapshot
    srs: object  # srs.SRSState, or None when the card was never scheduled
    level: str


@dataclass(frozen=True)
class ReviewOutcome:
    card_id: str
    correct: bool
    quality: int
    srs: SRSState
    stats: StatsSnapshot


def _related_or_none(card, name):
    try:
        return getattr(card, name)
    except ObjectDoesNotExist:
        return None


def _now(now=None):
    return srs.truncate_ms(now if now is not None else timezone.now())


# =============================================================================
# Wordbooks and cards
# =============================================================================

def get_all_wordbooks():
    return list(Wordbook.objects.all())


def get_wordbook(wordbook_id):
    return Wordbook.objects.get(pk=wordbook_id)


def create_wordbook(name, description='', level=''):
    wordbook = Wordbook.objects.create(name=name, description=description, level=level)
    logger.info(f"Created wordbook {wordbook.pk} ({name!r})")
    return wordbook


def update_wordbook(wordbook_id, **fields):
    """Apply field updates; raises Wordbook.DoesNotExist for an unknown id."""
    wordbook = Wordbook.objects.get(pk=wordbook_id)
    for name, value in fields.items():
        setattr(wordbook, name, value)
    wordbook.updated_at = timezone.now()
    wordbook.save()
    return wordbook


def delete_wordbook(wordbook_id):
    """Delete a wordbook and, by cascade, its cards with their stats and SRS."""
    Wordbook.objects.get(pk=wordbook_id).delete()
    logger.info(f"Deleted wordbook {wordbook_id}")


def get_cards_by_wordbook(wordbook_id):
    return list(Card.objects.filter(wordbook_id=wordbook_id))


def get_card(card_id):
    return Card.objects.get(pk=card_id)


def create_card(wordbook_id, headword, **fields):
    """Create a card in an existing wordbook; raises Wordbook.DoesNotExist otherwise."""
    wordbook = Wordbook.objects.get(pk=wordbook_id)
    return Card.objects.create(wordbook=wordbook, headword=headword, **fields)


def update_card(card_id, **fields):
    """Apply field updates; raises Card.DoesNotExist for an unknown id."""
    card = Card.objects.get(pk=card_id)
    for name, value in fields.items():
        setattr(card, name, value)
    card.updated_at = timezone.now()
    card.save()
    return card


def delete_card(card_id):
    Card.objects.get(pk=card_id).delete()


# =============================================================================
# Stats and SRS
# =============================================================================

def get_card_stats(card_id):
    return CardStats.objects.filter(card_id=card_id).first()


def upsert_card_stats(card_id, **fields):
    """Merge fields into the card's stats, creating zeroed stats first if absent."""
    stats = get_card_stats(card_id)
    if stats is None:
        return CardStats.objects.create(card_id=card_id, **fields)
    for name, value in fields.items():
        setattr(stats, name, value)
    stats.save()
    return stats


def get_card_srs(card_id):
    return CardSRS.objects.filter(card_id=card_id).first()


def upsert_card_srs(card_id, **fields):
    """Merge fields into the card's schedule, creating the default schedule first if absent."""
    record = get_card_srs(card_id)
    if record is None:
        values = srs.SRSState.initial().as_fields()
        values.update(fields)
        return CardSRS.objects.create(card_id=card_id, **values)
    for name, value in fields.items():
        setattr(record, name, value)
    record.save()
    return record


def get_due_cards(now=None):
    """SRS records whose due time has been reached, soonest first."""
    if now is None:
        now = timezone.now()
    return list(CardSRS.objects.filter(due_at__lte=now).order_by('due_at', 'card_id'))


def stats_or_default(card_id):
    return StatsSnapshot.of(get_card_stats(card_id))


def srs_state_or_default(card_id, now=None):
    record = get_card_srs(card_id)
    if record is None:
        return srs.SRSState.initial(_now(now))
    return record.state()


def load_population(selected_wordbook_ids=None, wordbook_id=None):
    """
    Resolve every candidate card with its stats, schedule and wordbook level.

    Cards come back in store order: wordbooks by creation, then cards by
    creation within each wordbook. ``selected_wordbook_ids`` narrows the
    population to those wordbooks; ``wordbook_id`` to a single one.
    """
    cards = Card.objects.select_related('wordbook', 'stats', 'srs').order_by(
        'wordbook__created_at', 'wordbook__id', 'created_at', 'id'
    )
    if wordbook_id is not None:
        cards = cards.filter(wordbook_id=wordbook_id)
    if selected_wordbook_ids is not None:
        cards = cards.filter(wordbook_id__in=list(selected_wordbook_ids))

    records = []
    for card in cards:
        schedule = _related_or_none(card, 'srs')
        records.append(CardRecord(
            card=card,
            stats=StatsSnapshot.of(_related_or_none(card, 'stats')),
            srs=schedule.state() if schedule is not None else None,
            level=card.wordbook.level,
        ))
    return records


# =============================================================================
# Settings
# =============================================================================

def get_user_settings():
    """Get or create the settings singleton."""
    settings, _ = UserSettings.objects.get_or_create(pk=UserSettings.SINGLETON_ID)
    return settings


def update_user_settings(**fields):
    settings = get_user_settings()
    for name, value in fields.items():
        setattr(settings, name, value)
    settings.save()
    return settings


# =============================================================================
# Review events
# =============================================================================

def record_answer(card_id, correct, now=None):
    """
    Apply one answer to a card: reschedule it and update its counters.

    The read of the current schedule and the writes of the new schedule,
    stats and daily tally happen in a single transaction. Raises
    Card.DoesNotExist for an unknown card.
    """
    now = _now(now)
    with transaction.atomic():
        card = Card.objects.get(pk=card_id)
        quality = srs.answer_to_quality(correct)
        new_state = srs.calculate_next_review(srs_state_or_default(card.pk, now), quality, now)
        upsert_card_srs(card.pk, **new_state.as_fields())

        current = stats_or_default(card.pk)
        stats = upsert_card_stats(
            card.pk,
            shown_count=current.shown_count + 1,
            right_count=current.right_count + (1 if correct else 0),
            wrong_count=current.wrong_count + (0 if correct else 1),
            last_reviewed_at=now,
        )
        _record_daily_review(card.pk, correct, now)

    logger.info(
        f"Reviewed card {card.pk} ({card.headword!r}): correct={correct}, "
        f"interval={new_state.interval_days}d, ease={new_state.ease:.2f}"
    )
    return ReviewOutcome(
        card_id=card.pk,
        correct=correct,
        quality=quality,
        srs=new_state,
        stats=StatsSnapshot.of(stats),
    )


def _record_daily_review(card_id, correct, now):
    day = timezone.localdate(now)
    record, created = DailyReviewRecord.objects.get_or_create(
        date=day,
        defaults={'created_at': now, 'updated_at': now},
    )
    record.review_count += 1
    if correct:
        record.correct_count += 1
    else:
        record.wrong_count += 1
    if card_id not in record.card_ids:
        record.card_ids = record.card_ids + [card_id]
    record.updated_at = now
    record.save()
    return record


def get_daily_review_record(day=None):
    if day is None:
        day = timezone.localdate()
    return DailyReviewRecord.objects.filter(date=day).first()


def reset_wordbook_progress(wordbook_id):
    """
    Wipe review history for every card in a wordbook.

    This is the explicit data wipe: the only path that lowers counters.
    Returns the number of cards affected.
    """
    wordbook = Wordbook.objects.get(pk=wordbook_id)
    card_ids = list(wordbook.cards.values_list('id', flat=True))
    with transaction.atomic():
        CardStats.objects.filter(card_id__in=card_ids).delete()
        CardSRS.objects.filter(card_id__in=card_ids).delete()
    logger.info(f"Reset progress for {len(card_ids)} cards in wordbook {wordbook_id}")
    return len(card_ids)
