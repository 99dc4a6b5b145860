"""
Full-store backup documents.

An export is a plain dict ready for json.dumps; an import replaces every
wordbook, card, stats, schedule and daily tally with the document's contents
in one transaction, then merges the settings. Timestamps travel in the
millisecond ``...Z`` form produced by srs.to_iso, which is what makes an
export -> import -> export cycle reproduce the same document.
"""

import logging
from datetime import date

from django.db import IntegrityError, transaction
from django.utils import timezone

from . import srs
from .models import Wordbook, Card, CardStats, CardSRS, DailyReviewRecord
from .storage import get_user_settings

logger = logging.getLogger(__name__)

EXPORT_VERSION = 3

SETTINGS_FIELDS = (
    'daily_goal',
    'theme',
    'tts_enabled',
    'tts_voice',
    'tts_auto_play',
    'display_direction',
    'review_mode',
    'error_filter_mode',
    'error_top_n',
    'error_min_errors',
    'error_min_error_rate',
    'gemini_api_key',
)

# Keys used by older backups for the same settings
SETTINGS_ALIASES = {
    'errorCardsFilterMode': 'error_filter_mode',
    'errorCardsTopN': 'error_top_n',
    'errorCardsMinErrors': 'error_min_errors',
    'errorCardsMinErrorRate': 'error_min_error_rate',
}


class ImportFormatError(ValueError):
    """The backup document is malformed; nothing was changed."""


# =============================================================================
# Export
# =============================================================================

def wordbook_to_dict(wordbook):
    return {
        'id': wordbook.pk,
        'name': wordbook.name,
        'description': wordbook.description,
        'level': wordbook.level,
        'created_at': srs.to_iso(wordbook.created_at),
        'updated_at': srs.to_iso(wordbook.updated_at),
    }


def card_to_dict(card):
    return {
        'id': card.pk,
        'wordbook_id': card.wordbook_id,
        'headword': card.headword,
        'phonetic': card.phonetic,
        'meanings': card.meanings,
        'notes': card.notes,
        'star': card.star,
        'tags': card.tags,
        'created_at': srs.to_iso(card.created_at),
        'updated_at': srs.to_iso(card.updated_at),
    }


def stats_to_dict(stats):
    return {
        'id': stats.pk,
        'card_id': stats.card_id,
        'shown_count': stats.shown_count,
        'right_count': stats.right_count,
        'wrong_count': stats.wrong_count,
        'last_reviewed_at': srs.to_iso(stats.last_reviewed_at),
    }


def srs_to_dict(record):
    return {
        'id': record.pk,
        'card_id': record.card_id,
        'ease': record.ease,
        'interval_days': record.interval_days,
        'repetitions': record.repetitions,
        'due_at': srs.to_iso(record.due_at),
    }


def daily_record_to_dict(record):
    return {
        'id': record.pk,
        'date': record.date.isoformat(),
        'review_count': record.review_count,
        'correct_count': record.correct_count,
        'wrong_count': record.wrong_count,
        'card_ids': record.card_ids,
        'created_at': srs.to_iso(record.created_at),
        'updated_at': srs.to_iso(record.updated_at),
    }


def settings_to_dict(settings):
    data = {'id': settings.pk}
    data.update({name: getattr(settings, name) for name in SETTINGS_FIELDS})
    return data


def export_all_data():
    """Snapshot of the whole store as a JSON-serializable dict."""
    document = {
        'version': EXPORT_VERSION,
        'wordbooks': [wordbook_to_dict(w) for w in Wordbook.objects.order_by('created_at', 'id')],
        'cards': [card_to_dict(c) for c in Card.objects.order_by('created_at', 'id')],
        'card_stats': [stats_to_dict(s) for s in CardStats.objects.order_by('card_id')],
        'card_srs': [srs_to_dict(s) for s in CardSRS.objects.order_by('card_id')],
        'daily_review_records': [
            daily_record_to_dict(r) for r in DailyReviewRecord.objects.order_by('date')
        ],
        'settings': settings_to_dict(get_user_settings()),
        'exported_at': srs.to_iso(timezone.now()),
    }
    logger.info(
        f"Exported {len(document['wordbooks'])} wordbooks and {len(document['cards'])} cards"
    )
    return document


# =============================================================================
# Import
# =============================================================================

def _items(document, key):
    items = document.get(key) or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ImportFormatError(f'"{key}" must be a list of objects')
    return items


def _timestamp(value, required=True):
    if value is None and not required:
        return None
    parsed = srs.parse_iso(value)
    if parsed is None:
        raise ValueError('missing timestamp')
    return parsed


def _build_wordbook(item):
    return Wordbook(
        id=item['id'],
        name=item['name'],
        description=item.get('description') or '',
        level=item.get('level') or '',
        created_at=_timestamp(item['created_at']),
        updated_at=_timestamp(item.get('updated_at', item['created_at'])),
    )


def _build_card(item):
    return Card(
        id=item['id'],
        wordbook_id=item['wordbook_id'],
        headword=item['headword'],
        phonetic=item.get('phonetic') or '',
        meanings=list(item.get('meanings') or []),
        notes=item.get('notes') or '',
        star=bool(item.get('star', False)),
        tags=list(item.get('tags') or []),
        created_at=_timestamp(item['created_at']),
        updated_at=_timestamp(item.get('updated_at', item['created_at'])),
    )


def _build_stats(item):
    return CardStats(
        id=item['id'],
        card_id=item['card_id'],
        shown_count=int(item.get('shown_count', 0)),
        right_count=int(item.get('right_count', 0)),
        wrong_count=int(item.get('wrong_count', 0)),
        last_reviewed_at=_timestamp(item.get('last_reviewed_at'), required=False),
    )


def _build_srs(item):
    return CardSRS(
        id=item['id'],
        card_id=item['card_id'],
        ease=item['ease'],
        interval_days=int(item['interval_days']),
        repetitions=int(item['repetitions']),
        due_at=_timestamp(item['due_at']),
    )


def _build_daily_record(item):
    return DailyReviewRecord(
        id=item['id'],
        date=date.fromisoformat(item['date']),
        review_count=int(item.get('review_count', 0)),
        correct_count=int(item.get('correct_count', 0)),
        wrong_count=int(item.get('wrong_count', 0)),
        card_ids=list(item.get('card_ids') or []),
        created_at=_timestamp(item['created_at']),
        updated_at=_timestamp(item.get('updated_at', item['created_at'])),
    )


def _build(kind, builder, items):
    objects = []
    for index, item in enumerate(items):
        try:
            objects.append(builder(item))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ImportFormatError(f"Invalid {kind} at index {index}: {e}") from e
    return objects


def _check_references(kind, objects, attribute, known_ids):
    for obj in objects:
        if getattr(obj, attribute) not in known_ids:
            raise ImportFormatError(
                f"{kind} {obj.pk} refers to unknown {attribute} {getattr(obj, attribute)!r}"
            )


def _settings_updates(data):
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ImportFormatError('"settings" must be an object')
    updates = {}
    for key, value in data.items():
        name = SETTINGS_ALIASES.get(key, key)
        if name in SETTINGS_FIELDS and value is not None:
            updates[name] = value
    return updates


def import_all_data(document):
    """
    Replace the store's contents with a backup document.

    The whole document is validated before anything is written, and the
    writes run in one transaction: on any error the store is left exactly as
    it was.

    Raises:
        ImportFormatError: the document is not a valid backup.
    """
    if not isinstance(document, dict):
        raise ImportFormatError('Backup must be a JSON object')

    wordbooks = _build('wordbook', _build_wordbook, _items(document, 'wordbooks'))
    cards = _build('card', _build_card, _items(document, 'cards'))
    stats = _build('card stats', _build_stats, _items(document, 'card_stats'))
    schedules = _build('card srs', _build_srs, _items(document, 'card_srs'))
    daily = _build('daily review record', _build_daily_record, _items(document, 'daily_review_records'))
    settings_updates = _settings_updates(document.get('settings'))

    _check_references('Card', cards, 'wordbook_id', {w.pk for w in wordbooks})
    card_ids = {c.pk for c in cards}
    _check_references('Card stats', stats, 'card_id', card_ids)
    _check_references('Card SRS', schedules, 'card_id', card_ids)

    try:
        with transaction.atomic():
            DailyReviewRecord.objects.all().delete()
            Wordbook.objects.all().delete()

            Wordbook.objects.bulk_create(wordbooks)
            Card.objects.bulk_create(cards)
            CardStats.objects.bulk_create(stats)
            CardSRS.objects.bulk_create(schedules)
            DailyReviewRecord.objects.bulk_create(daily)

            if settings_updates:
                settings = get_user_settings()
                for name, value in settings_updates.items():
                    setattr(settings, name, value)
                settings.save()
    except (IntegrityError, TypeError, ValueError) as e:
        raise ImportFormatError(f"Backup contains conflicting records: {e}") from e

    logger.info(
        f"Imported {len(wordbooks)} wordbooks, {len(cards)} cards, "
        f"{len(stats)} stats and {len(schedules)} schedules"
    )
    return {
        'wordbooks': len(wordbooks),
        'cards': len(cards),
        'card_stats': len(stats),
        'card_srs': len(schedules),
        'daily_review_records': len(daily),
    }
