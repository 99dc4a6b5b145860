"""Shared helper functions for views."""

import json

from django.http import JsonResponse

from .. import srs
from ..storage import StatsSnapshot


class BadRequest(Exception):
    """Request body or parameters could not be used."""


def json_body(request):
    """Decode a JSON object request body; an empty body reads as {}."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequest('Invalid JSON')
    if not isinstance(data, dict):
        raise BadRequest('Expected a JSON object')
    return data


def error_response(message, status=400, **extra):
    return JsonResponse({'error': message, **extra}, status=status)


def form_error_response(form):
    return error_response('Invalid data', errors=form.errors.get_json_data())


def wordbook_payload(wordbook, card_count=None):
    data = {
        'id': wordbook.pk,
        'name': wordbook.name,
        'description': wordbook.description,
        'level': wordbook.level,
        'created_at': srs.to_iso(wordbook.created_at),
        'updated_at': srs.to_iso(wordbook.updated_at),
    }
    if card_count is not None:
        data['card_count'] = card_count
    return data


def stats_payload(stats):
    return {
        'shown_count': stats.shown_count,
        'right_count': stats.right_count,
        'wrong_count': stats.wrong_count,
        'error_rate': srs.round_half_up(stats.error_rate),
        'last_reviewed_at': srs.to_iso(stats.last_reviewed_at),
    }


def srs_payload(state):
    if state is None:
        return None
    return {
        'ease': state.ease,
        'interval_days': state.interval_days,
        'repetitions': state.repetitions,
        'due_at': srs.to_iso(state.due_at),
    }


def card_payload(card, stats=None, state=None):
    """Card fields plus its stats and schedule, when known."""
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
        'stats': stats_payload(stats if stats is not None else StatsSnapshot()),
        'srs': srs_payload(state),
    }


def record_payload(record):
    return card_payload(record.card, record.stats, record.srs)
