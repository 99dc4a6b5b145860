"""Review session views."""

import logging

from django.http import Http404, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .. import sessions, storage
from ..forms import ReviewRequestForm
from ..models import Card, Wordbook
from .helpers import (
    BadRequest,
    json_body,
    error_response,
    form_error_response,
    record_payload,
    srs_payload,
    stats_payload,
)

logger = logging.getLogger(__name__)


@require_GET
def review_session(request):
    """
    Build a review queue.

    ?mode=due|new|frequent-errors|mixed|starred|ordered|random
    plus, for frequent-errors, filter=top-n|min-errors|min-error-rate with
    topN / minErrors / minErrorRate, and for ordered/random, wordbook=<id>
    with order=created|alphabetical.
    """
    form = ReviewRequestForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    mode = form.cleaned_data['mode']
    wordbook_id = form.cleaned_data.get('wordbook') or None
    if mode in sessions.WORDBOOK_MODES:
        get_object_or_404(Wordbook, pk=wordbook_id)

    error_filter = None
    if mode == sessions.MODE_FREQUENT_ERRORS:
        try:
            error_filter = form.error_filter(storage.get_user_settings())
        except ValueError as e:
            return error_response(str(e))

    selected = request.GET.getlist('wordbooks') or None
    try:
        selected_records = sessions.select_records(
            mode,
            wordbook_id=wordbook_id,
            order=form.cleaned_data.get('order') or sessions.ORDER_CREATED,
            error_filter=error_filter,
            selected_wordbook_ids=selected,
        )
    except Wordbook.DoesNotExist:
        raise Http404('Wordbook not found')

    return JsonResponse({
        'mode': mode,
        'cards': [record_payload(r) for r in selected_records],
        'summary': sessions.session_summary(selected_records),
    })


@csrf_exempt
@require_POST
def review_card(request, pk):
    """Record one answer: {"correct": true|false}."""
    card = get_object_or_404(Card, pk=pk)

    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))
    correct = data.get('correct')
    if not isinstance(correct, bool):
        return error_response('"correct" must be true or false')

    outcome = storage.record_answer(card.pk, correct)
    record = storage.get_daily_review_record()

    return JsonResponse({
        'success': True,
        'card_id': outcome.card_id,
        'correct': outcome.correct,
        'quality': outcome.quality,
        'srs': srs_payload(outcome.srs),
        'stats': stats_payload(outcome.stats),
        'reviewed_today': record.review_count if record else 0,
    })
