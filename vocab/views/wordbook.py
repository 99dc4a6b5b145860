"""Wordbook views: CRUD, CSV, progress reset and generation."""

import logging

from django.db.models import Count
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from .. import csv_io, gemini, storage
from ..forms import WordbookForm, CardForm, bound_data
from ..models import Wordbook, Card
from .helpers import (
    BadRequest,
    json_body,
    error_response,
    form_error_response,
    wordbook_payload,
    record_payload,
    card_payload,
)

logger = logging.getLogger(__name__)


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def wordbook_list(request):
    """GET lists wordbooks with card counts; POST creates one."""
    if request.method == 'GET':
        wordbooks = Wordbook.objects.annotate(card_count=Count('cards'))
        return JsonResponse({
            'wordbooks': [wordbook_payload(w, w.card_count) for w in wordbooks],
        })

    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))
    form = WordbookForm(data=bound_data(None, WordbookForm.Meta.fields, data))
    if not form.is_valid():
        return form_error_response(form)
    wordbook = storage.create_wordbook(**form.cleaned_data)
    return JsonResponse(wordbook_payload(wordbook, 0), status=201)


@csrf_exempt
@require_http_methods(['GET', 'POST', 'DELETE'])
def wordbook_detail(request, pk):
    """GET returns the wordbook with its cards, POST updates it, DELETE removes it."""
    wordbook = get_object_or_404(Wordbook, pk=pk)

    if request.method == 'GET':
        records = storage.load_population(wordbook_id=wordbook.pk)
        data = wordbook_payload(wordbook, len(records))
        data['cards'] = [record_payload(r) for r in records]
        return JsonResponse(data)

    if request.method == 'DELETE':
        storage.delete_wordbook(wordbook.pk)
        return JsonResponse({'success': True})

    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))
    form = WordbookForm(data=bound_data(wordbook, WordbookForm.Meta.fields, data), instance=wordbook)
    if not form.is_valid():
        return form_error_response(form)
    wordbook = storage.update_wordbook(wordbook.pk, **form.cleaned_data)
    return JsonResponse(wordbook_payload(wordbook, wordbook.cards.count()))


@csrf_exempt
@require_POST
def card_create(request, pk):
    """Add a card to a wordbook."""
    wordbook = get_object_or_404(Wordbook, pk=pk)
    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))
    form = CardForm(data=bound_data(None, CardForm.Meta.fields, data))
    if not form.is_valid():
        return form_error_response(form)
    fields = dict(form.cleaned_data)
    card = storage.create_card(wordbook.pk, fields.pop('headword'), **fields)
    return JsonResponse(card_payload(card), status=201)


@csrf_exempt
@require_POST
def wordbook_reset(request, pk):
    """Wipe review progress; the wordbook name must be sent back as confirmation."""
    wordbook = get_object_or_404(Wordbook, pk=pk)
    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))

    confirm_name = data.get('confirm_name')
    if not isinstance(confirm_name, str):
        return error_response('"confirm_name" must be a string')
    if confirm_name.strip() != wordbook.name:
        return error_response('Wordbook name does not match')

    card_count = storage.reset_wordbook_progress(wordbook.pk)
    return JsonResponse({
        'success': True,
        'message': f'Reset {card_count} cards in "{wordbook.name}"',
        'card_count': card_count,
    })


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def wordbook_csv(request, pk):
    """GET downloads the cards as CSV; POST imports CSV (raw body or a 'file' upload)."""
    wordbook = get_object_or_404(Wordbook, pk=pk)

    if request.method == 'GET':
        response = HttpResponse(
            csv_io.cards_to_csv(wordbook.cards.all()),
            content_type='text/csv; charset=utf-8',
        )
        # Sanitize filename
        safe_name = "".join(c for c in wordbook.name if c.isalnum() or c in (' ', '-', '_')).strip()
        response['Content-Disposition'] = f'attachment; filename="{safe_name or wordbook.pk}.csv"'
        return response

    uploaded_file = request.FILES.get('file')
    try:
        raw = uploaded_file.read() if uploaded_file else request.body
        text = raw.decode('utf-8-sig')
    except UnicodeDecodeError:
        return error_response('CSV must be UTF-8 encoded')

    rows = csv_io.parse_csv(text)
    if not rows:
        return error_response('No rows with a headword found')
    result = csv_io.import_csv_rows(wordbook, rows)
    return JsonResponse({
        'created': result.created,
        'skipped': result.skipped,
        'failed': result.failed,
        'errors': result.errors,
    })


@csrf_exempt
@require_POST
def wordbook_generate(request):
    """Create a wordbook from a word list, filling cards with generated details."""
    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))

    words = data.get('words')
    if not isinstance(words, list) or not words or not all(isinstance(w, str) for w in words):
        return error_response('"words" must be a non-empty list of strings')
    form = WordbookForm(data=bound_data(None, WordbookForm.Meta.fields, data))
    if not form.is_valid():
        return form_error_response(form)

    try:
        api_key = gemini.resolve_api_key()
    except gemini.WordDetailError as e:
        return error_response(str(e))

    wordbook, result = gemini.generate_wordbook(
        form.cleaned_data['name'],
        words,
        api_key=api_key,
        level=form.cleaned_data['level'],
        description=form.cleaned_data['description'],
    )
    data = wordbook_payload(wordbook, wordbook.cards.count())
    data.update({'succeeded': result.succeeded, 'failed': result.failed, 'errors': result.errors})
    return JsonResponse(data, status=201)


@csrf_exempt
@require_POST
def wordbook_regenerate(request, pk):
    """Regenerate details for the wordbook's cards, or for the listed card_ids."""
    wordbook = get_object_or_404(Wordbook, pk=pk)
    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))

    cards = Card.objects.filter(wordbook=wordbook)
    card_ids = data.get('card_ids')
    if card_ids is not None:
        if not isinstance(card_ids, list):
            return error_response('"card_ids" must be a list')
        cards = cards.filter(pk__in=card_ids)

    try:
        api_key = gemini.resolve_api_key()
    except gemini.WordDetailError as e:
        return error_response(str(e))

    result = gemini.regenerate_cards(list(cards), api_key=api_key, level=wordbook.level or 'TOEFL')
    return JsonResponse({'succeeded': result.succeeded, 'failed': result.failed, 'errors': result.errors})
