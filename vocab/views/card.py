"""Card views."""

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .. import storage
from ..forms import CardForm, bound_data
from ..models import Card
from .helpers import BadRequest, json_body, error_response, form_error_response, card_payload


@csrf_exempt
@require_http_methods(['GET', 'POST', 'DELETE'])
def card_detail(request, pk):
    """GET returns the card with stats and schedule, POST updates it, DELETE removes it."""
    card = get_object_or_404(Card, pk=pk)

    if request.method == 'GET':
        stats = storage.stats_or_default(card.pk)
        schedule = storage.get_card_srs(card.pk)
        return JsonResponse(card_payload(card, stats, schedule.state() if schedule else None))

    if request.method == 'DELETE':
        storage.delete_card(card.pk)
        return JsonResponse({'success': True})

    try:
        data = json_body(request)
    except BadRequest as e:
        return error_response(str(e))
    form = CardForm(data=bound_data(card, CardForm.Meta.fields, data), instance=card)
    if not form.is_valid():
        return form_error_response(form)
    card = storage.update_card(card.pk, **form.cleaned_data)
    return JsonResponse(card_payload(card, storage.stats_or_default(card.pk)))
