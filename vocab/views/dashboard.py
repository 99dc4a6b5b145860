"""Dashboard and statistics views."""

from django.views.decorators.http import require_GET
from django.http import JsonResponse

from .. import analytics, storage
from .helpers import error_response


def _time_range(request, default):
    time_range = request.GET.get('range', default)
    if time_range not in analytics.RANGES:
        return None
    return time_range


@require_GET
def dashboard(request):
    """Overview figures: due, new and total cards, streaks and accuracy."""
    return JsonResponse(analytics.dashboard())


@require_GET
def accuracy(request):
    """Overall, per-wordbook and per-day accuracy for ?range=7days|30days|all."""
    time_range = _time_range(request, analytics.RANGE_7_DAYS)
    if time_range is None:
        return error_response('range must be one of: ' + ', '.join(analytics.RANGES))

    records = storage.load_population()
    return JsonResponse({
        'range': time_range,
        'overall': analytics.overall_accuracy(time_range, records=records),
        'wordbooks': analytics.wordbook_accuracy(time_range, records=records),
        'daily': analytics.daily_accuracy(time_range, records=records),
    })


@require_GET
def streak(request):
    return JsonResponse(analytics.streak_summary())


@require_GET
def activity(request):
    """Learned vs. reviewed cards per day, week or month."""
    time_range = _time_range(request, analytics.RANGE_7_DAYS)
    if time_range is None:
        return error_response('range must be one of: ' + ', '.join(analytics.RANGES))
    return JsonResponse({'range': time_range, 'buckets': analytics.activity_chart(time_range)})


@require_GET
def levels(request):
    return JsonResponse({'levels': analytics.level_progress()})


@require_GET
def today(request):
    return JsonResponse(analytics.today_reviewed())


@require_GET
def errors(request):
    cards = analytics.error_cards()
    return JsonResponse({'count': len(cards), 'cards': cards})
