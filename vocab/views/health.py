"""Health check endpoint."""

import logging

from django.db import DatabaseError
from django.http import JsonResponse

from ..models import Wordbook, Card

logger = logging.getLogger(__name__)


def health_check(request):
    """200 with store counts while the database answers, 503 otherwise."""
    try:
        wordbooks = Wordbook.objects.count()
        cards = Card.objects.count()
    except DatabaseError as e:
        logger.error(f"Health check failed: {e}")
        return JsonResponse({"status": "unhealthy", "error": str(e)}, status=503)
    return JsonResponse({"status": "healthy", "wordbooks": wordbooks, "cards": cards})
