"""Views package for the vocab app."""

from .dashboard import dashboard, accuracy, streak, activity, levels, today, errors
from .wordbook import (
    wordbook_list,
    wordbook_detail,
    wordbook_reset,
    wordbook_csv,
    wordbook_generate,
    wordbook_regenerate,
    card_create,
)
from .card import card_detail
from .review import review_session, review_card
from .backup import export_data, import_data
from .settings import settings_view
from .health import health_check

__all__ = [
    # Dashboard and statistics
    'dashboard',
    'accuracy',
    'streak',
    'activity',
    'levels',
    'today',
    'errors',
    # Wordbook
    'wordbook_list',
    'wordbook_detail',
    'wordbook_reset',
    'wordbook_csv',
    'wordbook_generate',
    'wordbook_regenerate',
    'card_create',
    # Card
    'card_detail',
    # Review
    'review_session',
    'review_card',
    # Backup
    'export_data',
    'import_data',
    # Settings
    'settings_view',
    # Health
    'health_check',
]
