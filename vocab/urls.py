from django.urls import path
from . import views

urlpatterns = [
    # Dashboard & statistics
    path('api/dashboard/', views.dashboard, name='dashboard'),
    path('api/statistics/accuracy/', views.accuracy, name='statistics_accuracy'),
    path('api/statistics/streak/', views.streak, name='statistics_streak'),
    path('api/statistics/activity/', views.activity, name='statistics_activity'),
    path('api/statistics/levels/', views.levels, name='statistics_levels'),
    path('api/statistics/today/', views.today, name='statistics_today'),
    path('api/statistics/errors/', views.errors, name='statistics_errors'),

    # Wordbooks
    path('api/wordbooks/', views.wordbook_list, name='wordbook_list'),
    path('api/wordbooks/generate/', views.wordbook_generate, name='wordbook_generate'),
    path('api/wordbooks/<str:pk>/', views.wordbook_detail, name='wordbook_detail'),
    path('api/wordbooks/<str:pk>/cards/', views.card_create, name='card_create'),
    path('api/wordbooks/<str:pk>/csv/', views.wordbook_csv, name='wordbook_csv'),
    path('api/wordbooks/<str:pk>/reset/', views.wordbook_reset, name='wordbook_reset'),
    path('api/wordbooks/<str:pk>/regenerate/', views.wordbook_regenerate, name='wordbook_regenerate'),

    # Cards
    path('api/cards/<str:pk>/', views.card_detail, name='card_detail'),

    # Review
    path('api/review/', views.review_session, name='review_session'),
    path('api/review/<str:pk>/', views.review_card, name='review_card'),

    # Backup
    path('api/export/', views.export_data, name='export_data'),
    path('api/import/', views.import_data, name='import_data'),

    # Settings
    path('api/settings/', views.settings_view, name='settings'),

    # Health check
    path('health/', views.health_check, name='health_check'),
]
