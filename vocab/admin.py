from django.contrib import admin
from .models import Wordbook, Card, CardStats, CardSRS, UserSettings, DailyReviewRecord


class CardInline(admin.TabularInline):
    model = Card
    extra = 1
    fields = ['headword', 'phonetic', 'star']


@admin.register(Wordbook)
class WordbookAdmin(admin.ModelAdmin):
    list_display = ['name', 'level', 'card_count', 'created_at']
    list_filter = ['level', 'created_at']
    search_fields = ['name', 'description']
    inlines = [CardInline]

    def card_count(self, obj):
        return obj.cards.count()
    card_count.short_description = 'Cards'


@admin.register(Card)
class CardAdmin(admin.ModelAdmin):
    list_display = ['headword', 'wordbook', 'meaning_preview', 'star', 'created_at']
    list_filter = ['wordbook', 'star']
    search_fields = ['headword', 'notes']

    def meaning_preview(self, obj):
        meaning = obj.primary_meaning()
        return meaning[:50] + '...' if len(meaning) > 50 else meaning
    meaning_preview.short_description = 'Meaning'


@admin.register(CardStats)
class CardStatsAdmin(admin.ModelAdmin):
    list_display = ['card', 'shown_count', 'right_count', 'wrong_count', 'last_reviewed_at']
    readonly_fields = ['card', 'shown_count', 'right_count', 'wrong_count', 'last_reviewed_at']


@admin.register(CardSRS)
class CardSRSAdmin(admin.ModelAdmin):
    list_display = ['card', 'ease', 'interval_days', 'repetitions', 'due_at']
    list_filter = ['due_at']
    readonly_fields = ['card', 'ease', 'interval_days', 'repetitions', 'due_at']


@admin.register(DailyReviewRecord)
class DailyReviewRecordAdmin(admin.ModelAdmin):
    list_display = ['date', 'review_count', 'correct_count', 'wrong_count']


@admin.register(UserSettings)
class UserSettingsAdmin(admin.ModelAdmin):
    list_display = ['id', 'daily_goal', 'theme', 'review_mode', 'error_filter_mode']
