import uuid

from django.db import models
from django.utils import timezone

from . import srs


def new_id():
    return uuid.uuid4().hex


class Wordbook(models.Model):
    """A named collection of vocabulary cards."""
    id = models.CharField(primary_key=True, max_length=64, default=new_id, editable=False)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    # Free text such as "TOEFL" or "國中 1200"; see analytics.level_for()
    level = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return self.name


class Card(models.Model):
    """A single vocabulary entry with one or more part-of-speech meanings."""
    id = models.CharField(primary_key=True, max_length=64, default=new_id, editable=False)
    wordbook = models.ForeignKey(Wordbook, on_delete=models.CASCADE, related_name='cards')
    headword = models.CharField(max_length=200)
    phonetic = models.CharField(max_length=200, blank=True)
    # [{part_of_speech, meaning_zh, meaning_en, synonyms, antonyms, examples}]
    meanings = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True)
    star = models.BooleanField(default=False)
    tags = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return self.headword

    def primary_meaning(self):
        """First non-empty meaning, Chinese preferred, for list displays."""
        for meaning in self.meanings:
            text = meaning.get('meaning_zh') or meaning.get('meaning_en')
            if text:
                return text
        return ''


class CardStats(models.Model):
    """
    Review counters for a card, created on its first review.

    shown_count always equals right_count + wrong_count.
    """
    id = models.CharField(primary_key=True, max_length=64, default=new_id, editable=False)
    card = models.OneToOneField(Card, on_delete=models.CASCADE, related_name='stats')
    shown_count = models.PositiveIntegerField(default=0)
    right_count = models.PositiveIntegerField(default=0)
    wrong_count = models.PositiveIntegerField(default=0)
    last_reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name_plural = 'Card stats'

    def __str__(self):
        return f"{self.card_id}: {self.right_count}/{self.shown_count}"

    @property
    def error_rate(self):
        return srs.calculate_error_rate(self.wrong_count, self.shown_count)


class CardSRS(models.Model):
    """SM-2 schedule for a card, created on first review with srs.SRSState.initial()."""
    id = models.CharField(primary_key=True, max_length=64, default=new_id, editable=False)
    card = models.OneToOneField(Card, on_delete=models.CASCADE, related_name='srs')
    ease = models.FloatField(default=srs.DEFAULT_EASE)
    interval_days = models.PositiveIntegerField(default=srs.DEFAULT_INTERVAL_DAYS)
    repetitions = models.PositiveIntegerField(default=0)
    due_at = models.DateTimeField(default=srs.now_ms, db_index=True)

    class Meta:
        verbose_name = 'Card SRS'
        verbose_name_plural = 'Card SRS'

    def __str__(self):
        return f"{self.card_id} due {self.due_at:%Y-%m-%d}"

    def state(self):
        return srs.SRSState(
            ease=self.ease,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
            due_at=self.due_at,
        )

    def is_due(self, now=None):
        return srs.is_due(self.due_at, now)


class UserSettings(models.Model):
    """Singleton preferences row, always stored under id 'default'."""

    SINGLETON_ID = 'default'

    class Theme(models.TextChoices):
        LIGHT = 'light', 'Light'
        DARK = 'dark', 'Dark'
        SYSTEM = 'system', 'System'

    class ReviewMode(models.TextChoices):
        TRADITIONAL = 'traditional', 'Traditional'
        SRS = 'srs', 'Spaced repetition'

    class ErrorFilterMode(models.TextChoices):
        TOP_N = 'top-n', 'Top N error rates'
        MIN_ERRORS = 'min-errors', 'Minimum wrong answers'
        MIN_ERROR_RATE = 'min-error-rate', 'Minimum error rate'

    id = models.CharField(primary_key=True, max_length=32, default=SINGLETON_ID, editable=False)
    daily_goal = models.PositiveIntegerField(default=20)
    theme = models.CharField(max_length=10, choices=Theme.choices, default=Theme.SYSTEM)
    tts_enabled = models.BooleanField(default=True)
    tts_voice = models.CharField(max_length=100, blank=True)
    tts_auto_play = models.BooleanField(default=False)
    display_direction = models.CharField(max_length=30, blank=True)
    review_mode = models.CharField(max_length=20, choices=ReviewMode.choices, default=ReviewMode.SRS)

    # Frequent-errors session defaults
    error_filter_mode = models.CharField(
        max_length=20,
        choices=ErrorFilterMode.choices,
        default=ErrorFilterMode.TOP_N,
    )
    error_top_n = models.PositiveIntegerField(default=20)
    error_min_errors = models.PositiveIntegerField(default=3)
    error_min_error_rate = models.PositiveIntegerField(default=50)

    # Overrides settings.GEMINI_API_KEY when set
    gemini_api_key = models.CharField(max_length=200, blank=True)

    class Meta:
        verbose_name_plural = 'User settings'

    def __str__(self):
        return 'User settings'


class DailyReviewRecord(models.Model):
    """Per-day review tally, keyed by the local calendar date."""
    id = models.CharField(primary_key=True, max_length=64, default=new_id, editable=False)
    date = models.DateField(unique=True)
    review_count = models.PositiveIntegerField(default=0)
    correct_count = models.PositiveIntegerField(default=0)
    wrong_count = models.PositiveIntegerField(default=0)
    card_ids = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-date']

    def __str__(self):
        return f"{self.date}: {self.review_count} reviews"
