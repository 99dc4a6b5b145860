"""
Unit tests for the vocabulary application.

Test organization:
- SRS*Tests: Pure function tests for the SM-2 scheduler
- Storage*Tests: Review recording, lazy stats/schedules, not-found errors
- Session*Tests: Review queue building per mode and filter
- Analytics*Tests: Accuracy, streaks, activity, levels
- Backup*Tests: Full export/import
- CSV*Tests, Gemini*Tests: Import/generation collaborators
- *ViewTests, *CommandTests: HTTP surface and management commands
"""

import json
import os
import random
import tempfile
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import patch, MagicMock

import requests
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, Client, override_settings
from django.urls import reverse
from django.utils import timezone

from . import srs, storage, sessions, analytics, backup, csv_io, gemini
from .forms import ReviewRequestForm, UserSettingsForm
from .models import Wordbook, Card, CardStats, CardSRS, UserSettings, DailyReviewRecord


BASE_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=dt_timezone.utc)


def local_noon(day):
    return timezone.make_aware(datetime.combine(day, time(12, 0)))


def make_wordbook(name='Test Wordbook', level='', offset=0):
    return Wordbook.objects.create(
        name=name,
        level=level,
        created_at=BASE_TIME + timedelta(minutes=offset),
    )


def make_card(wordbook, headword, offset=0, **fields):
    return Card.objects.create(
        wordbook=wordbook,
        headword=headword,
        created_at=BASE_TIME + timedelta(minutes=offset),
        **fields
    )


def make_stats(card, right, wrong, reviewed_at=None):
    return CardStats.objects.create(
        card=card,
        shown_count=right + wrong,
        right_count=right,
        wrong_count=wrong,
        last_reviewed_at=reviewed_at,
    )


# =============================================================================
# SRS Algorithm Tests
# =============================================================================

class SRSQualityTests(TestCase):
    """Tests for the binary answer to quality mapping."""

    def test_correct_maps_to_five(self):
        self.assertEqual(srs.answer_to_quality(True), 5)

    def test_incorrect_maps_to_two(self):
        """Incorrect answers map to 2, which is below the passing threshold."""
        quality = srs.answer_to_quality(False)
        self.assertEqual(quality, 2)
        self.assertLess(quality, srs.PASSING_QUALITY)


class SRSEaseFactorTests(TestCase):
    """Tests for ease factor calculation."""

    def test_perfect_response_adds_point_one(self):
        self.assertAlmostEqual(srs.next_ease(2.5, 5), 2.6)

    def test_ease_factor_formula_accuracy(self):
        # EF' = EF + (0.1 - (5-q) * (0.08 + (5-q) * 0.02)); q=3 -> -0.14
        self.assertAlmostEqual(srs.next_ease(2.5, 3), 2.36)

    def test_ease_never_below_minimum(self):
        self.assertEqual(srs.next_ease(1.3, 3), srs.MIN_EASE)


class SRSCalculateReviewTests(TestCase):
    """Tests for the main calculate_next_review function."""

    def setUp(self):
        self.now = BASE_TIME
        self.initial = srs.SRSState.initial(self.now)

    def test_initial_state(self):
        """A never-scheduled card is due immediately with default ease."""
        self.assertEqual(self.initial.ease, 2.5)
        self.assertEqual(self.initial.interval_days, 1)
        self.assertEqual(self.initial.repetitions, 0)
        self.assertEqual(self.initial.due_at, self.now)

    def test_first_success(self):
        state = srs.calculate_next_review(self.initial, 5, self.now)
        self.assertAlmostEqual(state.ease, 2.6)
        self.assertEqual(state.interval_days, 1)
        self.assertEqual(state.repetitions, 1)
        self.assertEqual(state.due_at, self.now + timedelta(days=1))

    def test_complete_learning_progression(self):
        """Three correct answers in a row give intervals 1, 6, round(6 * 2.8)."""
        state = self.initial
        intervals = []
        for _ in range(3):
            state = srs.calculate_next_review(state, 5, self.now)
            intervals.append(state.interval_days)
        self.assertEqual(intervals, [1, 6, 17])
        self.assertAlmostEqual(state.ease, 2.8)
        self.assertEqual(state.repetitions, 3)

    def test_intervals_grow_on_success_streak(self):
        state = self.initial
        previous = 0
        for _ in range(8):
            state = srs.calculate_next_review(state, 5, self.now)
            self.assertGreaterEqual(state.interval_days, previous)
            previous = state.interval_days

    def test_failed_review_resets_progress(self):
        """Quality below 3 resets repetitions and interval, and lowers ease by 0.2."""
        state = srs.SRSState(ease=2.5, interval_days=30, repetitions=5, due_at=self.now)
        for quality in [0, 1, 2]:
            result = srs.calculate_next_review(state, quality, self.now)
            self.assertAlmostEqual(result.ease, 2.3)
            self.assertEqual(result.interval_days, 1)
            self.assertEqual(result.repetitions, 0)
            self.assertEqual(result.due_at, self.now + timedelta(days=1))

    def test_failure_ease_floor(self):
        state = srs.SRSState(ease=1.4, interval_days=3, repetitions=2, due_at=self.now)
        result = srs.calculate_next_review(state, 2, self.now)
        self.assertEqual(result.ease, srs.MIN_EASE)
        result = srs.calculate_next_review(result, 2, self.now)
        self.assertEqual(result.ease, srs.MIN_EASE)

    def test_quality_three_is_success(self):
        result = srs.calculate_next_review(self.initial, 3, self.now)
        self.assertEqual(result.repetitions, 1)

    def test_out_of_range_quality_is_clamped(self):
        """Quality above 5 schedules like 5; below 0 like a failure."""
        high = srs.calculate_next_review(self.initial, 6, self.now)
        self.assertEqual(high, srs.calculate_next_review(self.initial, 5, self.now))
        self.assertGreaterEqual(high.ease, srs.MIN_EASE)

        low = srs.calculate_next_review(self.initial, -1, self.now)
        self.assertEqual(low.repetitions, 0)
        self.assertEqual(low.interval_days, 1)
        self.assertGreaterEqual(low.ease, srs.MIN_EASE)

    def test_ease_floor_holds_for_any_quality(self):
        state = self.initial
        for quality in [-10, 0, 1, 2, 3, 4, 5, 99, -3, 2, 2, 2, 2, 2]:
            state = srs.calculate_next_review(state, quality, self.now)
            self.assertGreaterEqual(state.ease, srs.MIN_EASE)

    def test_due_time_truncated_to_milliseconds(self):
        now = BASE_TIME.replace(microsecond=123456)
        result = srs.calculate_next_review(self.initial, 5, now)
        self.assertEqual(result.due_at.microsecond, 123000)


class SRSHelperTests(TestCase):
    """Tests for due checks, error rates, rounding and timestamps."""

    def test_due_at_boundary(self):
        self.assertTrue(srs.is_due(BASE_TIME, BASE_TIME))

    def test_due_in_past(self):
        self.assertTrue(srs.is_due(BASE_TIME - timedelta(days=1), BASE_TIME))

    def test_not_due_in_future(self):
        self.assertFalse(srs.is_due(BASE_TIME + timedelta(seconds=1), BASE_TIME))

    def test_error_rate(self):
        self.assertEqual(srs.calculate_error_rate(5, 10), 50)
        self.assertAlmostEqual(srs.calculate_error_rate(1, 3), 33.333, places=2)

    def test_error_rate_never_shown(self):
        self.assertEqual(srs.calculate_error_rate(0, 0), 0)

    def test_round_half_up(self):
        self.assertEqual(srs.round_half_up(2.5), 3)
        self.assertEqual(srs.round_half_up(12.5), 13)
        self.assertEqual(srs.round_half_up(16.8), 17)
        self.assertEqual(srs.round_half_up(2.4), 2)

    def test_to_iso_format(self):
        value = datetime(2025, 1, 2, 3, 4, 5, 678901, tzinfo=dt_timezone.utc)
        self.assertEqual(srs.to_iso(value), '2025-01-02T03:04:05.678Z')

    def test_to_iso_converts_to_utc(self):
        value = timezone.make_aware(datetime(2025, 1, 2, 8, 0, 0))
        self.assertEqual(srs.to_iso(value), '2025-01-02T00:00:00.000Z')

    def test_parse_iso(self):
        value = srs.parse_iso('2025-01-02T03:04:05.678Z')
        self.assertEqual(value, datetime(2025, 1, 2, 3, 4, 5, 678000, tzinfo=dt_timezone.utc))

    def test_parse_iso_naive_is_utc(self):
        value = srs.parse_iso('2025-01-02T03:04:05')
        self.assertEqual(value.tzinfo, dt_timezone.utc)

    def test_parse_iso_empty(self):
        self.assertIsNone(srs.parse_iso(None))
        self.assertIsNone(srs.parse_iso(''))


# =============================================================================
# Storage Tests
# =============================================================================

class StorageReviewTests(TestCase):
    """Tests for recording answers."""

    def setUp(self):
        self.wordbook = make_wordbook()
        self.card = make_card(self.wordbook, 'abandon')

    def test_unreviewed_card_defaults(self):
        """Missing stats and schedule resolve to zero counters and the initial state."""
        stats = storage.stats_or_default(self.card.pk)
        self.assertEqual(stats.shown_count, 0)
        self.assertEqual(stats.error_rate, 0)
        self.assertIsNone(storage.get_card_stats(self.card.pk))

        state = storage.srs_state_or_default(self.card.pk, BASE_TIME)
        self.assertEqual(state, srs.SRSState.initial(BASE_TIME))

    def test_stats_invariant(self):
        """After N answers with k correct: shown N, right k, wrong N-k."""
        answers = [True, False, True, True, False]
        for correct in answers:
            storage.record_answer(self.card.pk, correct)

        stats = CardStats.objects.get(card=self.card)
        self.assertEqual(stats.shown_count, 5)
        self.assertEqual(stats.right_count, 3)
        self.assertEqual(stats.wrong_count, 2)
        self.assertEqual(stats.shown_count, stats.right_count + stats.wrong_count)

    def test_record_answer_creates_schedule(self):
        outcome = storage.record_answer(self.card.pk, True, now=BASE_TIME)
        record = CardSRS.objects.get(card=self.card)

        self.assertEqual(outcome.quality, 5)
        self.assertEqual(record.repetitions, 1)
        self.assertEqual(record.interval_days, 1)
        self.assertEqual(record.due_at, BASE_TIME + timedelta(days=1))
        self.assertEqual(outcome.stats.last_reviewed_at, BASE_TIME)

    def test_wrong_answer_resets_schedule(self):
        storage.record_answer(self.card.pk, True, now=BASE_TIME)
        storage.record_answer(self.card.pk, True, now=BASE_TIME)
        outcome = storage.record_answer(self.card.pk, False, now=BASE_TIME)

        self.assertEqual(outcome.srs.repetitions, 0)
        self.assertEqual(outcome.srs.interval_days, 1)
        self.assertAlmostEqual(outcome.srs.ease, 2.5)

    def test_daily_record_tally(self):
        now = timezone.now()
        storage.record_answer(self.card.pk, True, now=now)
        storage.record_answer(self.card.pk, False, now=now)

        record = storage.get_daily_review_record(timezone.localdate(now))
        self.assertEqual(record.review_count, 2)
        self.assertEqual(record.correct_count, 1)
        self.assertEqual(record.wrong_count, 1)
        self.assertEqual(record.card_ids, [self.card.pk])

    def test_record_answer_unknown_card(self):
        with self.assertRaises(Card.DoesNotExist):
            storage.record_answer('missing', True)
        self.assertEqual(DailyReviewRecord.objects.count(), 0)


class StorageEntityTests(TestCase):
    """Tests for wordbook/card operations and not-found errors."""

    def setUp(self):
        self.wordbook = make_wordbook()

    def test_update_missing_wordbook(self):
        with self.assertRaises(Wordbook.DoesNotExist):
            storage.update_wordbook('missing', name='x')

    def test_delete_missing_card(self):
        with self.assertRaises(Card.DoesNotExist):
            storage.delete_card('missing')

    def test_create_card_in_missing_wordbook(self):
        with self.assertRaises(Wordbook.DoesNotExist):
            storage.create_card('missing', 'abandon')

    def test_delete_wordbook_cascades(self):
        card = make_card(self.wordbook, 'abandon')
        storage.record_answer(card.pk, True)
        storage.delete_wordbook(self.wordbook.pk)

        self.assertFalse(Card.objects.exists())
        self.assertFalse(CardStats.objects.exists())
        self.assertFalse(CardSRS.objects.exists())

    def test_reset_wordbook_progress(self):
        card = make_card(self.wordbook, 'abandon')
        storage.record_answer(card.pk, False)
        count = storage.reset_wordbook_progress(self.wordbook.pk)

        self.assertEqual(count, 1)
        self.assertEqual(storage.stats_or_default(card.pk).shown_count, 0)
        self.assertIsNone(storage.get_card_srs(card.pk))

    def test_load_population_store_order(self):
        later = make_wordbook('Later', offset=10)
        c1 = make_card(later, 'zeta', offset=1)
        c2 = make_card(self.wordbook, 'beta', offset=5)
        c3 = make_card(self.wordbook, 'alpha', offset=3)

        ids = [r.card.pk for r in storage.load_population()]
        self.assertEqual(ids, [c3.pk, c2.pk, c1.pk])

    def test_settings_singleton(self):
        first = storage.get_user_settings()
        second = storage.get_user_settings()
        self.assertEqual(first.pk, 'default')
        self.assertEqual(UserSettings.objects.count(), 1)
        self.assertEqual(second.error_top_n, 20)
        self.assertEqual(second.error_min_errors, 3)
        self.assertEqual(second.error_min_error_rate, 50)

    def test_get_due_cards(self):
        card = make_card(self.wordbook, 'abandon')
        other = make_card(self.wordbook, 'abate', offset=1)
        storage.upsert_card_srs(card.pk, due_at=BASE_TIME - timedelta(days=1))
        storage.upsert_card_srs(other.pk, due_at=BASE_TIME + timedelta(days=1))

        due = storage.get_due_cards(now=BASE_TIME)
        self.assertEqual([r.card_id for r in due], [card.pk])


# =============================================================================
# Session / Queue Tests
# =============================================================================

class SessionFrequentErrorsTests(TestCase):
    """Tests for the frequent-errors queue and its filters."""

    def setUp(self):
        self.wordbook = make_wordbook()
        self.a = make_card(self.wordbook, 'A', offset=1)
        self.b = make_card(self.wordbook, 'B', offset=2)
        self.c = make_card(self.wordbook, 'C', offset=3)
        make_stats(self.a, right=5, wrong=5)
        make_stats(self.b, right=2, wrong=8)
        make_stats(self.c, right=5, wrong=0)

    def test_orders_by_error_rate(self):
        """B (80%) before A (50%); C has never been wrong and is left out."""
        queue = sessions.build_queue(sessions.MODE_FREQUENT_ERRORS)
        self.assertEqual(queue, [self.b.pk, self.a.pk])

    def test_ties_keep_store_order(self):
        d = make_card(self.wordbook, 'D', offset=4)
        make_stats(d, right=5, wrong=5)
        queue = sessions.build_queue(sessions.MODE_FREQUENT_ERRORS)
        self.assertEqual(queue, [self.b.pk, self.a.pk, d.pk])

    def test_top_n(self):
        queue = sessions.build_queue(
            sessions.MODE_FREQUENT_ERRORS,
            error_filter=sessions.ErrorFilter(sessions.FILTER_TOP_N, 1),
        )
        self.assertEqual(queue, [self.b.pk])

    def test_min_errors(self):
        queue = sessions.build_queue(
            sessions.MODE_FREQUENT_ERRORS,
            error_filter=sessions.ErrorFilter(sessions.FILTER_MIN_ERRORS, 6),
        )
        self.assertEqual(queue, [self.b.pk])

    def test_min_error_rate_inclusive(self):
        queue = sessions.build_queue(
            sessions.MODE_FREQUENT_ERRORS,
            error_filter=sessions.ErrorFilter(sessions.FILTER_MIN_ERROR_RATE, 50),
        )
        self.assertEqual(queue, [self.b.pk, self.a.pk])

    def test_filter_ranges(self):
        for mode, value in [('top-n', 0), ('top-n', 101), ('min-errors', 51), ('min-error-rate', 0)]:
            with self.assertRaises(ValueError, msg=f"{mode}={value}"):
                sessions.ErrorFilter(mode, value)
        with self.assertRaises(ValueError):
            sessions.ErrorFilter('bogus', 5)

    def test_filter_from_settings(self):
        settings = storage.update_user_settings(error_filter_mode='min-errors', error_min_errors=7)
        self.assertEqual(sessions.ErrorFilter.from_settings(settings), sessions.ErrorFilter('min-errors', 7))
        self.assertEqual(
            sessions.ErrorFilter.from_settings(settings, sessions.FILTER_TOP_N),
            sessions.ErrorFilter('top-n', 20),
        )


class SessionModeTests(TestCase):
    """Tests for the due, new, mixed, starred and per-wordbook modes."""

    def setUp(self):
        self.wordbook = make_wordbook()
        self.now = timezone.now()

    def test_empty_store_gives_empty_queue(self):
        for mode in sessions.GLOBAL_MODES:
            self.assertEqual(sessions.build_queue(mode), [])

    def test_due_mode(self):
        past = make_card(self.wordbook, 'past', offset=1)
        future = make_card(self.wordbook, 'future', offset=2)
        make_card(self.wordbook, 'unscheduled', offset=3)
        storage.upsert_card_srs(past.pk, due_at=self.now - timedelta(hours=1))
        storage.upsert_card_srs(future.pk, due_at=self.now + timedelta(hours=1))

        self.assertEqual(sessions.build_queue(sessions.MODE_DUE, now=self.now), [past.pk])

    def test_due_boundary_included(self):
        card = make_card(self.wordbook, 'exact')
        storage.upsert_card_srs(card.pk, due_at=self.now)
        self.assertEqual(sessions.build_queue(sessions.MODE_DUE, now=self.now), [card.pk])

    def test_new_mode(self):
        without_stats = make_card(self.wordbook, 'fresh', offset=1)
        zero_stats = make_card(self.wordbook, 'zero', offset=2)
        reviewed = make_card(self.wordbook, 'seen', offset=3)
        make_stats(zero_stats, 0, 0)
        make_stats(reviewed, 1, 0)

        queue = sessions.build_queue(sessions.MODE_NEW)
        self.assertEqual(queue, [without_stats.pk, zero_stats.pk])

    def test_starred_mode(self):
        make_card(self.wordbook, 'plain', offset=1)
        starred = make_card(self.wordbook, 'starred', offset=2, star=True)
        self.assertEqual(sessions.build_queue(sessions.MODE_STARRED), [starred.pk])

    def test_mixed_is_permutation(self):
        cards = [make_card(self.wordbook, f'w{i}', offset=i) for i in range(10)]
        queue = sessions.build_queue(sessions.MODE_MIXED, rng=random.Random(7))
        self.assertEqual(sorted(queue), sorted(c.pk for c in cards))

    def test_selected_wordbooks(self):
        other = make_wordbook('Other', offset=5)
        mine = make_card(self.wordbook, 'mine')
        make_card(other, 'theirs')
        queue = sessions.build_queue(sessions.MODE_NEW, selected_wordbook_ids=[self.wordbook.pk])
        self.assertEqual(queue, [mine.pk])

    def test_ordered_by_creation(self):
        second = make_card(self.wordbook, 'apple', offset=2)
        first = make_card(self.wordbook, 'cherry', offset=1)
        queue = sessions.build_queue(sessions.MODE_ORDERED, wordbook_id=self.wordbook.pk)
        self.assertEqual(queue, [first.pk, second.pk])

    def test_ordered_alphabetical(self):
        banana = make_card(self.wordbook, 'banana', offset=1)
        apple = make_card(self.wordbook, 'Apple', offset=2)
        cherry = make_card(self.wordbook, 'cherry', offset=3)
        queue = sessions.build_queue(
            sessions.MODE_ORDERED,
            wordbook_id=self.wordbook.pk,
            order=sessions.ORDER_ALPHABETICAL,
        )
        self.assertEqual(queue, [apple.pk, banana.pk, cherry.pk])

    def test_random_stays_in_wordbook(self):
        other = make_wordbook('Other', offset=5)
        mine = [make_card(self.wordbook, f'w{i}', offset=i) for i in range(5)]
        make_card(other, 'theirs')
        queue = sessions.build_queue(sessions.MODE_RANDOM, wordbook_id=self.wordbook.pk, rng=random.Random(1))
        self.assertEqual(sorted(queue), sorted(c.pk for c in mine))

    def test_wordbook_mode_errors(self):
        with self.assertRaises(Wordbook.DoesNotExist):
            sessions.build_queue(sessions.MODE_ORDERED, wordbook_id='missing')
        with self.assertRaises(ValueError):
            sessions.build_queue(sessions.MODE_RANDOM)
        with self.assertRaises(ValueError):
            sessions.build_queue(sessions.MODE_ORDERED, wordbook_id=self.wordbook.pk, order='length')

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            sessions.build_queue('everything')

    def test_session_summary(self):
        card = make_card(self.wordbook, 'abandon')
        storage.record_answer(card.pk, True)
        summary = sessions.session_summary([card.pk])
        self.assertEqual(summary['queue_size'], 1)
        self.assertEqual(summary['reviewed_today'], 1)
        self.assertEqual(summary['remaining_to_goal'], 19)


# =============================================================================
# Analytics Tests
# =============================================================================

class AnalyticsStreakTests(TestCase):
    """Tests for current and longest streaks."""

    def setUp(self):
        self.wordbook = make_wordbook()
        self.today = date(2025, 3, 10)

    def _reviewed_on(self, *days_ago):
        for i, offset in enumerate(days_ago):
            card = make_card(self.wordbook, f'word{i}', offset=i)
            make_stats(card, 1, 0, reviewed_at=local_noon(self.today - timedelta(days=offset)))

    def test_no_reviews(self):
        self.assertEqual(analytics.current_streak(self.today), 0)
        self.assertEqual(analytics.longest_streak(), 0)

    def test_gap_breaks_streak(self):
        """Reviews today, yesterday and three days ago: streak 2, longest 2."""
        self._reviewed_on(0, 1, 3)
        self.assertEqual(analytics.current_streak(self.today), 2)
        self.assertEqual(analytics.longest_streak(), 2)

    def test_no_review_today(self):
        self._reviewed_on(1, 2)
        self.assertEqual(analytics.current_streak(self.today), 0)
        self.assertEqual(analytics.longest_streak(), 2)

    def test_longest_streak_in_the_past(self):
        self._reviewed_on(0, 10, 9, 8)
        self.assertEqual(analytics.current_streak(self.today), 1)
        self.assertEqual(analytics.longest_streak(), 3)

    def test_same_day_counts_once(self):
        self._reviewed_on(0, 0, 0)
        self.assertEqual(analytics.current_streak(self.today), 1)
        self.assertEqual(analytics.review_days()[self.today], 3)

    def test_review_calendar_shape(self):
        self._reviewed_on(0)
        calendar = analytics.review_calendar(weeks=8, today=self.today)

        self.assertEqual(len(calendar), 8)
        self.assertTrue(all(len(week) == 7 for week in calendar))
        first = date.fromisoformat(calendar[0][0]['date'])
        self.assertEqual(first.weekday(), 6)  # Sunday
        today_cells = [day for week in calendar for day in week if day['is_today']]
        self.assertEqual(len(today_cells), 1)
        self.assertEqual(today_cells[0]['review_count'], 1)
        self.assertIn(today_cells[0], calendar[-1])


class AnalyticsAccuracyTests(TestCase):
    """Tests for accuracy with time ranges."""

    def setUp(self):
        self.today = date(2025, 3, 10)
        self.wordbook = make_wordbook('Core')
        self.recent = make_card(self.wordbook, 'recent', offset=1)
        self.old = make_card(self.wordbook, 'old', offset=2)
        make_card(self.wordbook, 'never', offset=3)
        make_stats(self.recent, right=1, wrong=7, reviewed_at=local_noon(self.today))
        make_stats(self.old, right=4, wrong=0, reviewed_at=local_noon(self.today - timedelta(days=10)))

    def test_all_time(self):
        result = analytics.overall_accuracy(analytics.RANGE_ALL, self.today)
        self.assertEqual(result, {'accuracy': 42, 'correct': 5, 'wrong': 7, 'attempts': 12})

    def test_seven_days_excludes_older_reviews(self):
        """1 of 8 correct is 12.5%, rounded half up to 13."""
        result = analytics.overall_accuracy(analytics.RANGE_7_DAYS, self.today)
        self.assertEqual(result, {'accuracy': 13, 'correct': 1, 'wrong': 7, 'attempts': 8})

    def test_thirty_days_includes_older_reviews(self):
        result = analytics.overall_accuracy(analytics.RANGE_30_DAYS, self.today)
        self.assertEqual(result['attempts'], 12)

    def test_no_attempts(self):
        CardStats.objects.all().delete()
        result = analytics.overall_accuracy(analytics.RANGE_ALL, self.today)
        self.assertEqual(result['accuracy'], 0)

    def test_unknown_range(self):
        with self.assertRaises(ValueError):
            analytics.overall_accuracy('90days', self.today)

    def test_wordbook_accuracy(self):
        empty = make_wordbook('Empty', offset=5)
        make_card(empty, 'unused')
        rows = analytics.wordbook_accuracy(analytics.RANGE_ALL, self.today)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['wordbook_id'], self.wordbook.pk)
        self.assertEqual(rows[0]['attempts'], 12)

    def test_daily_accuracy_rows(self):
        rows = analytics.daily_accuracy(analytics.RANGE_7_DAYS, self.today)
        self.assertEqual(len(rows), 7)
        self.assertEqual(rows[-1]['date'], self.today.isoformat())
        self.assertEqual(rows[-1]['attempts'], 8)
        self.assertEqual(sum(row['attempts'] for row in rows[:-1]), 0)


class AnalyticsLevelTests(TestCase):
    """Tests for level bucketing and mastery."""

    def test_level_for_keywords(self):
        self.assertEqual(analytics.level_for('TOEFL'), analytics.LEVEL_INTERMEDIATE)
        self.assertEqual(analytics.level_for('IELTS 7.0'), analytics.LEVEL_INTERMEDIATE)
        self.assertEqual(analytics.level_for('國中 1200'), analytics.LEVEL_BEGINNER)
        self.assertEqual(analytics.level_for('GRE'), analytics.LEVEL_ADVANCED)
        self.assertEqual(analytics.level_for('Business'), analytics.LEVEL_ADVANCED)

    def test_missing_level_is_advanced(self):
        self.assertEqual(analytics.level_for(''), analytics.LEVEL_ADVANCED)
        self.assertEqual(analytics.level_for(None), analytics.LEVEL_ADVANCED)

    def test_level_progress(self):
        toefl = make_wordbook('TOEFL', level='TOEFL')
        gre = make_wordbook('GRE', level='GRE', offset=1)
        mastered = make_card(toefl, 'abate', offset=1)
        struggling = make_card(toefl, 'abhor', offset=2)
        make_card(gre, 'obdurate', offset=3)
        make_stats(mastered, right=3, wrong=1)
        make_stats(struggling, right=1, wrong=1)

        progress = analytics.level_progress()
        self.assertEqual(progress, [
            {'level': 'Intermediate', 'total': 2, 'mastered': 1, 'percentage': 50},
            {'level': 'Advanced', 'total': 1, 'mastered': 0, 'percentage': 0},
        ])


class AnalyticsActivityTests(TestCase):
    """Tests for the learned/reviewed activity chart and daily lists."""

    def setUp(self):
        self.today = timezone.localdate()
        self.wordbook = make_wordbook()

    def _card(self, headword, created_days_ago, reviewed_days_ago=None, right=1, wrong=0):
        card = Card.objects.create(
            wordbook=self.wordbook,
            headword=headword,
            created_at=local_noon(self.today - timedelta(days=created_days_ago)),
        )
        if reviewed_days_ago is not None:
            make_stats(card, right, wrong, reviewed_at=local_noon(self.today - timedelta(days=reviewed_days_ago)))
        return card

    def test_daily_buckets(self):
        self._card('same-day', created_days_ago=0, reviewed_days_ago=0)
        self._card('older', created_days_ago=3, reviewed_days_ago=0)

        buckets = analytics.activity_chart(analytics.RANGE_7_DAYS, self.today)
        self.assertEqual(len(buckets), 7)
        self.assertEqual(buckets[-1]['period'], self.today.isoformat())
        self.assertEqual(buckets[-1]['learned'], 1)
        self.assertEqual(buckets[-1]['reviewed'], 1)
        self.assertEqual(buckets[-4]['learned'], 1)

    def test_monthly_buckets(self):
        self._card('old', created_days_ago=70)
        buckets = analytics.activity_chart(analytics.RANGE_ALL, self.today)
        self.assertEqual(buckets[-1]['period'], self.today.strftime('%Y-%m'))
        self.assertEqual(sum(b['learned'] for b in buckets), 1)
        self.assertGreaterEqual(len(buckets), 3)

    def test_weekly_buckets(self):
        buckets = analytics.activity_chart(analytics.RANGE_30_DAYS, self.today)
        self.assertEqual(len(buckets), 5)
        self.assertEqual(date.fromisoformat(buckets[0]['period']).weekday(), 0)

    def test_today_reviewed_split(self):
        self._card('first-time', created_days_ago=1, reviewed_days_ago=0)
        self._card('repeat', created_days_ago=5, reviewed_days_ago=0, right=2, wrong=1)
        self._card('yesterday', created_days_ago=5, reviewed_days_ago=1)

        result = analytics.today_reviewed(self.today)
        self.assertEqual(result['new_count'], 1)
        self.assertEqual(result['review_count'], 1)
        self.assertEqual(result['new'][0]['headword'], 'first-time')
        self.assertFalse(result['goal_met'])

    def test_error_cards(self):
        a = self._card('A', 1, 1, right=5, wrong=5)
        b = self._card('B', 1, 1, right=2, wrong=8)
        self._card('C', 1, 1, right=5, wrong=0)

        cards = analytics.error_cards()
        self.assertEqual([c['card_id'] for c in cards], [b.pk, a.pk])
        self.assertEqual(cards[0]['error_rate'], 80)

    def test_dashboard(self):
        due = self._card('due', 2, 1)
        self._card('new', 0)
        storage.upsert_card_srs(due.pk, due_at=timezone.now() - timedelta(hours=1))

        result = analytics.dashboard()
        self.assertEqual(result['total_cards'], 2)
        self.assertEqual(result['due_count'], 1)
        self.assertEqual(result['new_count'], 1)
        self.assertEqual(result['wordbook_count'], 1)
        self.assertEqual(result['current_streak'], 0)


# =============================================================================
# Backup Tests
# =============================================================================

class BackupTests(TestCase):
    """Tests for full export and import."""

    def setUp(self):
        self.wordbook = storage.create_wordbook('TOEFL Core', level='TOEFL')
        self.card = storage.create_card(
            self.wordbook.pk, 'rescind',
            meanings=[{'part_of_speech': 'verb', 'meaning_zh': '撤銷', 'meaning_en': 'to revoke',
                       'synonyms': ['revoke'], 'antonyms': [], 'examples': []}],
            tags=['legal'],
            created_at=BASE_TIME,
        )
        self.other = storage.create_card(self.wordbook.pk, 'abate', created_at=BASE_TIME + timedelta(minutes=1))
        for correct in [True, True, False, True]:
            storage.record_answer(self.card.pk, correct)
        storage.record_answer(self.other.pk, False)

    def _without_timestamp(self, document):
        document = dict(document)
        document.pop('exported_at')
        return document

    def test_export_shape(self):
        document = backup.export_all_data()
        self.assertEqual(document['version'], 3)
        self.assertEqual(len(document['cards']), 2)
        self.assertEqual(len(document['card_stats']), 2)
        self.assertEqual(len(document['card_srs']), 2)
        self.assertEqual(document['settings']['id'], 'default')
        self.assertRegex(document['card_srs'][0]['due_at'], r'^\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z$')

    def test_round_trip_is_exact(self):
        """Export -> import -> export reproduces every number and timestamp."""
        first = json.loads(json.dumps(backup.export_all_data()))
        backup.import_all_data(first)
        second = json.loads(json.dumps(backup.export_all_data()))
        self.assertEqual(self._without_timestamp(first), self._without_timestamp(second))

    def test_import_replaces_existing_data(self):
        document = backup.export_all_data()
        storage.create_wordbook('Scratch')
        backup.import_all_data(document)
        self.assertEqual(Wordbook.objects.count(), 1)
        self.assertEqual(storage.stats_or_default(self.card.pk).shown_count, 4)

    def test_malformed_import_leaves_store_untouched(self):
        with self.assertRaises(backup.ImportFormatError):
            backup.import_all_data({'wordbooks': 'not a list'})
        with self.assertRaises(backup.ImportFormatError):
            backup.import_all_data([])
        self.assertEqual(Card.objects.count(), 2)

    def test_dangling_reference_rejected(self):
        document = backup.export_all_data()
        document['cards'][0]['wordbook_id'] = 'missing'
        with self.assertRaises(backup.ImportFormatError):
            backup.import_all_data(document)
        self.assertEqual(Card.objects.count(), 2)
        self.assertEqual(CardStats.objects.count(), 2)

    def test_missing_field_rejected(self):
        document = backup.export_all_data()
        del document['card_srs'][0]['due_at']
        with self.assertRaises(backup.ImportFormatError):
            backup.import_all_data(document)
        self.assertEqual(CardSRS.objects.count(), 2)

    def test_legacy_settings_keys(self):
        document = backup.export_all_data()
        document['settings'] = {'id': 'default', 'errorCardsTopN': 30, 'daily_goal': 40}
        backup.import_all_data(document)
        settings = storage.get_user_settings()
        self.assertEqual(settings.error_top_n, 30)
        self.assertEqual(settings.daily_goal, 40)


# =============================================================================
# CSV Tests
# =============================================================================

class CSVParseTests(TestCase):
    """Tests for CSV parsing and header aliases."""

    def test_aliases(self):
        text = (
            'word,pronunciation,pos,chinese,english,tags,examples\n'
            'abandon,/əˈbændən/,verb,放棄,to leave behind,exam|core,They abandon ship.|He abandoned hope.\n'
        )
        rows = csv_io.parse_csv(text)
        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual(row.headword, 'abandon')
        self.assertEqual(row.phonetic, '/əˈbændən/')
        self.assertEqual(row.part_of_speech, 'verb')
        self.assertEqual(row.meaning_zh, '放棄')
        self.assertEqual(row.meaning_en, 'to leave behind')
        self.assertEqual(row.tags, ['exam', 'core'])
        self.assertEqual(len(row.examples), 2)

    def test_first_alias_wins(self):
        rows = csv_io.parse_csv('word,headword\nignored,kept\n')
        self.assertEqual(rows[0].headword, 'kept')

    def test_rows_without_headword_skipped(self):
        rows = csv_io.parse_csv('headword,meaning_zh\n,空白\nabate,減少\n\n')
        self.assertEqual([r.headword for r in rows], ['abate'])

    def test_quoted_values_and_bom(self):
        rows = csv_io.parse_csv('\ufeffheadword,meaning_en\nabate,"to lessen, reduce"\n')
        self.assertEqual(rows[0].meaning_en, 'to lessen, reduce')

    def test_no_headword_column(self):
        self.assertEqual(csv_io.parse_csv('meaning_zh\n放棄\n'), [])
        self.assertEqual(csv_io.parse_csv(''), [])


class CSVExportImportTests(TestCase):
    """Tests for writing CSV and creating cards from rows."""

    def setUp(self):
        self.wordbook = make_wordbook()

    def test_cards_to_csv(self):
        make_card(
            self.wordbook, 'abate',
            meanings=[{'part_of_speech': 'verb', 'meaning_zh': '減少', 'meaning_en': 'to lessen, reduce',
                       'synonyms': ['subside', 'wane'], 'antonyms': [], 'examples': []}],
        )
        text = csv_io.cards_to_csv(self.wordbook.cards.all())
        self.assertTrue(text.startswith('\ufeff'))
        lines = text.lstrip('\ufeff').splitlines()
        self.assertEqual(lines[0], ','.join(csv_io.EXPORT_HEADER))
        self.assertIn('"to lessen, reduce"', lines[1])
        self.assertIn('subside|wane', lines[1])

    def test_empty_export(self):
        self.assertEqual(csv_io.cards_to_csv([]), '')

    def test_export_parses_back(self):
        make_card(self.wordbook, 'abate', phonetic='/əˈbeɪt/', tags=['core'])
        rows = csv_io.parse_csv(csv_io.cards_to_csv(self.wordbook.cards.all()))
        self.assertEqual(rows[0].headword, 'abate')
        self.assertEqual(rows[0].phonetic, '/əˈbeɪt/')
        self.assertEqual(rows[0].tags, ['core'])

    def test_import_rows(self):
        rows = csv_io.parse_csv('headword,meaning_zh,pos\nabate,減少,verb\nabhor,厭惡,verb\n')
        result = csv_io.import_csv_rows(self.wordbook, rows)
        self.assertEqual(result.created, 2)
        self.assertEqual(result.failed, 0)
        card = self.wordbook.cards.get(headword='abate')
        self.assertEqual(card.meanings[0]['meaning_zh'], '減少')
        self.assertEqual(card.meanings[0]['synonyms'], [])

    def test_failed_row_does_not_stop_import(self):
        rows = [csv_io.CSVRow(headword='x' * 300), csv_io.CSVRow(headword='abate')]
        result = csv_io.import_csv_rows(self.wordbook, rows)
        self.assertEqual(result.created, 1)
        self.assertEqual(result.failed, 1)
        self.assertEqual(len(result.errors), 1)


# =============================================================================
# Gemini Tests
# =============================================================================

def gemini_response(text, ok=True, status_code=200):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = {'candidates': [{'content': {'parts': [{'text': text}]}}]}
    return response


DETAILS_JSON = json.dumps([
    {
        'headword': 'rescind',
        'part_of_speech': 'verb',
        'definition_en': 'to cancel officially',
        'definition_zh': '撤銷',
        'synonyms': ['revoke'],
        'antonyms': ['enact'],
        'examples': ['The board rescinded the policy.'],
        'ipa': '/rɪˈsɪnd/',
    },
    {'headword': 'abate', 'definition_en': 'to lessen'},
])


class GeminiClientTests(TestCase):
    """Tests for generate_word_details with a mocked HTTP layer."""

    @patch('vocab.gemini.requests.post')
    def test_parses_fenced_json(self, mock_post):
        mock_post.return_value = gemini_response(f"```json\n{DETAILS_JSON}\n```")
        details = gemini.generate_word_details(['rescind', 'abate'], api_key='key')

        self.assertEqual([d.headword for d in details], ['rescind', 'abate'])
        self.assertEqual(details[0].ipa, '/rɪˈsɪnd/')
        self.assertEqual(details[1].synonyms, [])
        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs['params'], {'key': 'key'})
        self.assertIn('rescind, abate', kwargs['json']['contents'][0]['parts'][0]['text'])

    @override_settings(GEMINI_TIMEOUT=5)
    @patch('vocab.gemini.requests.post')
    def test_uses_configured_timeout(self, mock_post):
        mock_post.return_value = gemini_response(DETAILS_JSON)
        gemini.generate_word_details(['rescind'], api_key='key')
        self.assertEqual(mock_post.call_args.kwargs['timeout'], 5)

    @patch('vocab.gemini.requests.post')
    def test_http_error(self, mock_post):
        response = MagicMock(ok=False, status_code=403)
        response.json.return_value = {'error': {'message': 'API key not valid'}}
        mock_post.return_value = response
        with self.assertRaisesMessage(gemini.WordDetailError, 'API key not valid'):
            gemini.generate_word_details(['rescind'], api_key='key')

    def test_word_detail_list_fields(self):
        detail = gemini.WordDetail.from_dict({'headword': 'rescind', 'synonyms': 'revoke', 'antonyms': None})
        self.assertEqual(detail.synonyms, ['revoke'])
        self.assertEqual(detail.antonyms, [])
        for bad in [5, {'a': 1}, ['ok', 3]]:
            with self.assertRaises(gemini.WordDetailError):
                gemini.WordDetail.from_dict({'headword': 'rescind', 'examples': bad})

    @patch('vocab.gemini.requests.post')
    def test_http_error_with_unexpected_body(self, mock_post):
        response = MagicMock(ok=False, status_code=500)
        response.json.return_value = ['not', 'an', 'object']
        mock_post.return_value = response
        with self.assertRaisesMessage(gemini.WordDetailError, 'Gemini API error: 500'):
            gemini.generate_word_details(['rescind'], api_key='key')

    @patch('vocab.gemini.requests.post')
    def test_unparsable_answer(self, mock_post):
        mock_post.return_value = gemini_response('Sorry, I cannot help with that.')
        with self.assertRaises(gemini.WordDetailError):
            gemini.generate_word_details(['rescind'], api_key='key')

    @patch('vocab.gemini.requests.post')
    def test_empty_answer(self, mock_post):
        mock_post.return_value = gemini_response('')
        with self.assertRaises(gemini.WordDetailError):
            gemini.generate_word_details(['rescind'], api_key='key')

    @patch('vocab.gemini.requests.post')
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('unreachable')
        with self.assertRaises(gemini.WordDetailError):
            gemini.generate_word_details(['rescind'], api_key='key')

    def test_missing_key(self):
        with self.assertRaises(gemini.WordDetailError):
            gemini.generate_word_details(['rescind'], api_key='')

    @override_settings(GEMINI_API_KEY='env-key')
    def test_resolve_api_key(self):
        self.assertEqual(gemini.resolve_api_key(), 'env-key')
        storage.update_user_settings(gemini_api_key='user-key')
        self.assertEqual(gemini.resolve_api_key(), 'user-key')

    @override_settings(GEMINI_API_KEY='')
    def test_resolve_api_key_missing(self):
        with self.assertRaises(gemini.WordDetailError):
            gemini.resolve_api_key()


class GeminiBatchTests(TestCase):
    """Batch operations keep going when one card or batch fails."""

    def setUp(self):
        self.wordbook = make_wordbook(level='TOEFL')
        self.first = make_card(self.wordbook, 'rescind', offset=1)
        self.second = make_card(self.wordbook, 'abate', offset=2)

    @patch('vocab.gemini.requests.post')
    def test_regenerate_tolerates_failure(self, mock_post):
        mock_post.side_effect = [gemini_response(DETAILS_JSON), requests.Timeout('slow')]

        with self.assertLogs('vocab.gemini', level='ERROR'):
            result = gemini.regenerate_cards([self.first, self.second], api_key='key')

        self.assertEqual((result.succeeded, result.failed), (1, 1))
        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(self.first.phonetic, '/rɪˈsɪnd/')
        self.assertEqual(self.first.meanings[0]['meaning_zh'], '撤銷')
        self.assertEqual(self.second.meanings, [])

    @patch('vocab.gemini.requests.post')
    def test_regenerate_tolerates_malformed_answer(self, mock_post):
        """A field of the wrong type fails only its own card."""
        malformed = json.dumps([{'headword': 'rescind', 'synonyms': 5}])
        valid = json.dumps([{'headword': 'abate', 'definition_en': 'to lessen', 'synonyms': ['wane']}])
        mock_post.side_effect = [gemini_response(malformed), gemini_response(valid)]

        with self.assertLogs('vocab.gemini', level='ERROR'):
            result = gemini.regenerate_cards([self.first, self.second], api_key='key')

        self.assertEqual((result.succeeded, result.failed), (1, 1))
        self.assertIn('synonyms', result.errors[0])
        self.second.refresh_from_db()
        self.assertEqual(self.second.meanings[0]['synonyms'], ['wane'])

    @patch('vocab.gemini.requests.post')
    def test_generate_wordbook_in_batches(self, mock_post):
        mock_post.side_effect = [gemini_response(DETAILS_JSON), requests.ConnectionError('down')]

        with self.assertLogs('vocab.gemini', level='ERROR'):
            wordbook, result = gemini.generate_wordbook(
                'Generated', ['rescind', 'abate', 'abhor'], api_key='key', level='GRE', batch_size=2,
            )

        self.assertEqual(result.succeeded, 2)
        self.assertEqual(result.failed, 1)
        self.assertEqual(mock_post.call_count, 2)
        self.assertEqual(sorted(wordbook.cards.values_list('headword', flat=True)), ['abate', 'rescind'])


# =============================================================================
# Form Tests
# =============================================================================

class ReviewRequestFormTests(TestCase):
    """Tests for review query validation."""

    def test_valid_frequent_errors(self):
        form = ReviewRequestForm({'mode': 'frequent-errors', 'filter': 'min-errors', 'minErrors': '4'})
        self.assertTrue(form.is_valid())
        self.assertEqual(form.error_filter(storage.get_user_settings()), sessions.ErrorFilter('min-errors', 4))

    def test_out_of_range_parameter(self):
        form = ReviewRequestForm({'mode': 'frequent-errors', 'filter': 'top-n', 'topN': '101'})
        self.assertFalse(form.is_valid())
        self.assertIn('topN', form.errors)

    def test_filter_defaults_to_settings(self):
        storage.update_user_settings(error_filter_mode='min-error-rate', error_min_error_rate=70)
        form = ReviewRequestForm({'mode': 'frequent-errors'})
        self.assertTrue(form.is_valid())
        self.assertEqual(form.error_filter(storage.get_user_settings()), sessions.ErrorFilter('min-error-rate', 70))

    def test_wordbook_required_for_ordered(self):
        form = ReviewRequestForm({'mode': 'ordered'})
        self.assertFalse(form.is_valid())
        self.assertIn('wordbook', form.errors)


class UserSettingsFormTests(TestCase):
    """Tests for settings validation."""

    def _data(self, **overrides):
        data = {
            'daily_goal': 20, 'theme': 'system', 'tts_enabled': True, 'tts_voice': '',
            'tts_auto_play': False, 'display_direction': '', 'review_mode': 'srs',
            'error_filter_mode': 'top-n', 'error_top_n': 20, 'error_min_errors': 3,
            'error_min_error_rate': 50, 'gemini_api_key': '',
        }
        data.update(overrides)
        return data

    def test_valid(self):
        form = UserSettingsForm(data=self._data(), instance=storage.get_user_settings())
        self.assertTrue(form.is_valid(), form.errors)

    def test_filter_ranges(self):
        for field, value in [('error_top_n', 0), ('error_min_errors', 51), ('error_min_error_rate', 101)]:
            form = UserSettingsForm(data=self._data(**{field: value}), instance=storage.get_user_settings())
            self.assertFalse(form.is_valid())
            self.assertIn(field, form.errors)


# =============================================================================
# View Tests
# =============================================================================

class ReviewViewTests(TestCase):
    """Tests for the review queue and answer endpoints."""

    def setUp(self):
        self.client = Client()
        self.wordbook = make_wordbook()
        self.a = make_card(self.wordbook, 'A', offset=1)
        self.b = make_card(self.wordbook, 'B', offset=2)
        make_stats(self.a, right=5, wrong=5)
        make_stats(self.b, right=2, wrong=8)

    def test_frequent_errors_queue(self):
        response = self.client.get(reverse('review_session'), {'mode': 'frequent-errors'})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([c['id'] for c in data['cards']], [self.b.pk, self.a.pk])
        self.assertEqual(data['cards'][0]['stats']['error_rate'], 80)
        self.assertEqual(data['summary']['queue_size'], 2)

    def test_queue_loads_population_once(self):
        with patch('vocab.storage.load_population', wraps=storage.load_population) as load:
            response = self.client.get(reverse('review_session'), {'mode': 'frequent-errors'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(load.call_count, 1)
        self.assertEqual(len(response.json()['cards']), 2)

    def test_select_records_matches_build_queue(self):
        records = sessions.select_records(sessions.MODE_FREQUENT_ERRORS)
        self.assertEqual([r.card.pk for r in records], sessions.build_queue(sessions.MODE_FREQUENT_ERRORS))

    def test_empty_queue_is_ok(self):
        response = self.client.get(reverse('review_session'), {'mode': 'due'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['cards'], [])

    def test_invalid_parameters(self):
        for params in [
            {'mode': 'bogus'},
            {'mode': 'frequent-errors', 'filter': 'top-n', 'topN': '0'},
            {'mode': 'frequent-errors', 'filter': 'min-errors', 'minErrors': 'many'},
            {'mode': 'ordered'},
        ]:
            response = self.client.get(reverse('review_session'), params)
            self.assertEqual(response.status_code, 400, params)
            self.assertIn('error', response.json())

    def test_missing_wordbook(self):
        response = self.client.get(reverse('review_session'), {'mode': 'ordered', 'wordbook': 'missing'})
        self.assertEqual(response.status_code, 404)

    def test_ordered_wordbook_queue(self):
        response = self.client.get(
            reverse('review_session'),
            {'mode': 'ordered', 'wordbook': self.wordbook.pk, 'order': 'alphabetical'},
        )
        self.assertEqual([c['headword'] for c in response.json()['cards']], ['A', 'B'])

    def test_record_answer(self):
        card = make_card(self.wordbook, 'fresh', offset=3)
        response = self.client.post(
            reverse('review_card', args=[card.pk]),
            data=json.dumps({'correct': True}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['quality'], 5)
        self.assertEqual(data['srs']['interval_days'], 1)
        self.assertEqual(data['stats']['shown_count'], 1)
        self.assertEqual(data['reviewed_today'], 1)

    def test_record_answer_requires_boolean(self):
        response = self.client.post(
            reverse('review_card', args=[self.a.pk]),
            data=json.dumps({'correct': 'yes'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(CardStats.objects.get(card=self.a).shown_count, 10)

    def test_record_answer_invalid_json(self):
        response = self.client.post(
            reverse('review_card', args=[self.a.pk]),
            data='{ invalid json }',
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)

    def test_record_answer_missing_card(self):
        response = self.client.post(
            reverse('review_card', args=['missing']),
            data=json.dumps({'correct': True}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 404)

    def test_answer_requires_post(self):
        response = self.client.get(reverse('review_card', args=[self.a.pk]))
        self.assertEqual(response.status_code, 405)


class WordbookViewTests(TestCase):
    """Tests for wordbook and card CRUD endpoints."""

    def setUp(self):
        self.client = Client()

    def _post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_create_and_list(self):
        response = self._post(reverse('wordbook_list'), {'name': 'TOEFL Core', 'level': 'TOEFL'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['level'], 'TOEFL')

        response = self.client.get(reverse('wordbook_list'))
        self.assertEqual(len(response.json()['wordbooks']), 1)
        self.assertEqual(response.json()['wordbooks'][0]['card_count'], 0)

    def test_create_requires_name(self):
        response = self._post(reverse('wordbook_list'), {'level': 'TOEFL'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('name', response.json()['errors'])

    def test_update_keeps_unsent_fields(self):
        wordbook = storage.create_wordbook('Old', description='keep me', level='GRE')
        response = self._post(reverse('wordbook_detail', args=[wordbook.pk]), {'name': 'New'})
        self.assertEqual(response.status_code, 200)
        wordbook.refresh_from_db()
        self.assertEqual(wordbook.name, 'New')
        self.assertEqual(wordbook.description, 'keep me')

    def test_missing_wordbook(self):
        self.assertEqual(self.client.get(reverse('wordbook_detail', args=['missing'])).status_code, 404)
        self.assertEqual(self.client.delete(reverse('wordbook_detail', args=['missing'])).status_code, 404)

    def test_delete(self):
        wordbook = storage.create_wordbook('Doomed')
        response = self.client.delete(reverse('wordbook_detail', args=[wordbook.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Wordbook.objects.exists())

    def test_card_create_and_detail(self):
        wordbook = storage.create_wordbook('Core')
        response = self._post(reverse('card_create', args=[wordbook.pk]), {
            'headword': 'abandon',
            'meanings': [{'part_of_speech': 'verb', 'meaning_zh': '放棄'}],
            'tags': ['core'],
        })
        self.assertEqual(response.status_code, 201)
        card_id = response.json()['id']
        self.assertEqual(response.json()['meanings'][0]['synonyms'], [])

        detail = self.client.get(reverse('card_detail', args=[card_id])).json()
        self.assertEqual(detail['headword'], 'abandon')
        self.assertEqual(detail['stats']['shown_count'], 0)
        self.assertIsNone(detail['srs'])

        listing = self.client.get(reverse('wordbook_detail', args=[wordbook.pk])).json()
        self.assertEqual([c['id'] for c in listing['cards']], [card_id])

    def test_card_validation(self):
        wordbook = storage.create_wordbook('Core')
        card = storage.create_card(wordbook.pk, 'abandon')
        for payload in [
            {'headword': '   '},
            {'meanings': [{'meaning_zh': '放棄', 'colour': 'red'}]},
            {'meanings': ['not an object']},
            {'tags': [1, 2]},
        ]:
            response = self._post(reverse('card_detail', args=[card.pk]), payload)
            self.assertEqual(response.status_code, 400, payload)

    def test_card_update_and_delete(self):
        wordbook = storage.create_wordbook('Core')
        card = storage.create_card(wordbook.pk, 'abandon')
        response = self._post(reverse('card_detail', args=[card.pk]), {'star': True})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['star'])

        self.assertEqual(self.client.delete(reverse('card_detail', args=[card.pk])).status_code, 200)
        self.assertEqual(self.client.get(reverse('card_detail', args=[card.pk])).status_code, 404)

    def test_reset_requires_matching_name(self):
        wordbook = storage.create_wordbook('Core')
        card = storage.create_card(wordbook.pk, 'abandon')
        storage.record_answer(card.pk, True)

        response = self._post(reverse('wordbook_reset', args=[wordbook.pk]), {'confirm_name': 'Wrong'})
        self.assertEqual(response.status_code, 400)

        for bad in [None, 42, ['Core']]:
            response = self._post(reverse('wordbook_reset', args=[wordbook.pk]), {'confirm_name': bad})
            self.assertEqual(response.status_code, 400, bad)
        response = self._post(reverse('wordbook_reset', args=[wordbook.pk]), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(storage.stats_or_default(card.pk).shown_count, 1)

        response = self._post(reverse('wordbook_reset', args=[wordbook.pk]), {'confirm_name': 'Core'})
        self.assertEqual(response.json()['card_count'], 1)
        self.assertEqual(storage.stats_or_default(card.pk).shown_count, 0)

    def test_csv_round_trip(self):
        wordbook = storage.create_wordbook('Core')
        response = self.client.post(
            reverse('wordbook_csv', args=[wordbook.pk]),
            data='word,chinese\nabate,減少\nabhor,厭惡\n'.encode('utf-8'),
            content_type='text/csv',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['created'], 2)

        response = self.client.get(reverse('wordbook_csv', args=[wordbook.pk]))
        self.assertEqual(response['Content-Type'], 'text/csv; charset=utf-8')
        self.assertIn('abhor', response.content.decode('utf-8'))

    def test_csv_without_headword(self):
        wordbook = storage.create_wordbook('Core')
        response = self.client.post(
            reverse('wordbook_csv', args=[wordbook.pk]),
            data=b'chinese\n\xe6\x94\xbe\n',
            content_type='text/csv',
        )
        self.assertEqual(response.status_code, 400)

    @override_settings(GEMINI_API_KEY='')
    def test_generate_without_key(self):
        response = self._post(reverse('wordbook_generate'), {'name': 'AI', 'words': ['abate']})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(Wordbook.objects.exists())

    @override_settings(GEMINI_API_KEY='key')
    @patch('vocab.gemini.requests.post')
    def test_generate(self, mock_post):
        mock_post.return_value = gemini_response(DETAILS_JSON)
        response = self._post(reverse('wordbook_generate'), {
            'name': 'AI', 'level': 'TOEFL', 'words': ['rescind', 'abate'],
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['card_count'], 2)
        self.assertEqual(response.json()['failed'], 0)


class StatisticsViewTests(TestCase):
    """Tests for the dashboard and statistics endpoints."""

    def setUp(self):
        self.client = Client()
        wordbook = make_wordbook(level='TOEFL')
        card = make_card(wordbook, 'abate')
        storage.record_answer(card.pk, True)

    def test_dashboard(self):
        data = self.client.get(reverse('dashboard')).json()
        self.assertEqual(data['total_cards'], 1)
        self.assertEqual(data['reviewed_today'], 1)
        self.assertEqual(data['current_streak'], 1)
        self.assertEqual(data['accuracy'], 100)

    def test_accuracy_ranges(self):
        for time_range in analytics.RANGES:
            response = self.client.get(reverse('statistics_accuracy'), {'range': time_range})
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()['overall']['attempts'], 1)

    def test_bad_range(self):
        self.assertEqual(self.client.get(reverse('statistics_accuracy'), {'range': 'year'}).status_code, 400)
        self.assertEqual(self.client.get(reverse('statistics_activity'), {'range': 'year'}).status_code, 400)

    def test_other_statistics(self):
        self.assertEqual(self.client.get(reverse('statistics_streak')).json()['current_streak'], 1)
        self.assertEqual(self.client.get(reverse('statistics_levels')).json()['levels'][0]['level'], 'Intermediate')
        self.assertEqual(self.client.get(reverse('statistics_today')).json()['total'], 1)
        self.assertEqual(self.client.get(reverse('statistics_errors')).json()['count'], 0)
        self.assertEqual(len(self.client.get(reverse('statistics_activity')).json()['buckets']), 7)

    def test_health(self):
        response = self.client.get(reverse('health_check'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')


class BackupSettingsViewTests(TestCase):
    """Tests for export/import and settings endpoints."""

    def setUp(self):
        self.client = Client()
        wordbook = make_wordbook()
        storage.record_answer(make_card(wordbook, 'abate').pk, False)

    def test_export_and_import(self):
        response = self.client.get(reverse('export_data'))
        self.assertIn('attachment', response['Content-Disposition'])
        document = json.loads(response.content)
        self.assertEqual(document['version'], 3)

        Wordbook.objects.all().delete()
        response = self.client.post(reverse('import_data'), data=json.dumps(document), content_type='application/json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['imported']['cards'], 1)
        self.assertEqual(CardStats.objects.get().wrong_count, 1)

    def test_import_invalid(self):
        response = self.client.post(reverse('import_data'), data='{ invalid', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        response = self.client.post(reverse('import_data'), data=json.dumps({'cards': 5}), content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Card.objects.count(), 1)

    def test_settings(self):
        data = self.client.get(reverse('settings')).json()
        self.assertEqual(data['daily_goal'], 20)
        self.assertFalse(data['gemini_api_key'])

        response = self.client.post(
            reverse('settings'),
            data=json.dumps({'daily_goal': 35, 'gemini_api_key': 'secret'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['daily_goal'], 35)
        self.assertTrue(response.json()['gemini_api_key'])
        self.assertEqual(storage.get_user_settings().error_top_n, 20)

    def test_settings_out_of_range(self):
        response = self.client.post(
            reverse('settings'),
            data=json.dumps({'error_top_n': 0}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)


# =============================================================================
# Management Command Tests
# =============================================================================

class BackupCommandTests(TestCase):
    """Tests for export_data and import_data."""

    def setUp(self):
        wordbook = make_wordbook()
        storage.record_answer(make_card(wordbook, 'abate').pk, True)

    def test_export_to_stdout(self):
        out = StringIO()
        call_command('export_data', stdout=out)
        document = json.loads(out.getvalue())
        self.assertEqual(len(document['cards']), 1)

    def test_export_then_import_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'backup.json')
            call_command('export_data', path, stdout=StringIO())
            Wordbook.objects.all().delete()

            out = StringIO()
            call_command('import_data', path, stdout=out)
        self.assertIn('Imported 1 wordbook(s)', out.getvalue())
        self.assertEqual(CardStats.objects.get().right_count, 1)

    def test_import_dry_run(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'backup.json')
            call_command('export_data', path, stdout=StringIO())
            Wordbook.objects.all().delete()

            out = StringIO()
            call_command('import_data', path, '--dry-run', stdout=out)
        self.assertIn('[DRY RUN]', out.getvalue())
        self.assertFalse(Wordbook.objects.exists())

    def test_import_missing_file(self):
        with self.assertRaises(CommandError):
            call_command('import_data', '/nonexistent/backup.json')


class CSVCommandTests(TestCase):
    """Tests for import_csv."""

    def _write(self, tmp, content):
        path = os.path.join(tmp, 'words.csv')
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def test_import_into_new_wordbook(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(tmp, 'headword,meaning_zh\nabate,減少\n')
            out = StringIO()
            call_command('import_csv', path, '--name', 'TOEFL', '--level', 'TOEFL', stdout=out)

        wordbook = Wordbook.objects.get()
        self.assertEqual(wordbook.level, 'TOEFL')
        self.assertEqual(wordbook.cards.count(), 1)
        self.assertIn('Imported 1 card(s)', out.getvalue())

    def test_import_into_missing_wordbook(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(tmp, 'headword\nabate\n')
            with self.assertRaises(CommandError):
                call_command('import_csv', path, '--wordbook', 'missing')

    def test_dry_run(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = self._write(tmp, 'word\nabate\nabhor\n')
            out = StringIO()
            call_command('import_csv', path, '--name', 'Core', '--dry-run', stdout=out)
        self.assertIn('Would import 2 card(s)', out.getvalue())
        self.assertFalse(Wordbook.objects.exists())


class RegenerateCommandTests(TestCase):
    """Tests for regenerate_cards."""

    def setUp(self):
        self.wordbook = make_wordbook(level='TOEFL')
        make_card(self.wordbook, 'rescind', offset=1)
        make_card(self.wordbook, 'abate', offset=2, meanings=[{'meaning_zh': '減少'}])

    def test_dry_run_only_empty(self):
        out = StringIO()
        call_command('regenerate_cards', '--wordbook', self.wordbook.pk, '--only-empty', '--dry-run', stdout=out)
        self.assertIn('rescind', out.getvalue())
        self.assertNotIn('abate', out.getvalue())

    def test_missing_wordbook(self):
        with self.assertRaises(CommandError):
            call_command('regenerate_cards', '--wordbook', 'missing')

    @override_settings(GEMINI_API_KEY='')
    def test_missing_key(self):
        with self.assertRaises(CommandError):
            call_command('regenerate_cards', '--wordbook', self.wordbook.pk)

    @override_settings(GEMINI_API_KEY='key')
    @patch('vocab.gemini.requests.post')
    def test_regenerates(self, mock_post):
        mock_post.return_value = gemini_response(DETAILS_JSON)
        out = StringIO()
        call_command('regenerate_cards', '--wordbook', self.wordbook.pk, '--only-empty', stdout=out)
        self.assertIn('Regenerated 1 card(s), 0 failed', out.getvalue())
        self.assertEqual(Card.objects.get(headword='rescind').phonetic, '/rɪˈsɪnd/')
