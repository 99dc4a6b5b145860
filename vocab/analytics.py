"""
Statistics derived from the stored card stats.

Every figure here is recomputed from the card population on request; nothing
is cached or written back. Day boundaries are local midnight in the active
Django time zone.

Percentages are rounded half up, so 50.5% shows as 51%, never 50%.
"""

from collections import Counter, defaultdict
from datetime import datetime, time, timedelta

from django.utils import timezone

from . import srs, storage
from .sessions import rank_by_error_rate


RANGE_7_DAYS = '7days'
RANGE_30_DAYS = '30days'
RANGE_ALL = 'all'
RANGES = (RANGE_7_DAYS, RANGE_30_DAYS, RANGE_ALL)

_RANGE_DAYS = {RANGE_7_DAYS: 7, RANGE_30_DAYS: 30, RANGE_ALL: None}
_DAILY_ROWS = {RANGE_7_DAYS: 7, RANGE_30_DAYS: 30, RANGE_ALL: 90}

LEVEL_BEGINNER = 'Beginner'
LEVEL_INTERMEDIATE = 'Intermediate'
LEVEL_ADVANCED = 'Advanced'

# Checked in order; a level text matching none of these is Advanced
LEVEL_KEYWORDS = (
    (LEVEL_BEGINNER, ('國小', '國中', '高中', '7000單')),
    (LEVEL_INTERMEDIATE, ('大學', 'TOEFL', 'IELTS')),
    (LEVEL_ADVANCED, ('GRE',)),
)
LEVELS = (LEVEL_BEGINNER, LEVEL_INTERMEDIATE, LEVEL_ADVANCED)


def _records(records):
    return storage.load_population() if records is None else records


def _today(today):
    return timezone.localdate() if today is None else today


def local_day(value):
    return timezone.localdate(value)


def local_midnight(day):
    return timezone.make_aware(datetime.combine(day, time.min))


def percentage(part, whole):
    if whole == 0:
        return 0
    return srs.round_half_up(part / whole * 100)


def range_start(time_range, today=None):
    """Local midnight N days before today, or None for the whole history."""
    if time_range not in _RANGE_DAYS:
        raise ValueError(f"Unknown time range {time_range!r}")
    days = _RANGE_DAYS[time_range]
    if days is None:
        return None
    return local_midnight(_today(today) - timedelta(days=days))


def _in_range(stats, start):
    if start is None:
        return True
    return stats.last_reviewed_at is not None and stats.last_reviewed_at >= start


def accuracy_figures(correct, wrong):
    attempts = correct + wrong
    return {
        'accuracy': percentage(correct, attempts),
        'correct': correct,
        'wrong': wrong,
        'attempts': attempts,
    }


# =============================================================================
# Accuracy
# =============================================================================

def overall_accuracy(time_range=RANGE_ALL, today=None, records=None):
    """Right/wrong totals over cards last reviewed inside the range."""
    start = range_start(time_range, today)
    correct = wrong = 0
    for record in _records(records):
        if _in_range(record.stats, start):
            correct += record.stats.right_count
            wrong += record.stats.wrong_count
    return accuracy_figures(correct, wrong)


def wordbook_accuracy(time_range=RANGE_ALL, today=None, records=None):
    """Accuracy per wordbook with at least one attempt, most accurate first."""
    start = range_start(time_range, today)
    totals = {}
    for record in _records(records):
        if not _in_range(record.stats, start):
            continue
        wordbook = record.card.wordbook
        correct, wrong = totals.get(wordbook.pk, (0, 0))
        totals[wordbook.pk] = (correct + record.stats.right_count, wrong + record.stats.wrong_count)

    rows = []
    for wordbook in storage.get_all_wordbooks():
        correct, wrong = totals.get(wordbook.pk, (0, 0))
        if correct + wrong == 0:
            continue
        row = {'wordbook_id': wordbook.pk, 'name': wordbook.name}
        row.update(accuracy_figures(correct, wrong))
        rows.append(row)
    return sorted(rows, key=lambda row: -row['accuracy'])


def daily_accuracy(time_range=RANGE_7_DAYS, today=None, records=None):
    """
    One row per local day, oldest first, for the last 7, 30 or 90 days.

    A card's whole right/wrong history is attributed to the day of its last
    review.
    """
    today = _today(today)
    start = range_start(time_range, today)
    per_day = defaultdict(lambda: [0, 0])
    for record in _records(records):
        stats = record.stats
        if stats.last_reviewed_at is None or not _in_range(stats, start):
            continue
        tally = per_day[local_day(stats.last_reviewed_at)]
        tally[0] += stats.right_count
        tally[1] += stats.wrong_count

    rows = []
    for offset in range(_DAILY_ROWS[time_range] - 1, -1, -1):
        day = today - timedelta(days=offset)
        correct, wrong = per_day.get(day, (0, 0))
        row = {'date': day.isoformat()}
        row.update(accuracy_figures(correct, wrong))
        rows.append(row)
    return rows


# =============================================================================
# Streaks
# =============================================================================

def review_days(records=None):
    """Number of cards last reviewed on each local day."""
    return Counter(
        local_day(record.stats.last_reviewed_at)
        for record in _records(records)
        if record.stats.last_reviewed_at is not None
    )


def current_streak(today=None, records=None):
    """Consecutive review days ending today; 0 if nothing was reviewed today."""
    days = review_days(records)
    day = _today(today)
    streak = 0
    while day in days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak(records=None):
    longest = run = 0
    previous = None
    for day in sorted(review_days(records)):
        if previous is not None and (day - previous).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def review_calendar(weeks=8, today=None, records=None):
    """
    Sunday-first weeks of daily review counts, the last row being this week.

    Returns a list of weeks, each a list of seven day dicts.
    """
    today = _today(today)
    days = review_days(records)
    this_sunday = today - timedelta(days=(today.weekday() + 1) % 7)
    start = this_sunday - timedelta(weeks=weeks - 1)

    calendar = []
    for week in range(weeks):
        row = []
        for offset in range(7):
            day = start + timedelta(days=week * 7 + offset)
            row.append({
                'date': day.isoformat(),
                'review_count': days.get(day, 0),
                'is_today': day == today,
                'is_future': day > today,
            })
        calendar.append(row)
    return calendar


def streak_summary(today=None, records=None):
    records = _records(records)
    return {
        'current_streak': current_streak(today, records),
        'longest_streak': longest_streak(records),
        'total_days': len(review_days(records)),
        'calendar': review_calendar(today=today, records=records),
    }


# =============================================================================
# Activity
# =============================================================================

def _bucket_keys(time_range, today, records):
    """Ordered bucket keys plus the function mapping a local day to its key."""
    if time_range == RANGE_7_DAYS:
        keys = [today - timedelta(days=offset) for offset in range(6, -1, -1)]
        return keys, lambda day: day

    if time_range == RANGE_30_DAYS:
        def week_of(day):
            return day - timedelta(days=day.weekday())
        this_week = week_of(today)
        keys = [this_week - timedelta(weeks=offset) for offset in range(4, -1, -1)]
        return keys, week_of

    if time_range == RANGE_ALL:
        def month_of(day):
            return day.replace(day=1)
        first = min((local_day(r.card.created_at) for r in records), default=today)
        keys = []
        month = month_of(min(first, today))
        while month <= today:
            keys.append(month)
            month = (month + timedelta(days=32)).replace(day=1)
        return keys, month_of

    raise ValueError(f"Unknown time range {time_range!r}")


def activity_chart(time_range=RANGE_7_DAYS, today=None, records=None):
    """
    Cards learned and reviewed per bucket.

    Buckets are days for 7days, Monday weeks for 30days and calendar months
    for all. A card counts as learned in the bucket it was created in and as
    reviewed in the bucket of its last review, unless both are the same
    bucket.
    """
    today = _today(today)
    records = _records(records)
    keys, bucket_of = _bucket_keys(time_range, today, records)
    learned = {key: set() for key in keys}
    reviewed = {key: set() for key in keys}

    for record in records:
        created = bucket_of(local_day(record.card.created_at))
        if created in learned:
            learned[created].add(record.card.pk)
        if record.stats.last_reviewed_at is None:
            continue
        last = bucket_of(local_day(record.stats.last_reviewed_at))
        if last in reviewed and last != created:
            reviewed[last].add(record.card.pk)

    label = (lambda key: key.strftime('%Y-%m')) if time_range == RANGE_ALL else (lambda key: key.isoformat())
    return [
        {'period': label(key), 'learned': len(learned[key]), 'reviewed': len(reviewed[key])}
        for key in keys
    ]


# =============================================================================
# Levels, errors and today
# =============================================================================

def level_for(level_text):
    """Bucket a wordbook's free-text level by keyword substring."""
    if not level_text:
        return LEVEL_ADVANCED
    for level, keywords in LEVEL_KEYWORDS:
        if any(keyword in level_text for keyword in keywords):
            return level
    return LEVEL_ADVANCED


def level_progress(records=None):
    """Mastery per level; a card is mastered once right answers outnumber wrong ones."""
    totals = Counter()
    mastered = Counter()
    for record in _records(records):
        level = level_for(record.level)
        totals[level] += 1
        if record.stats.right_count > record.stats.wrong_count:
            mastered[level] += 1
    return [
        {
            'level': level,
            'total': totals[level],
            'mastered': mastered[level],
            'percentage': percentage(mastered[level], totals[level]),
        }
        for level in LEVELS
        if totals[level]
    ]


def card_summary(record):
    stats = record.stats
    return {
        'card_id': record.card.pk,
        'headword': record.card.headword,
        'meaning': record.card.primary_meaning(),
        'wordbook_id': record.card.wordbook_id,
        'shown_count': stats.shown_count,
        'right_count': stats.right_count,
        'wrong_count': stats.wrong_count,
        'error_rate': srs.round_half_up(stats.error_rate),
        'last_reviewed_at': srs.to_iso(stats.last_reviewed_at),
    }


def error_cards(records=None):
    """Every card answered wrong at least once, highest error rate first."""
    return [card_summary(record) for record in rank_by_error_rate(_records(records))]


def today_reviewed(today=None, records=None):
    """Cards whose last review fell today, split into first-time and repeat reviews."""
    today = _today(today)
    new, review = [], []
    for record in _records(records):
        reviewed_at = record.stats.last_reviewed_at
        if reviewed_at is None or local_day(reviewed_at) != today:
            continue
        (new if record.stats.shown_count == 1 else review).append(card_summary(record))

    daily_goal = storage.get_user_settings().daily_goal
    total = len(new) + len(review)
    return {
        'date': today.isoformat(),
        'new': new,
        'review': review,
        'new_count': len(new),
        'review_count': len(review),
        'total': total,
        'daily_goal': daily_goal,
        'goal_met': total >= daily_goal,
    }


def dashboard(now=None):
    """Overview figures for the home screen."""
    if now is None:
        now = timezone.now()
    today = local_day(now)
    records = storage.load_population()
    daily = storage.get_daily_review_record(today)
    settings = storage.get_user_settings()

    return {
        'total_cards': len(records),
        'wordbook_count': len(storage.get_all_wordbooks()),
        'due_count': sum(1 for r in records if r.srs is not None and srs.is_due(r.srs.due_at, now)),
        'new_count': sum(1 for r in records if r.stats.shown_count == 0),
        'reviewed_today': daily.review_count if daily else 0,
        'daily_goal': settings.daily_goal,
        'current_streak': current_streak(today, records),
        'longest_streak': longest_streak(records),
        'accuracy': overall_accuracy(RANGE_ALL, today, records)['accuracy'],
    }
