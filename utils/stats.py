"""
Daily review aggregates and the numbers shown on the stats screen.

Every scheduler call is reported here once through record_review(); the rest
are read-only summaries over cards, decks and stats records.
"""

from collections import Counter
from dataclasses import replace
from typing import Any, Iterable

from utils.models import Card, Deck, ReviewStats
from utils.srs import add_days, is_due, now_ms, round_half_up, start_of_day, to_datetime

# Downstream convention only; the scheduler knows nothing about mastery.
MASTERED_REPETITIONS = 4


def get_today_stats(stats: Iterable[ReviewStats], now: int | None = None) -> ReviewStats:
    """Today's record, or a fresh zeroed one if nothing was reviewed yet."""
    today = start_of_day(now_ms() if now is None else now)
    for record in stats:
        if start_of_day(record.date) == today:
            return record
    return ReviewStats(date=today)


def record_review(
    stats: list[ReviewStats],
    is_correct: bool,
    now: int | None = None,
) -> list[ReviewStats]:
    """Return a new stats list with today's counters bumped by one review."""
    today = start_of_day(now_ms() if now is None else now)
    current = get_today_stats(stats, today)

    updated = replace(
        current,
        cards_reviewed=current.cards_reviewed + 1,
        correct_answers=current.correct_answers + (1 if is_correct else 0),
        incorrect_answers=current.incorrect_answers + (0 if is_correct else 1),
    )

    result = []
    replaced = False
    for record in stats:
        if not replaced and start_of_day(record.date) == today:
            result.append(updated)
            replaced = True
        else:
            result.append(record)
    if not replaced:
        result.append(updated)
    return result


def _accuracy(correct: int, incorrect: int) -> int:
    total = correct + incorrect
    return round_half_up(correct / total * 100) if total > 0 else 0


def daily_stats(
    stats: list[ReviewStats],
    days: int = 7,
    now: int | None = None,
) -> list[dict[str, Any]]:
    """One entry per day for the last `days` days, oldest first, zero-filled."""
    if not stats:
        return []

    today = start_of_day(now_ms() if now is None else now)
    by_day = {start_of_day(s.date): s for s in stats}

    result = []
    for offset in range(days - 1, -1, -1):
        day = add_days(today, -offset)
        record = by_day.get(day)
        correct = record.correct_answers if record else 0
        incorrect = record.incorrect_answers if record else 0
        result.append({
            'date': to_datetime(day).strftime('%b %d'),
            'timestamp': day,
            'cards_reviewed': correct + incorrect,
            'accuracy': _accuracy(correct, incorrect),
        })
    return result


def card_status(card: Card, now: int) -> str:
    """new / due / mastered / learning, checked in that order."""
    if not card.last_reviewed:
        return 'new'
    if card.next_review and card.next_review <= now:
        return 'due'
    if card.repetitions >= MASTERED_REPETITIONS:
        return 'mastered'
    return 'learning'


def card_status_counts(cards: Iterable[Card], now: int | None = None) -> dict[str, int]:
    if now is None:
        now = now_ms()
    counts = {'due': 0, 'learning': 0, 'mastered': 0, 'new': 0}
    for card in cards:
        counts[card_status(card, now)] += 1
    return counts


def study_streak(stats: Iterable[ReviewStats], now: int | None = None) -> int:
    """Consecutive study days ending today or yesterday; 0 if broken."""
    days = sorted({start_of_day(s.date) for s in stats}, reverse=True)
    if not days:
        return 0

    today = start_of_day(now_ms() if now is None else now)
    yesterday = add_days(today, -1)
    if days[0] not in (today, yesterday):
        return 0

    streak = 1
    expected = add_days(days[0], -1)
    for day in days[1:]:
        if day != expected:
            break
        streak += 1
        expected = add_days(expected, -1)
    return streak


def longest_streak(stats: Iterable[ReviewStats]) -> int:
    days = sorted({start_of_day(s.date) for s in stats})
    if not days:
        return 0

    current = best = 1
    for prev, day in zip(days, days[1:]):
        if add_days(prev, 1) == day:
            current += 1
            best = max(best, current)
        else:
            current = 1
    return best


def performance_metrics(stats: list[ReviewStats], decks: Iterable[Deck]) -> dict[str, int]:
    if not stats:
        return {
            'total_reviews': 0,
            'correct_rate': 0,
            'average_daily_reviews': 0,
            'active_decks': 0,
        }

    total_reviews = sum(s.cards_reviewed for s in stats)
    total_correct = sum(s.correct_answers for s in stats)
    active_days = len({start_of_day(s.date) for s in stats})

    return {
        'total_reviews': total_reviews,
        'correct_rate': round_half_up(total_correct / total_reviews * 100) if total_reviews else 0,
        'average_daily_reviews': round_half_up(total_reviews / active_days) if active_days else 0,
        'active_decks': sum(1 for d in decks if d.last_reviewed is not None),
    }


def count_due(cards: Iterable[Card], now: int | None = None) -> int:
    if now is None:
        now = now_ms()
    return sum(1 for card in cards if is_due(card, now))


def count_upcoming(cards: Iterable[Card], days: int = 7, now: int | None = None) -> int:
    """Cards coming due within `days`. Never-scheduled cards count too."""
    if now is None:
        now = now_ms()
    horizon = add_days(now, days)
    return sum(
        1 for card in cards
        if card.next_review is None or now < card.next_review <= horizon
    )


def forecast(cards: Iterable[Card], days: int = 7, now: int | None = None) -> list[dict[str, int]]:
    """Cards coming due on each of the next `days` days (today excluded)."""
    if now is None:
        now = now_ms()
    horizon = add_days(now, days)
    counts = Counter(
        start_of_day(card.next_review) for card in cards
        if card.next_review is not None and now < card.next_review <= horizon
    )

    today = start_of_day(now)
    result = []
    for offset in range(1, days + 1):
        day = add_days(today, offset)
        result.append({'day': day, 'count': counts.get(day, 0)})
    return result
