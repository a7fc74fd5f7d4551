"""
Spaced repetition scheduler (simplified SM-2).

Answers are binary: CORRECT or INCORRECT.

Interval ladder on consecutive correct answers: 1 day, 6 days, then
previous interval * ease factor. Any incorrect answer resets the streak and
brings the card back tomorrow.

All functions take the current time as `now` (epoch ms); it defaults to the
system clock when omitted.
"""

import math
import random
import time
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable

from utils.models import Card, generate_id

# Answer constants
CORRECT = 'correct'
INCORRECT = 'incorrect'

INITIAL_EASE_FACTOR = 2.5
EASE_BONUS = 0.1
EASE_PENALTY = 0.2
MIN_EASE_FACTOR = 1.3

FIRST_INTERVAL = 1
SECOND_INTERVAL = 6


# ── Clock helpers ─────────────────────────────────────────────

def now_ms() -> int:
    return int(time.time() * 1000)


def to_datetime(ts: int) -> datetime:
    """Epoch ms -> naive local datetime."""
    return datetime.fromtimestamp(ts / 1000)


def from_datetime(dt: datetime) -> int:
    return round(dt.timestamp() * 1000)


def start_of_day(ts: int) -> int:
    """Local midnight of the day `ts` falls on."""
    day = to_datetime(ts).replace(hour=0, minute=0, second=0, microsecond=0)
    return from_datetime(day)


def add_days(ts: int, days: int) -> int:
    """Calendar-day addition in local time (keeps wall-clock across DST)."""
    return from_datetime(to_datetime(ts) + timedelta(days=days))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ── Scheduling ────────────────────────────────────────────────

def answer_from_bool(is_correct: bool) -> str:
    return CORRECT if is_correct else INCORRECT


def schedule(card: Card, answer: str, now: int | None = None) -> Card:
    """
    Return a new card with ease, interval, repetitions and next review
    updated for `answer`. The input card is left untouched and not validated.
    """
    if now is None:
        now = now_ms()
    today = start_of_day(now)

    if answer == CORRECT:
        repetitions = card.repetitions + 1
        if repetitions == 1:
            interval = FIRST_INTERVAL
        elif repetitions == 2:
            interval = SECOND_INTERVAL
        else:
            # uses the ease factor from before this review's bonus
            interval = round_half_up(card.interval * card.ease_factor)
        ease_factor = card.ease_factor + EASE_BONUS

    elif answer == INCORRECT:
        repetitions = 0
        ease_factor = max(card.ease_factor - EASE_PENALTY, MIN_EASE_FACTOR)
        interval = FIRST_INTERVAL

    else:
        raise ValueError(f"Unknown answer: {answer!r}")

    return replace(
        card,
        tags=list(card.tags),
        last_reviewed=now,
        repetitions=repetitions,
        interval=interval,
        ease_factor=ease_factor,
        next_review=add_days(today, interval),
    )


def schedule_both(card: Card, now: int | None = None) -> dict[str, Card]:
    """Preview of both outcomes, keyed by answer."""
    if now is None:
        now = now_ms()
    return {answer: schedule(card, answer, now) for answer in (CORRECT, INCORRECT)}


# ── Card creation ─────────────────────────────────────────────

def initialize_card(
    front: str,
    back: str,
    deck_id: str,
    tags: Iterable[str] | None = None,
    card_id: str | None = None,
    now: int | None = None,
) -> Card:
    """
    The only way cards come into existence. New cards are due immediately and
    carry no review history, whatever the caller had before (imports included).
    """
    if now is None:
        now = now_ms()
    return Card(
        id=card_id or generate_id(),
        front=front,
        back=back,
        deck_id=deck_id,
        tags=list(tags or []),
        last_reviewed=None,
        next_review=now,
        ease_factor=INITIAL_EASE_FACTOR,
        interval=0,
        repetitions=0,
    )


# ── Due set ───────────────────────────────────────────────────

def is_due(card: Card, now: int) -> bool:
    # never scheduled counts as due
    return card.next_review is None or card.next_review <= now


def get_due_cards(
    cards: Iterable[Card] | None,
    deck_id: str | None = None,
    now: int | None = None,
) -> list[Card]:
    """Cards due at `now`, optionally limited to one deck. Input order kept."""
    if not cards:
        return []
    if now is None:
        now = now_ms()

    return [
        card for card in cards
        if (not deck_id or card.deck_id == deck_id) and is_due(card, now)
    ]


def shuffled(cards: Iterable[Card], rng: random.Random | None = None) -> list[Card]:
    """A shuffled copy; the caller's list keeps its order."""
    result = list(cards)
    (rng or random).shuffle(result)
    return result


# ── Labels ────────────────────────────────────────────────────

def format_interval(days: int) -> str:
    """Human-readable interval for buttons: 1d, 16d, 2mo, 1.2y."""
    if days < 30:
        return f"{days}d"
    elif days < 365:
        months = round_half_up(days / 30)
        return f"{months}mo"
    else:
        years = round_half_up(days / 365 * 10) / 10
        return f"{years}y"
