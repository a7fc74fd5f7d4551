"""
Challenge round: multiple-choice quiz over a random sample of cards.

Answers are still reported to the scheduler like any other review; this module
only picks the cards, builds the choices and scores them.

A round ends after the last card or the third wrong answer, whichever comes
first.
"""

import random
from typing import Any, Iterable

from utils.models import Card

ROUND_SIZE = 10
MAX_BACK_LEN = 100
CHOICE_COUNT = 4
BASE_POINTS = 10
COMBO_STEP = 5
COMBO_CAP = 25
LIVES = 3


def build_round(
    cards: Iterable[Card],
    size: int = ROUND_SIZE,
    max_back_len: int = MAX_BACK_LEN,
    rng: random.Random | None = None,
) -> list[Card]:
    """Random pick of cards whose answer is short enough to be a button."""
    rng = rng or random
    pool = [c for c in cards if len(c.back) < max_back_len]
    return rng.sample(pool, min(size, len(pool)))


def build_choices(
    card: Card,
    pool: Iterable[Card],
    count: int = CHOICE_COUNT,
    rng: random.Random | None = None,
) -> list[str]:
    """The right answer plus distinct wrong ones from `pool`, shuffled."""
    rng = rng or random
    others = list({c.back for c in pool if c.id != card.id and c.back != card.back})
    others.sort()
    distractors = rng.sample(others, min(count - 1, len(others)))

    choices = [card.back, *distractors]
    rng.shuffle(choices)
    return choices


def points_for(combo: int) -> int:
    """Points for a right answer given the streak it extends (combo >= 1)."""
    return BASE_POINTS + min(combo * COMBO_STEP, COMBO_CAP)


def new_game(cards: list[Card]) -> dict[str, Any]:
    return {
        'cards': cards,
        'index': 0,
        'choices': [],
        'score': 0,
        'combo': 0,
        'best_combo': 0,
        'correct': 0,
        'lives': LIVES,
    }


def record_answer(game: dict[str, Any], is_correct: bool) -> int:
    """Move past the current card; returns the points it earned."""
    game['index'] += 1
    if not is_correct:
        game['combo'] = 0
        game['lives'] -= 1
        return 0

    game['combo'] += 1
    game['best_combo'] = max(game['best_combo'], game['combo'])
    game['correct'] += 1
    earned = points_for(game['combo'])
    game['score'] += earned
    return earned


def is_over(game: dict[str, Any]) -> bool:
    return game['lives'] <= 0 or game['index'] >= len(game['cards'])
