"""
Records the app works with: cards, decks, daily review stats and the app state
that bundles them.

Cards and decks live in two flat lists joined by `deck_id`; a deck never holds
its cards. Timestamps are epoch milliseconds.

to_dict() / from_dict() use the camelCase keys of the persisted JSON blob.
Nullable fields are always written (as None -> null), never dropped.
"""

import random
import re
import string
import time
from dataclasses import dataclass, field
from typing import Any

# Shape of ids from generate_id(); callback data relies on it
ID_PATTERN = r'[0-9a-z]+'


def generate_id() -> str:
    """Time-ordered base36 prefix + random suffix."""
    alphabet = string.digits + string.ascii_lowercase
    ms = int(time.time() * 1000)
    prefix = ''
    while ms:
        ms, rem = divmod(ms, 36)
        prefix = alphabet[rem] + prefix
    suffix = ''.join(random.choices(alphabet, k=11))
    return prefix + suffix


def is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and re.fullmatch(ID_PATTERN, value) is not None


@dataclass
class Card:
    id: str
    front: str
    back: str
    deck_id: str
    tags: list[str] = field(default_factory=list)
    last_reviewed: int | None = None
    next_review: int | None = None
    ease_factor: float = 2.5
    interval: int = 0
    repetitions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'front': self.front,
            'back': self.back,
            'deckId': self.deck_id,
            'tags': list(self.tags),
            'lastReviewed': self.last_reviewed,
            'nextReview': self.next_review,
            'easeFactor': self.ease_factor,
            'interval': self.interval,
            'repetitions': self.repetitions,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Card':
        # older saves have no tags
        return cls(
            id=data['id'],
            front=data['front'],
            back=data['back'],
            deck_id=data['deckId'],
            tags=list(data.get('tags') or []),
            last_reviewed=data.get('lastReviewed'),
            next_review=data.get('nextReview'),
            ease_factor=data.get('easeFactor', 2.5),
            interval=data.get('interval', 0),
            repetitions=data.get('repetitions', 0),
        )


@dataclass
class Deck:
    id: str
    name: str
    created_at: int
    last_reviewed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'createdAt': self.created_at,
            'lastReviewed': self.last_reviewed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'Deck':
        return cls(
            id=data['id'],
            name=data['name'],
            created_at=data['createdAt'],
            last_reviewed=data.get('lastReviewed'),
        )


@dataclass
class ReviewStats:
    """Review totals for one calendar day; `date` is that day's start."""
    date: int
    cards_reviewed: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            'date': self.date,
            'cardsReviewed': self.cards_reviewed,
            'correctAnswers': self.correct_answers,
            'incorrectAnswers': self.incorrect_answers,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'ReviewStats':
        return cls(
            date=data['date'],
            cards_reviewed=data.get('cardsReviewed', 0),
            correct_answers=data.get('correctAnswers', 0),
            incorrect_answers=data.get('incorrectAnswers', 0),
        )


@dataclass
class AppState:
    decks: list[Deck] = field(default_factory=list)
    cards: list[Card] = field(default_factory=list)
    review_stats: list[ReviewStats] = field(default_factory=list)
    current_deck_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'decks': [d.to_dict() for d in self.decks],
            'cards': [c.to_dict() for c in self.cards],
            'reviewStats': [s.to_dict() for s in self.review_stats],
            'currentDeckId': self.current_deck_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'AppState':
        """Null card entries are dropped."""
        return cls(
            decks=[Deck.from_dict(d) for d in data.get('decks', [])],
            cards=[Card.from_dict(c) for c in data.get('cards', []) if c],
            review_stats=[ReviewStats.from_dict(s) for s in data.get('reviewStats', [])],
            current_deck_id=data.get('currentDeckId'),
        )
