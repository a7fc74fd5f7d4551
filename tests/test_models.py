"""
Tests for utils/models.py — the persisted JSON shape.
"""
import pytest

from utils.models import AppState, Card, Deck, ReviewStats, generate_id, is_valid_id


def _card_dict(**overrides):
    data = {
        'id': 'c1',
        'front': 'Tokyo',
        'back': 'Capital of Japan',
        'deckId': 'd1',
        'tags': ['geo'],
        'lastReviewed': None,
        'nextReview': 1718200000000,
        'easeFactor': 2.5,
        'interval': 0,
        'repetitions': 0,
    }
    data.update(overrides)
    return data


class TestCard:
    def test_from_dict_reads_camel_case(self):
        c = Card.from_dict(_card_dict(easeFactor=2.7, interval=6, repetitions=2))
        assert c.deck_id == 'd1'
        assert c.ease_factor == 2.7
        assert c.interval == 6
        assert c.repetitions == 2

    def test_to_dict_writes_nulls(self):
        data = Card(id='c1', front='f', back='b', deck_id='d1').to_dict()
        assert 'lastReviewed' in data and data['lastReviewed'] is None
        assert 'nextReview' in data and data['nextReview'] is None

    def test_same_dict_back(self):
        data = _card_dict()
        assert Card.from_dict(data).to_dict() == data

    def test_missing_tags_default_to_empty(self):
        data = _card_dict()
        del data['tags']
        assert Card.from_dict(data).tags == []

    def test_tags_list_is_copied(self):
        c = Card(id='c1', front='f', back='b', deck_id='d1', tags=['a'])
        c.to_dict()['tags'].append('b')
        assert c.tags == ['a']


class TestDeck:
    def test_last_reviewed_optional(self):
        d = Deck.from_dict({'id': 'd1', 'name': 'French', 'createdAt': 5})
        assert d.last_reviewed is None
        assert d.to_dict() == {'id': 'd1', 'name': 'French', 'createdAt': 5, 'lastReviewed': None}


class TestAppState:
    def test_empty_default(self):
        data = AppState().to_dict()
        assert data == {'decks': [], 'cards': [], 'reviewStats': [], 'currentDeckId': None}

    def test_null_cards_dropped(self):
        state = AppState.from_dict({
            'decks': [],
            'cards': [None, _card_dict()],
            'reviewStats': [],
        })
        assert [c.id for c in state.cards] == ['c1']

    def test_nested_records(self):
        state = AppState.from_dict({
            'decks': [{'id': 'd1', 'name': 'French', 'createdAt': 1, 'lastReviewed': 2}],
            'cards': [_card_dict()],
            'reviewStats': [{'date': 3, 'cardsReviewed': 4, 'correctAnswers': 3, 'incorrectAnswers': 1}],
            'currentDeckId': 'd1',
        })
        assert state.decks[0].last_reviewed == 2
        assert state.review_stats[0] == ReviewStats(date=3, cards_reviewed=4, correct_answers=3, incorrect_answers=1)
        assert state.current_deck_id == 'd1'


class TestGenerateId:
    def test_lowercase_base36(self):
        ident = generate_id()
        assert ident.isalnum()
        assert ident == ident.lower()

    def test_unique(self):
        assert len({generate_id() for _ in range(200)}) == 200

    def test_generated_ids_are_valid(self):
        assert is_valid_id(generate_id())

    @pytest.mark.parametrize('value', ['Deck-1', 'c_1', '', 'ABC', 7, None])
    def test_foreign_ids_are_invalid(self, value):
        assert not is_valid_id(value)
