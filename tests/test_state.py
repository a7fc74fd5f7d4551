"""
Tests for utils/state.py — whole-state transforms, no storage involved.
"""
from datetime import datetime

import pytest

import utils.state as st
from utils.models import AppState, Card, Deck, is_valid_id
from utils.srs import from_datetime, start_of_day


NOW = from_datetime(datetime(2024, 6, 12, 9, 0))


# ── Helpers ───────────────────────────────────────────────────

def _state_with_deck(name='French'):
    state, deck = st.add_deck(AppState(), name, now=NOW)
    return state, deck


def _state_with_card(front='bonjour', back='hello'):
    state, deck = _state_with_deck()
    state, card = st.add_card(state, front, back, deck.id, now=NOW)
    return state, deck, card


# ── Decks ─────────────────────────────────────────────────────

class TestDecks:
    def test_add_deck_becomes_current(self):
        state, deck = _state_with_deck()
        assert state.decks == [deck]
        assert state.current_deck_id == deck.id
        assert deck.created_at == NOW
        assert deck.last_reviewed is None

    def test_add_deck_leaves_input_alone(self):
        base = AppState()
        st.add_deck(base, 'French', now=NOW)
        assert base.decks == []

    def test_rename(self):
        state, deck = _state_with_deck()
        state = st.rename_deck(state, deck.id, 'Spanish')
        assert st.get_deck(state, deck.id).name == 'Spanish'

    def test_rename_unknown_raises(self):
        with pytest.raises(KeyError):
            st.rename_deck(AppState(), 'nope', 'x')

    def test_delete_cascades_to_cards(self):
        state, deck, _ = _state_with_card()
        state, other = st.add_deck(state, 'German', now=NOW)
        state, kept = st.add_card(state, 'hallo', 'hello', other.id, now=NOW)

        state = st.delete_deck(state, deck.id)
        assert [d.id for d in state.decks] == [other.id]
        assert state.cards == [kept]

    def test_delete_current_deck_clears_current(self):
        state, deck = _state_with_deck()
        state = st.delete_deck(state, deck.id)
        assert state.current_deck_id is None

    def test_delete_other_deck_keeps_current(self):
        state, first = _state_with_deck()
        state, second = st.add_deck(state, 'German', now=NOW)
        state = st.delete_deck(state, first.id)
        assert state.current_deck_id == second.id


# ── Cards ─────────────────────────────────────────────────────

class TestCards:
    def test_add_card_is_new_and_due(self):
        state, deck, card = _state_with_card()
        assert state.cards == [card]
        assert card.deck_id == deck.id
        assert card.next_review == NOW
        assert card.repetitions == 0

    def test_add_cards_ignores_scheduling_fields(self):
        state, deck = _state_with_deck()
        entries = [
            {'front': 'a', 'back': '1', 'deckId': deck.id, 'repetitions': 9, 'interval': 50},
            {'front': 'b', 'back': '2', 'deck_id': deck.id},
        ]
        state, cards = st.add_cards(state, entries, now=NOW)
        assert len(state.cards) == 2
        assert all(c.repetitions == 0 and c.interval == 0 for c in cards)
        assert all(c.deck_id == deck.id for c in cards)

    def test_update_content(self):
        state, _, card = _state_with_card()
        state = st.update_card_content(state, card.id, 'salut', 'hi')
        updated = st.get_card(state, card.id)
        assert (updated.front, updated.back) == ('salut', 'hi')

    def test_update_content_unknown_raises(self):
        with pytest.raises(KeyError):
            st.update_card_content(AppState(), 'nope', 'a', 'b')

    def test_delete_card(self):
        state, _, card = _state_with_card()
        state = st.delete_card(state, card.id)
        assert state.cards == []

    def test_cards_in_deck(self):
        state, deck, card = _state_with_card()
        state, other = st.add_deck(state, 'German', now=NOW)
        state, _ = st.add_card(state, 'hallo', 'hello', other.id, now=NOW)
        assert st.cards_in_deck(state, deck.id) == [card]


# ── Tags ──────────────────────────────────────────────────────

class TestTags:
    def test_add_tag_no_duplicates(self):
        state, _, card = _state_with_card()
        state = st.add_tag(state, card.id, 'verb')
        state = st.add_tag(state, card.id, 'verb')
        assert st.get_card(state, card.id).tags == ['verb']

    def test_remove_tag(self):
        state, _, card = _state_with_card()
        state = st.add_tag(state, card.id, 'verb')
        state = st.remove_tag(state, card.id, 'verb')
        assert st.get_card(state, card.id).tags == []

    def test_all_tags_sorted_unique(self):
        state, deck = _state_with_deck()
        state, _ = st.add_card(state, 'a', '1', deck.id, tags=['z', 'b'], now=NOW)
        state, _ = st.add_card(state, 'b', '2', deck.id, tags=['b'], now=NOW)
        assert st.all_tags(state) == ['b', 'z']


# ── Review ────────────────────────────────────────────────────

class TestReview:
    def test_review_updates_card(self):
        state, _, card = _state_with_card()
        state, updated = st.review_card(state, card.id, True, now=NOW)
        assert updated.repetitions == 1
        assert st.get_card(state, card.id) == updated

    def test_review_counts_one_stat(self):
        state, _, card = _state_with_card()
        state, _ = st.review_card(state, card.id, True, now=NOW)
        state, _ = st.review_card(state, card.id, False, now=NOW)
        assert len(state.review_stats) == 1
        today = state.review_stats[0]
        assert today.date == start_of_day(NOW)
        assert today.cards_reviewed == 2
        assert today.correct_answers == 1
        assert today.incorrect_answers == 1

    def test_review_stamps_deck(self):
        state, deck, card = _state_with_card()
        state, _ = st.review_card(state, card.id, True, now=NOW)
        assert st.get_deck(state, deck.id).last_reviewed == NOW

    def test_review_unknown_card_raises(self):
        with pytest.raises(KeyError):
            st.review_card(AppState(), 'nope', True, now=NOW)

    def test_reviewed_card_leaves_due_set(self):
        state, deck, card = _state_with_card()
        assert st.due_cards(state, deck.id, NOW) == [card]
        state, _ = st.review_card(state, card.id, True, now=NOW)
        assert st.due_cards(state, deck.id, NOW) == []


# ── Import / export ───────────────────────────────────────────

class TestImportExport:
    def test_import_reinitializes_cards(self):
        deck = Deck(id='d9', name='Imported', created_at=1)
        entry = Card(
            id='c9', front='q', back='a', deck_id='d9', tags=['x'],
            last_reviewed=5, next_review=10, ease_factor=1.9, interval=30, repetitions=7,
        ).to_dict()

        state = st.import_decks_and_cards(AppState(), [deck], [entry], now=NOW)
        card = state.cards[0]
        assert (card.id, card.front, card.back, card.tags) == ('c9', 'q', 'a', ['x'])
        assert card.repetitions == 0
        assert card.interval == 0
        assert card.ease_factor == 2.5
        assert card.last_reviewed is None
        assert card.next_review == NOW

    def test_import_skips_existing_ids(self):
        state, deck, card = _state_with_card()
        state = st.import_decks_and_cards(state, [deck], [card.to_dict()], now=NOW)
        assert len(state.decks) == 1
        assert len(state.cards) == 1

    def test_import_skips_duplicate_ids_in_payload(self):
        deck = Deck(id='d9', name='Imported', created_at=1)
        entry = {'id': 'c9', 'front': 'q', 'back': 'a', 'deckId': 'd9'}
        state = st.import_decks_and_cards(AppState(), [deck], [entry, entry], now=NOW)
        assert len(state.cards) == 1

    def test_import_rekeys_foreign_ids(self):
        deck = Deck(id='Deck-1', name='Spanish', created_at=1)
        entry = {'id': 'c_1', 'front': 'hola', 'back': 'hello', 'deckId': 'Deck-1'}
        state = st.import_decks_and_cards(AppState(), [deck, deck], [entry], now=NOW)

        [imported] = state.decks
        [card] = state.cards
        assert imported.id != 'Deck-1'
        assert is_valid_id(imported.id)
        assert card.deck_id == imported.id
        assert card.id != 'c_1' and is_valid_id(card.id)

    def test_export_all(self):
        state, _, _ = _state_with_card()
        data = st.export_state(state)
        assert set(data) == {'decks', 'cards', 'reviewStats', 'currentDeckId'}

    def test_export_single_deck(self):
        state, deck, card = _state_with_card()
        state, other = st.add_deck(state, 'German', now=NOW)
        state, _ = st.add_card(state, 'hallo', 'hello', other.id, now=NOW)

        data = st.export_state(state, deck.id)
        assert data['decks'] == [deck.to_dict()]
        assert data['cards'] == [card.to_dict()]

    def test_export_unknown_deck_raises(self):
        with pytest.raises(KeyError):
            st.export_state(AppState(), 'nope')
