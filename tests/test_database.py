"""
Tests for database/database.py.

Uses a real SQLite file in a pytest tmp_path so every test gets an isolated DB.
No Telegram objects, no async — pure storage logic.
"""
import json
import re
import sqlite3

import pytest

import database.database as db
from config import STORAGE_KEY
from utils.models import ID_PATTERN
from utils.srs import add_days, now_ms, start_of_day


# ── Fixture ───────────────────────────────────────────────────

@pytest.fixture()
def tdb(tmp_path, monkeypatch):
    """Patch DB_PATH to a fresh temp file and initialise the schema."""
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(db, 'DB_PATH', db_path)
    db.init_db()
    return db_path


# ── Helpers ───────────────────────────────────────────────────

def _raw(db_path: str, sql: str, params=()):
    """Run a raw query against the test DB and return fetchall."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def _write_raw(db_path: str, user_id: int, value: str):
    conn = sqlite3.connect(db_path)
    conn.execute(
        "INSERT OR REPLACE INTO app_state (user_id, storage_key, value) VALUES (?, ?, ?)",
        (user_id, STORAGE_KEY, value),
    )
    conn.commit()
    conn.close()


def _card(front='bonjour', back='hello', tags=None):
    return {'front': front, 'back': back, 'tags': tags or []}


# ── State blob ────────────────────────────────────────────────

class TestStateBlob:
    def test_missing_state_is_empty(self, tdb):
        state = db.load_state(1)
        assert state.decks == [] and state.cards == [] and state.review_stats == []
        assert state.current_deck_id is None

    def test_stored_as_camel_case_json(self, tdb):
        deck_id = db.create_deck(1, 'French')
        db.save_card(1, _card(), deck_id)

        rows = _raw(tdb, "SELECT value FROM app_state WHERE user_id = 1 AND storage_key = ?", (STORAGE_KEY,))
        data = json.loads(rows[0]['value'])
        assert data['currentDeckId'] == deck_id
        assert data['cards'][0]['deckId'] == deck_id
        assert data['cards'][0]['lastReviewed'] is None

    def test_corrupted_json_falls_back(self, tdb):
        _write_raw(tdb, 1, '{not json')
        assert db.load_state(1).cards == []

    def test_wrong_shape_falls_back(self, tdb):
        _write_raw(tdb, 1, json.dumps({'decks': 'nope', 'cards': [], 'reviewStats': []}))
        assert db.load_state(1).decks == []

    def test_missing_card_fields_fall_back(self, tdb):
        _write_raw(tdb, 1, json.dumps({'decks': [], 'cards': [{'id': 'x'}], 'reviewStats': []}))
        assert db.load_state(1).cards == []

    def test_write_after_corruption_recovers(self, tdb):
        _write_raw(tdb, 1, 'garbage')
        db.create_deck(1, 'French')
        assert [d['name'] for d in db.get_all_decks(1)] == ['French']

    def test_users_isolated(self, tdb):
        db.create_deck(1, 'French')
        assert db.get_all_decks(2) == []

    def test_clear_state(self, tdb):
        db.create_deck(1, 'French')
        db.clear_state(1)
        assert db.get_all_decks(1) == []


# ── Decks ─────────────────────────────────────────────────────

class TestDeck:
    def test_create_returns_id(self, tdb):
        deck_id = db.create_deck(1, 'French')
        assert isinstance(deck_id, str) and deck_id

    def test_create_sets_current(self, tdb):
        deck_id = db.create_deck(1, 'French')
        assert db.get_current_deck_id(1) == deck_id

    def test_get_deck_name_and_id(self, tdb):
        deck_id = db.create_deck(1, 'French')
        assert db.get_deck_name(1, deck_id) == 'French'
        assert db.get_deck_id(1, 'French') == deck_id
        assert db.get_deck_name(1, 'nope') is None
        assert db.get_deck_id(1, 'German') is None

    def test_rename_deck(self, tdb):
        deck_id = db.create_deck(1, 'French')
        db.rename_deck(1, deck_id, 'Français')
        assert db.get_deck_name(1, deck_id) == 'Français'

    def test_rename_missing_raises(self, tdb):
        with pytest.raises(KeyError):
            db.rename_deck(1, 'nope', 'x')

    def test_delete_deck_removes_deck_and_cards(self, tdb):
        deck_id = db.create_deck(1, 'French')
        db.save_card(1, _card(), deck_id)
        db.delete_deck(1, deck_id)

        assert db.get_all_decks(1) == []
        assert db.load_state(1).cards == []
        assert db.get_current_deck_id(1) is None

    def test_decks_with_stats(self, tdb):
        french = db.create_deck(1, 'French')
        german = db.create_deck(1, 'German')
        db.save_card(1, _card(), french)
        db.save_card(1, _card('chat', 'cat'), french)
        db.save_card(1, _card('hallo', 'hello'), german)
        db.review_card(1, db.get_cards_in_deck(1, french)[0].id, True)

        rows = db.get_decks_with_stats(1)
        assert [r['deck_name'] for r in rows] == ['French', 'German']
        assert rows[0]['card_count'] == 2
        assert rows[0]['due_count'] == 1
        assert rows[1]['due_count'] == 1


# ── Cards ─────────────────────────────────────────────────────

class TestCard:
    def test_save_card_is_due_now(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(tags=['greeting']), deck_id)

        stored = db.get_card(1, card.id)
        assert stored == card
        assert stored.tags == ['greeting']
        assert stored.repetitions == 0
        assert [c.id for c in db.get_due_cards(1)] == [card.id]

    def test_get_card_wrong_user_returns_none(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(), deck_id)
        assert db.get_card(2, card.id) is None

    def test_update_card_content(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(), deck_id)
        db.update_card_content(1, card.id, 'salut', 'hi')

        stored = db.get_card(1, card.id)
        assert (stored.front, stored.back) == ('salut', 'hi')

    def test_add_and_remove_tags(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(tags=['greeting']), deck_id)

        updated = db.add_tags(1, card.id, ['verbs', 'greeting', 'b1'])
        assert updated.tags == ['greeting', 'verbs', 'b1']

        updated = db.remove_tag(1, card.id, 'greeting')
        assert updated.tags == ['verbs', 'b1']
        assert db.get_card(1, card.id).tags == ['verbs', 'b1']

    def test_all_tags_across_cards(self, tdb):
        deck_id = db.create_deck(1, 'French')
        db.save_card(1, _card(tags=['verbs']), deck_id)
        db.save_card(1, _card('chat', 'cat', tags=['animals', 'verbs']), deck_id)
        assert db.get_all_tags(1) == ['animals', 'verbs']

    def test_tags_on_missing_card(self, tdb):
        assert db.add_tags(1, 'nope', ['x']) is None
        assert db.remove_tag(1, 'nope', 'x') is None

    def test_delete_card(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(), deck_id)
        db.delete_card(1, card.id)
        assert db.get_card(1, card.id) is None

    def test_save_cards_bulk(self, tdb):
        deck_id = db.create_deck(1, 'French')
        cards = db.save_cards(1, [
            {'front': 'chat', 'back': 'cat', 'deckId': deck_id},
            {'front': 'chien', 'back': 'dog', 'deckId': deck_id},
        ])
        assert len(cards) == 2
        assert len(db.get_cards_in_deck(1, deck_id)) == 2


# ── Review ────────────────────────────────────────────────────

class TestReview:
    def test_review_persists_schedule(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(), deck_id)
        before = now_ms()

        updated = db.review_card(1, card.id, True)
        stored = db.get_card(1, card.id)

        assert stored == updated
        assert stored.repetitions == 1
        assert stored.interval == 1
        assert stored.last_reviewed >= before
        assert stored.next_review == add_days(start_of_day(stored.last_reviewed), 1)
        assert db.get_due_cards(1) == []

    def test_review_records_stats_and_deck(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(), deck_id)
        db.review_card(1, card.id, False)

        state = db.load_state(1)
        assert state.review_stats[0].incorrect_answers == 1
        assert state.decks[0].last_reviewed is not None

    def test_review_missing_card_raises(self, tdb):
        with pytest.raises(KeyError):
            db.review_card(1, 'nope', True)

    def test_due_cards_filtered_by_deck(self, tdb):
        french = db.create_deck(1, 'French')
        german = db.create_deck(1, 'German')
        db.save_card(1, _card(), french)
        db.save_card(1, _card('hallo', 'hello'), german)

        due = db.get_due_cards(1, german)
        assert [c.front for c in due] == ['hallo']


# ── Stats ─────────────────────────────────────────────────────

class TestStats:
    def test_card_stats_empty(self, tdb):
        stats = db.get_card_stats(1)
        assert stats['total'] == 0
        assert stats['due_today'] == 0

    def test_card_stats_counts(self, tdb):
        deck_id = db.create_deck(1, 'French')
        first = db.save_card(1, _card(), deck_id)
        db.save_card(1, _card('chat', 'cat'), deck_id)
        db.review_card(1, first.id, True)

        stats = db.get_card_stats(1)
        assert stats['total'] == 2
        assert stats['new'] == 1
        assert stats['learning'] == 1
        assert stats['due_today'] == 1
        # the reviewed card comes back tomorrow
        assert stats['due_week'] == 1

    def test_forecast_counts_reviewed_card(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(), deck_id)
        db.review_card(1, card.id, True)

        result = db.get_forecast(1, days=7)
        assert len(result) == 7
        assert result[0]['count'] == 1


# ── Import / export ───────────────────────────────────────────

class TestImportExport:
    def test_export_then_import_into_other_user(self, tdb):
        deck_id = db.create_deck(1, 'French')
        card = db.save_card(1, _card(tags=['greeting']), deck_id)
        db.review_card(1, card.id, True)

        data = json.loads(json.dumps(db.export_data(1)))
        assert db.import_data(2, data) == (1, 1)

        imported = db.get_card(2, card.id)
        assert imported.tags == ['greeting']
        assert imported.repetitions == 0
        assert imported.last_reviewed is None
        assert [c.id for c in db.get_due_cards(2)] == [card.id]

    def test_import_twice_adds_nothing(self, tdb):
        deck_id = db.create_deck(1, 'French')
        db.save_card(1, _card(), deck_id)
        data = db.export_data(1)

        db.import_data(2, data)
        assert db.import_data(2, data) == (0, 0)

    def test_export_single_deck(self, tdb):
        french = db.create_deck(1, 'French')
        german = db.create_deck(1, 'German')
        db.save_card(1, _card(), french)
        db.save_card(1, _card('hallo', 'hello'), german)

        data = db.export_data(1, german)
        assert [d['name'] for d in data['decks']] == ['German']
        assert [c['front'] for c in data['cards']] == ['hallo']

    @pytest.mark.parametrize('payload', [
        [],
        {'decks': []},
        {'decks': [], 'cards': 'x'},
        {'decks': [{'id': 'd'}], 'cards': []},
        {'decks': [], 'cards': [{'front': 'only'}]},
        {'decks': [{'id': 7, 'name': 'Numbers', 'createdAt': 1}], 'cards': []},
        {'decks': [], 'cards': [{'front': 12, 'back': 'twelve', 'deckId': 'd1'}]},
        {'decks': [], 'cards': [{'front': 'q', 'back': 'a', 'deckId': 3}]},
        {'decks': [], 'cards': [{'front': 'q', 'back': 'a', 'deckId': 'd1', 'tags': 'verbs'}]},
    ])
    def test_import_rejects_bad_payload(self, tdb, payload):
        with pytest.raises(ValueError):
            db.import_data(1, payload)
        assert db.get_all_decks(1) == []

    def test_import_replaces_ids_callbacks_cannot_carry(self, tdb):
        data = {
            'decks': [{'id': 'Deck-1', 'name': 'Spanish', 'createdAt': 1}],
            'cards': [{'id': 'c_1', 'front': 'hola', 'back': 'hello', 'deckId': 'Deck-1'}],
        }
        assert db.import_data(1, data) == (1, 1)

        [deck] = db.get_all_decks(1)
        assert re.fullmatch(ID_PATTERN, deck['id'])
        assert db.get_deck_name(1, deck['id']) == 'Spanish'

        [card] = db.get_cards_in_deck(1, deck['id'])
        assert card.front == 'hola'
        assert re.fullmatch(ID_PATTERN, card.id)
