import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Callable

import utils.state as st
from database.schema import state_schema
from config import DB_PATH, STORAGE_KEY
from utils.models import AppState, Card, Deck
from utils.srs import now_ms
from utils.stats import card_status_counts, count_due, count_upcoming, forecast


# STATE BLOB ===============================================

def _decode_state(raw: str, user_id: int) -> AppState:
    """Parse a stored blob; anything unreadable gives the empty default."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logging.error(f"Error parsing stored state for user {user_id}: {e}")
        return AppState()

    if not isinstance(data, dict) or not all(
        isinstance(data.get(key), list) for key in ('decks', 'cards', 'reviewStats')
    ):
        logging.error(f"Invalid state structure for user {user_id}")
        return AppState()

    try:
        return AppState.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        logging.error(f"Error loading state for user {user_id}: {e}")
        return AppState()


def _read_state(conn: sqlite3.Connection, user_id: int) -> AppState:
    row = conn.execute(
        'SELECT value FROM app_state WHERE user_id = ? AND storage_key = ?',
        (user_id, STORAGE_KEY)
    ).fetchone()
    if row is None:
        return AppState()
    return _decode_state(row['value'], user_id)


def _write_state(conn: sqlite3.Connection, user_id: int, state: AppState) -> None:
    conn.execute(
        """INSERT OR REPLACE INTO app_state (user_id, storage_key, value, updated_at)
           VALUES (?, ?, ?, datetime('now'))
        """,
        (user_id, STORAGE_KEY, json.dumps(state.to_dict()))
    )


def _update_state(user_id: int, change: Callable[[AppState], tuple[AppState, Any]]) -> Any:
    """
    Read-modify-write under one write lock. Concurrent writers queue up
    behind each other; the last one wins.
    """
    with get_db() as conn:
        conn.execute('BEGIN IMMEDIATE')
        state = _read_state(conn, user_id)
        new_state, result = change(state)
        _write_state(conn, user_id, new_state)
        return result


def load_state(user_id: int) -> AppState:
    with get_db() as conn:
        return _read_state(conn, user_id)


def clear_state(user_id: int) -> None:
    with get_db() as conn:
        conn.execute(
            'DELETE FROM app_state WHERE user_id = ? AND storage_key = ?',
            (user_id, STORAGE_KEY)
        )
    logging.info(f"Cleared state for user {user_id}")


# DECKS COMMANDS =============================================

def create_deck(user_id: int, deck_name: str) -> str:
    deck = _update_state(user_id, lambda s: st.add_deck(s, deck_name))
    logging.info(f"Created deck {deck.id} for user {user_id}")
    return deck.id


def get_all_decks(user_id: int) -> list[dict[str, str]]:
    state = load_state(user_id)
    return [{'id': d.id, 'name': d.name} for d in state.decks]


def get_deck_id(user_id: int, deck_name: str) -> str | None:
    state = load_state(user_id)
    return next((d.id for d in state.decks if d.name == deck_name), None)


def get_deck_name(user_id: int, deck_id: str) -> str | None:
    deck = st.get_deck(load_state(user_id), deck_id)
    if deck:
        return deck.name
    return None


def rename_deck(user_id: int, deck_id: str, deck_name: str) -> None:
    _update_state(user_id, lambda s: (st.rename_deck(s, deck_id, deck_name), None))


def delete_deck(user_id: int, deck_id: str) -> None:
    _update_state(user_id, lambda s: (st.delete_deck(s, deck_id), None))
    logging.info(f"Deleted deck {deck_id} for user {user_id}")


def set_current_deck(user_id: int, deck_id: str | None) -> None:
    _update_state(user_id, lambda s: (st.set_current_deck(s, deck_id), None))


def get_current_deck_id(user_id: int) -> str | None:
    return load_state(user_id).current_deck_id


def get_decks_with_stats(user_id: int) -> list[dict[str, Any]]:
    """All decks with card count and due count, ordered by name."""
    state = load_state(user_id)
    now = now_ms()
    rows = []
    for deck in state.decks:
        cards = st.cards_in_deck(state, deck.id)
        rows.append({
            'deck_id': deck.id,
            'deck_name': deck.name,
            'card_count': len(cards),
            'due_count': count_due(cards, now),
        })
    return sorted(rows, key=lambda r: r['deck_name'])


# CARDS COMMANDS =============================================

def save_card(user_id: int, card_dict: dict[str, Any], deck_id: str) -> Card:
    """card_dict is {'front': ..., 'back': ..., optional 'tags': [...]}"""
    return _update_state(
        user_id,
        lambda s: st.add_card(s, card_dict['front'], card_dict['back'], deck_id, card_dict.get('tags')),
    )


def save_cards(user_id: int, entries: list[dict[str, Any]]) -> list[Card]:
    cards = _update_state(user_id, lambda s: st.add_cards(s, entries))
    logging.info(f"Imported {len(cards)} cards for user {user_id}")
    return cards


def get_card(user_id: int, card_id: str) -> Card | None:
    return st.get_card(load_state(user_id), card_id)


def get_cards_in_deck(user_id: int, deck_id: str) -> list[Card]:
    return st.cards_in_deck(load_state(user_id), deck_id)


def update_card_content(user_id: int, card_id: str, front: str, back: str) -> None:
    _update_state(user_id, lambda s: (st.update_card_content(s, card_id, front, back), None))


def add_tags(user_id: int, card_id: str, tags: list[str]) -> Card | None:
    def change(state: AppState) -> tuple[AppState, Card | None]:
        for tag in tags:
            state = st.add_tag(state, card_id, tag)
        return state, st.get_card(state, card_id)

    return _update_state(user_id, change)


def remove_tag(user_id: int, card_id: str, tag: str) -> Card | None:
    def change(state: AppState) -> tuple[AppState, Card | None]:
        state = st.remove_tag(state, card_id, tag)
        return state, st.get_card(state, card_id)

    return _update_state(user_id, change)


def get_all_tags(user_id: int) -> list[str]:
    return st.all_tags(load_state(user_id))


def delete_card(user_id: int, card_id: str) -> None:
    _update_state(user_id, lambda s: (st.delete_card(s, card_id), None))


# REVIEW COMMANDS ============================================

def get_due_cards(user_id: int, deck_id: str | None = None) -> list[Card]:
    return st.due_cards(load_state(user_id), deck_id)


def review_card(user_id: int, card_id: str, is_correct: bool) -> Card:
    """Schedule the card and persist card, deck and today's stats together."""
    return _update_state(user_id, lambda s: st.review_card(s, card_id, is_correct))


# STATS COMMANDS =============================================

def get_card_stats(user_id: int) -> dict[str, int]:
    state = load_state(user_id)
    counts = card_status_counts(state.cards)
    return {
        'total': len(state.cards),
        **counts,
        'due_today': count_due(state.cards),
        'due_week': count_upcoming(state.cards, 7),
    }


def get_forecast(user_id: int, days: int = 7) -> list[dict[str, int]]:
    return forecast(load_state(user_id).cards, days)


# IMPORT / EXPORT ============================================

_CARD_FIELDS = ('front', 'back', 'deckId')


def _check_deck(data: Any) -> Deck:
    if not isinstance(data, dict) or not isinstance(data.get('id'), str) \
            or not isinstance(data.get('name'), str):
        raise ValueError('Invalid deck entry')
    try:
        return Deck.from_dict(data)
    except KeyError as e:
        raise ValueError('Invalid deck entry') from e


def _check_card(entry: Any) -> dict[str, Any]:
    if not isinstance(entry, dict) or not all(isinstance(entry.get(k), str) for k in _CARD_FIELDS):
        raise ValueError('Invalid card entry')
    if entry.get('id') is not None and not isinstance(entry['id'], str):
        raise ValueError('Invalid card entry')
    tags = entry.get('tags')
    if tags is not None and not (isinstance(tags, list) and all(isinstance(t, str) for t in tags)):
        raise ValueError('Invalid card entry')
    return entry


def export_data(user_id: int, deck_id: str | None = None) -> dict[str, Any]:
    return st.export_state(load_state(user_id), deck_id)


def import_data(user_id: int, data: Any) -> tuple[int, int]:
    """
    Merge an exported {'decks': [...], 'cards': [...]} payload.
    Returns (new decks, new cards). Raises ValueError on a malformed payload:
    ids, names, card sides and deckId must be strings, tags a list of strings.
    """
    if not isinstance(data, dict) or not isinstance(data.get('decks'), list) \
            or not isinstance(data.get('cards'), list):
        raise ValueError('Invalid data format')

    decks = [_check_deck(d) for d in data['decks']]
    entries = [_check_card(c) for c in data['cards'] if c]

    def change(state: AppState) -> tuple[AppState, tuple[int, int]]:
        merged = st.import_decks_and_cards(state, decks, entries)
        return merged, (len(merged.decks) - len(state.decks), len(merged.cards) - len(state.cards))

    counts = _update_state(user_id, change)
    logging.info(f"Imported {counts[0]} decks and {counts[1]} cards for user {user_id}")
    return counts


# DB CONNECTION ==============================================

@contextmanager
def get_db():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    with get_db() as conn:
        conn.execute(state_schema)
