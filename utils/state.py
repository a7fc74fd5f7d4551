"""
Operations over the whole app state: decks, cards, daily stats and the
current deck.

Each function takes an AppState and returns a new one; nothing is changed in
place. Writing the result back to storage is the caller's job (see
database/database.py).
"""

import logging
from dataclasses import replace
from typing import Any, Iterable, Mapping

from utils.models import AppState, Card, Deck, generate_id, is_valid_id
from utils.srs import answer_from_bool, get_due_cards, initialize_card, now_ms, schedule
from utils.stats import record_review


# ── Lookups ───────────────────────────────────────────────────

def get_deck(state: AppState, deck_id: str) -> Deck | None:
    return next((d for d in state.decks if d.id == deck_id), None)


def get_card(state: AppState, card_id: str) -> Card | None:
    return next((c for c in state.cards if c.id == card_id), None)


def cards_in_deck(state: AppState, deck_id: str) -> list[Card]:
    return [c for c in state.cards if c.deck_id == deck_id]


def _require_card(state: AppState, card_id: str) -> Card:
    card = get_card(state, card_id)
    if card is None:
        raise KeyError(f"Card not found: {card_id}")
    return card


# ── Decks ─────────────────────────────────────────────────────

def add_deck(state: AppState, name: str, now: int | None = None) -> tuple[AppState, Deck]:
    """Create a deck and make it the current one."""
    deck = Deck(
        id=generate_id(),
        name=name,
        created_at=now_ms() if now is None else now,
        last_reviewed=None,
    )
    new_state = replace(state, decks=[*state.decks, deck], current_deck_id=deck.id)
    return new_state, deck


def rename_deck(state: AppState, deck_id: str, name: str) -> AppState:
    if get_deck(state, deck_id) is None:
        raise KeyError(f"Deck not found: {deck_id}")
    decks = [replace(d, name=name) if d.id == deck_id else d for d in state.decks]
    return replace(state, decks=decks)


def delete_deck(state: AppState, deck_id: str) -> AppState:
    """Remove the deck together with its cards."""
    current = None if state.current_deck_id == deck_id else state.current_deck_id
    return replace(
        state,
        decks=[d for d in state.decks if d.id != deck_id],
        cards=[c for c in state.cards if c.deck_id != deck_id],
        current_deck_id=current,
    )


def set_current_deck(state: AppState, deck_id: str | None) -> AppState:
    return replace(state, current_deck_id=deck_id)


# ── Cards ─────────────────────────────────────────────────────

def add_card(
    state: AppState,
    front: str,
    back: str,
    deck_id: str,
    tags: Iterable[str] | None = None,
    now: int | None = None,
) -> tuple[AppState, Card]:
    card = initialize_card(front, back, deck_id, tags, now=now)
    return replace(state, cards=[*state.cards, card]), card


def add_cards(
    state: AppState,
    entries: Iterable[Mapping[str, Any]],
    now: int | None = None,
) -> tuple[AppState, list[Card]]:
    """
    Bulk import. Entries carry front, back, deckId (or deck_id) and optional
    tags; any scheduling fields in them are ignored.
    """
    if now is None:
        now = now_ms()

    new_cards = [
        initialize_card(
            entry['front'],
            entry['back'],
            entry.get('deckId') or entry.get('deck_id'),
            entry.get('tags'),
            now=now,
        )
        for entry in entries
    ]
    return replace(state, cards=[*state.cards, *new_cards]), new_cards


def update_card(state: AppState, card: Card) -> AppState:
    cards = [card if c.id == card.id else c for c in state.cards]
    return replace(state, cards=cards)


def update_card_content(state: AppState, card_id: str, front: str, back: str) -> AppState:
    card = _require_card(state, card_id)
    return update_card(state, replace(card, front=front, back=back))


def delete_card(state: AppState, card_id: str) -> AppState:
    return replace(state, cards=[c for c in state.cards if c.id != card_id])


# ── Tags ──────────────────────────────────────────────────────

def add_tag(state: AppState, card_id: str, tag: str) -> AppState:
    card = get_card(state, card_id)
    if card is None or tag in card.tags:
        return state
    return update_card(state, replace(card, tags=[*card.tags, tag]))


def remove_tag(state: AppState, card_id: str, tag: str) -> AppState:
    card = get_card(state, card_id)
    if card is None:
        return state
    return update_card(state, replace(card, tags=[t for t in card.tags if t != tag]))


def all_tags(state: AppState) -> list[str]:
    return sorted({tag for card in state.cards for tag in card.tags})


# ── Review ────────────────────────────────────────────────────

def due_cards(state: AppState, deck_id: str | None = None, now: int | None = None) -> list[Card]:
    return get_due_cards(state.cards, deck_id, now)


def review_card(
    state: AppState,
    card_id: str,
    is_correct: bool,
    now: int | None = None,
) -> tuple[AppState, Card]:
    """
    Schedule one review and fold the result back into the state: the card is
    replaced, today's stats get exactly one count, and the owning deck is
    stamped as reviewed.
    """
    if now is None:
        now = now_ms()

    card = _require_card(state, card_id)
    updated = schedule(card, answer_from_bool(is_correct), now)

    decks = [
        replace(d, last_reviewed=now) if d.id == card.deck_id else d
        for d in state.decks
    ]
    new_state = replace(
        update_card(state, updated),
        decks=decks,
        review_stats=record_review(state.review_stats, is_correct, now),
    )

    logging.info(
        f"Card {card_id}: {'correct' if is_correct else 'incorrect'}, "
        f"interval={updated.interval}d, ease={updated.ease_factor:.2f}"
    )
    return new_state, updated


# ── Import / export ───────────────────────────────────────────

def import_decks_and_cards(
    state: AppState,
    decks: Iterable[Deck],
    card_entries: Iterable[Mapping[str, Any]],
    now: int | None = None,
) -> AppState:
    """
    Merge decks and cards from an export; ids already present are skipped.
    Cards keep their id, content and tags but restart as new cards.

    Ids that generate_id() could not have produced (e.g. 'Deck-1') are
    replaced, and cards follow their deck to its new id.
    """
    if now is None:
        now = now_ms()
    deck_ids = {d.id for d in state.decks}
    card_ids = {c.id for c in state.cards}

    rekeyed: dict[str, str] = {}
    new_decks = []
    for deck in decks:
        if deck.id in deck_ids or deck.id in rekeyed:
            continue
        if not is_valid_id(deck.id):
            rekeyed[deck.id] = generate_id()
            deck = replace(deck, id=rekeyed[deck.id])
        deck_ids.add(deck.id)
        new_decks.append(deck)

    new_cards = []
    for entry in card_entries:
        card_id = entry.get('id')
        if card_id in card_ids:
            continue
        if card_id is not None:
            card_ids.add(card_id)

        deck_id = entry.get('deckId') or entry.get('deck_id')
        card = initialize_card(
            entry['front'],
            entry['back'],
            rekeyed.get(deck_id, deck_id),
            entry.get('tags'),
            card_id=card_id if is_valid_id(card_id) else None,
            now=now,
        )
        card_ids.add(card.id)
        new_cards.append(card)

    return replace(
        state,
        decks=[*state.decks, *new_decks],
        cards=[*state.cards, *new_cards],
    )


def export_state(state: AppState, deck_id: str | None = None) -> dict[str, Any]:
    """The full state, or a single deck with its cards."""
    if deck_id is None:
        return state.to_dict()

    deck = get_deck(state, deck_id)
    if deck is None:
        raise KeyError(f"Deck not found: {deck_id}")
    return {
        'decks': [deck.to_dict()],
        'cards': [c.to_dict() for c in cards_in_deck(state, deck_id)],
    }
