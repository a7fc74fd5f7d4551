"""
My Decks: deck list, deck detail with its cards, card detail, deletion, and
the small conversations for naming a new deck or renaming one.
"""

import html
import logging
from typing import Any, Sequence

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

import database.database as db
from handlers.start import force_start
from utils.constants import DeckState, DECK_NAME_MAX, ID_PATTERN, MENU_BUTTON
from utils.models import Card
from utils.srs import to_datetime
from utils.telegram_helpers import safe_edit_text, safe_send_text

PAGE_SIZE = 6
LABEL_MAX = 32

DECKS_BUTTON = [InlineKeyboardButton('\U0001f4da Decks', callback_data='my_decks')]


def _short(text: str) -> str:
    text = ' '.join(text.split())
    return text if len(text) <= LABEL_MAX else text[:LABEL_MAX - 1] + '\u2026'


def _page(items: Sequence, page: int, callback_prefix: str) -> tuple[Sequence, str, list[InlineKeyboardButton]]:
    """Slice one page out of `items`; returns (slice, 'n/m' label or '', nav row)."""
    pages = max(1, -(-len(items) // PAGE_SIZE))
    page = min(max(page, 0), pages - 1)
    chunk = items[page * PAGE_SIZE:(page + 1) * PAGE_SIZE]

    if pages == 1:
        return chunk, '', []

    nav = []
    if page > 0:
        nav.append(InlineKeyboardButton('\u2190', callback_data=f'{callback_prefix}_{page - 1}'))
    if page < pages - 1:
        nav.append(InlineKeyboardButton('\u2192', callback_data=f'{callback_prefix}_{page + 1}'))
    return chunk, f"{page + 1}/{pages}", nav


# ── Deck list ────────────────────────────────────────────────

def _deck_list(user_id: int, page: int = 0) -> tuple[str, InlineKeyboardMarkup]:
    decks: list[dict[str, Any]] = db.get_decks_with_stats(user_id)
    chunk, label, nav = _page(decks, page, 'decks_page')

    text = "\U0001f4da <b>Decks</b>"
    if label:
        text += f"  <i>{label}</i>"
    if not decks:
        text += "\n\n<i>None yet.</i>"

    rows = []
    for deck in chunk:
        due = f" \u00b7 {deck['due_count']} due" if deck['due_count'] else ''
        rows.append([InlineKeyboardButton(
            f"{_short(deck['deck_name'])} ({deck['card_count']}){due}",
            callback_data=f"deck_open_{deck['deck_id']}",
        )])
    if nav:
        rows.append(nav)
    rows.append([InlineKeyboardButton('\u2795 New deck', callback_data='decks_new')])
    rows.append(MENU_BUTTON)
    return text, InlineKeyboardMarkup(rows)


async def my_decks_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    text, markup = _deck_list(update.effective_user.id)
    await safe_edit_text(query, text, reply_markup=markup)


async def decks_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    text, markup = _deck_list(update.effective_user.id, int(query.data.rsplit('_', 1)[1]))
    await safe_edit_text(query, text, reply_markup=markup)


async def decks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/decks: the deck list as a new message."""
    text, markup = _deck_list(update.effective_user.id)
    await safe_send_text(update.message, text, reply_markup=markup)


# ── Deck detail ──────────────────────────────────────────────

async def _open_deck(query: CallbackQuery, deck_id: str, page: int = 0) -> None:
    user_id = query.from_user.id
    deck_name = db.get_deck_name(user_id, deck_id)
    if deck_name is None:
        await safe_edit_text(query, "That deck no longer exists.", reply_markup=InlineKeyboardMarkup([DECKS_BUTTON]))
        return

    cards = db.get_cards_in_deck(user_id, deck_id)
    chunk, label, nav = _page(cards, page, f'deck_page_{deck_id}')
    is_current = db.get_current_deck_id(user_id) == deck_id

    lines = [f"\U0001f4c1 <b>{html.escape(deck_name)}</b> \u00b7 {len(cards)} cards"]
    if label:
        lines[0] += f"  <i>{label}</i>"
    if is_current:
        lines.append("<i>New cards are added here.</i>")
    if not cards:
        lines.append("\n<i>Empty deck.</i>")

    rows = [[InlineKeyboardButton(_short(c.front), callback_data=f'card_info_{c.id}')] for c in chunk]
    if nav:
        rows.append(nav)
    if not is_current:
        rows.append([InlineKeyboardButton('\U0001f4cc Add new cards here', callback_data=f'deck_use_{deck_id}')])
    rows.append([
        InlineKeyboardButton('\u270f\ufe0f Rename', callback_data=f'deck_rename_{deck_id}'),
        InlineKeyboardButton('\U0001f4e4 Export', callback_data=f'deck_export_{deck_id}'),
        InlineKeyboardButton('\U0001f5d1\ufe0f Delete', callback_data=f'deck_delete_{deck_id}'),
    ])
    rows.append(DECKS_BUTTON)

    await safe_edit_text(query, '\n'.join(lines), reply_markup=InlineKeyboardMarkup(rows))


async def deck_open(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await _open_deck(query, query.data.split('_', 2)[2])  # deck_open_<id>


async def deck_cards_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    _, _, deck_id, page = query.data.split('_')  # deck_page_<id>_<n>
    await _open_deck(query, deck_id, int(page))


async def deck_use(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.split('_', 2)[2]
    db.set_current_deck(update.effective_user.id, deck_id)
    await _open_deck(query, deck_id)


async def deck_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.split('_', 2)[2]
    user_id = update.effective_user.id
    deck_name = db.get_deck_name(user_id, deck_id) or '?'
    count = len(db.get_cards_in_deck(user_id, deck_id))

    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete <b>{html.escape(deck_name)}</b> with its {count} cards? There is no undo.",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('Delete', callback_data=f'deck_delete_yes_{deck_id}'),
            InlineKeyboardButton('Keep', callback_data=f'deck_open_{deck_id}'),
        ]]),
    )


async def deck_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    db.delete_deck(user_id, query.data.split('_', 3)[3])  # deck_delete_yes_<id>

    text, markup = _deck_list(user_id)
    await safe_edit_text(query, text, reply_markup=markup)


# ── Card detail ──────────────────────────────────────────────

def _when(ts: int | None) -> str:
    return to_datetime(ts).strftime('%b %d, %Y') if ts is not None else 'never'


def card_view(card: Card) -> tuple[str, InlineKeyboardMarkup]:
    tags = html.escape(' '.join('#' + t for t in card.tags)) or '-'
    text = (
        f"<b>{html.escape(card.front)}</b>\n"
        f"{html.escape(card.back)}\n"
        f"{tags}\n\n"
        f"<i>Last seen: {_when(card.last_reviewed)}\n"
        f"Next: {_when(card.next_review)}\n"
        f"Streak {card.repetitions} \u00b7 interval {card.interval}d \u00b7 ease {card.ease_factor:.2f}</i>"
    )
    markup = InlineKeyboardMarkup([
        [
            InlineKeyboardButton('\u270f\ufe0f Edit', callback_data=f'card_edit_{card.id}'),
            InlineKeyboardButton('\U0001f3f7 Tags', callback_data=f'card_tags_{card.id}'),
        ],
        [InlineKeyboardButton('\U0001f5d1\ufe0f Delete card', callback_data=f'card_delete_{card.id}')],
        [InlineKeyboardButton('\u2190 Back to deck', callback_data=f'deck_open_{card.deck_id}')],
    ])
    return text, markup


async def card_info(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card = db.get_card(update.effective_user.id, query.data.split('_', 2)[2])
    if card is None:
        await safe_edit_text(query, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([DECKS_BUTTON]))
        return

    text, markup = card_view(card)
    await safe_edit_text(query, text, reply_markup=markup)


async def card_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    card = db.get_card(update.effective_user.id, query.data.split('_', 2)[2])
    if card is None:
        await safe_edit_text(query, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([DECKS_BUTTON]))
        return

    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete <b>{html.escape(_short(card.front))}</b>?",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton('Delete', callback_data=f'card_delete_yes_{card.id}'),
            InlineKeyboardButton('Keep', callback_data=f'card_info_{card.id}'),
        ]]),
    )


async def card_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    card_id = query.data.split('_', 3)[3]  # card_delete_yes_<id>
    card = db.get_card(user_id, card_id)
    db.delete_card(user_id, card_id)
    logging.info(f"User {user_id} deleted card {card_id}")

    if card is not None:
        await _open_deck(query, card.deck_id)
        return
    text, markup = _deck_list(user_id)
    await safe_edit_text(query, text, reply_markup=markup)


# ── New deck / rename conversations ─────────────────────────

def deck_name_problem(user_id: int, deck_name: str) -> str | None:
    """What is wrong with a proposed deck name, as a message to send back."""
    if not deck_name:
        return "\u26a0\ufe0f Deck name can't be empty. Try again:"
    if len(deck_name) > DECK_NAME_MAX:
        return f"\u26a0\ufe0f Keep it under {DECK_NAME_MAX} characters. Try again:"
    if db.get_deck_id(user_id, deck_name):
        return f"\u26a0\ufe0f You already have \"{html.escape(deck_name)}\". Pick another name:"
    return None


async def start_new_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, "\u270f\ufe0f Name for the new deck:")
    return DeckState.NAMING_DECK


async def receive_new_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user_id = update.effective_user.id
    deck_name = (update.message.text or '').strip()

    problem = deck_name_problem(user_id, deck_name)
    if problem:
        await safe_send_text(update.message, problem)
        return DeckState.NAMING_DECK

    db.create_deck(user_id, deck_name)
    header, markup = _deck_list(user_id)
    await safe_send_text(
        update.message,
        f"\u2705 Deck \"{html.escape(deck_name)}\" created. New cards go there.\n\n{header}",
        reply_markup=markup,
    )
    return ConversationHandler.END


async def start_rename_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    context.user_data['renaming_deck_id'] = query.data.split('_', 2)[2]
    await safe_edit_text(query, "\u270f\ufe0f New name for the deck:")
    return DeckState.RENAMING_DECK


async def receive_rename(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user_id = update.effective_user.id
    deck_name = (update.message.text or '').strip()
    deck_id = context.user_data.get('renaming_deck_id')

    if deck_id is None:
        return ConversationHandler.END

    problem = deck_name_problem(user_id, deck_name)
    if problem:
        await safe_send_text(update.message, problem)
        return DeckState.RENAMING_DECK

    try:
        db.rename_deck(user_id, deck_id, deck_name)
    except KeyError:
        await safe_send_text(update.message, "Deck not found.")
    else:
        await safe_send_text(
            update.message,
            f"\u2705 Renamed to \"{html.escape(deck_name)}\"",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('\U0001f4da Open deck', callback_data=f'deck_open_{deck_id}')]
            ]),
        )
    context.user_data.pop('renaming_deck_id', None)
    return ConversationHandler.END


async def cancel_deck_flow(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop('renaming_deck_id', None)
    await safe_send_text(update.message, "Cancelled.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
    return ConversationHandler.END


new_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_new_deck, pattern='^decks_new$')],
    per_message=False,
    states={
        DeckState.NAMING_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_new_deck),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_deck_flow), CommandHandler('start', force_start)],
)

rename_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(start_rename_deck, pattern=rf'^deck_rename_{ID_PATTERN}$')],
    per_message=False,
    states={
        DeckState.RENAMING_DECK: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_rename),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel_deck_flow), CommandHandler('start', force_start)],
)
