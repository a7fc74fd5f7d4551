"""
Review flow: due cards one at a time, front first, then the back with
Correct / Wrong buttons showing where each answer would push the card.

Session lives in context.user_data['review']:
    {'cards': [Card, ...], 'index': int, 'correct': int}
"""

import html
import logging
from collections import Counter

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
from utils.constants import ReviewState, MENU_BUTTON
from utils.models import Card
from utils.srs import CORRECT, INCORRECT, format_interval, schedule_both, shuffled
from utils.telegram_helpers import safe_edit_text, safe_send_text

NOTHING_DUE = "\u2728 Nothing due. Come back later!"
STOP_BUTTON = [InlineKeyboardButton("\u23f9 Stop", callback_data='cancel_review')]


def _plural(n: int, word: str = 'card') -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


async def review_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    due = db.get_due_cards(user_id)
    per_deck = Counter(card.deck_id for card in due)

    if len(per_deck) < 2:
        return await _begin(query, context, due)

    rows = []
    for deck_id, count in per_deck.most_common():
        name = db.get_deck_name(user_id, deck_id) or '?'
        rows.append([InlineKeyboardButton(f"\U0001f4c1 {name} ({count})", callback_data=f'review_deck_{deck_id}')])
    rows.append([InlineKeyboardButton(f"\u25b6 Everything ({len(due)})", callback_data='review_deck_all')])
    rows.append(MENU_BUTTON)

    await safe_edit_text(
        query,
        f"\U0001f9e0 {_plural(len(due))} due in {len(per_deck)} decks. Which first?",
        reply_markup=InlineKeyboardMarkup(rows),
    )
    return ReviewState.DECK_PICKER


async def review_deck_selected(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.split('_', 2)[2]  # review_deck_<id>
    return await _begin(query, context, db.get_due_cards(update.effective_user.id, deck_id))


async def review_all_decks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    return await _begin(query, context, db.get_due_cards(update.effective_user.id))


async def review_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/review: reply with a start button (conversations start from callbacks)."""
    due = len(db.get_due_cards(update.effective_user.id))
    if not due:
        await safe_send_text(update.message, NOTHING_DUE, reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return

    await safe_send_text(
        update.message,
        f"\U0001f9e0 {_plural(due)} waiting",
        reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton('\u25b6 Start', callback_data='review')]]),
    )


async def show_answer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    session = context.user_data.get('review')
    card = _current(session)
    if card is None:
        return await _wrap_up(query, context)

    deck_name = db.get_deck_name(update.effective_user.id, card.deck_id) or ''
    tags = ' '.join('#' + t for t in card.tags)
    footer = ' \u00b7 '.join(part for part in (html.escape(deck_name), html.escape(tags), _position(session)) if part)

    await safe_edit_text(
        query,
        f"<b>{html.escape(card.front)}</b>\n\n{html.escape(card.back)}\n\n<i>{footer}</i>",
        reply_markup=InlineKeyboardMarkup(_answer_rows(card)),
    )
    return ReviewState.RATING


async def rate_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    session = context.user_data.get('review')
    card = _current(session)
    if card is None:
        return await _wrap_up(query, context)

    is_correct = query.data == f'rate_{CORRECT}'
    try:
        db.review_card(update.effective_user.id, card.id, is_correct)
    except KeyError:
        # deleted from My Decks while the session was open
        logging.warning(f"Card {card.id} disappeared mid-review")
    else:
        session['correct'] += int(is_correct)

    session['index'] += 1
    if _current(session) is None:
        return await _wrap_up(query, context)
    return await _show_front(query, session)


async def cancel_review(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Stop button or /cancel."""
    session = context.user_data.pop('review', None) or {}
    done = session.get('index', 0)
    text = f"\u23f9 Stopped. {_plural(done)} reviewed."
    markup = InlineKeyboardMarkup([MENU_BUTTON])

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)
    return ConversationHandler.END


# ── private helpers ──────────────────────────────────────────

async def _begin(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE, cards: list[Card]) -> int:
    if not cards:
        await safe_edit_text(query, NOTHING_DUE, reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return ConversationHandler.END

    # new order every session
    session = {'cards': shuffled(cards), 'index': 0, 'correct': 0}
    context.user_data['review'] = session
    return await _show_front(query, session)


def _current(session: dict | None) -> Card | None:
    if not session or session['index'] >= len(session['cards']):
        return None
    return session['cards'][session['index']]


def _position(session: dict) -> str:
    return f"{session['index'] + 1}/{len(session['cards'])}"


async def _show_front(query: CallbackQuery, session: dict) -> int:
    card = _current(session)
    await safe_edit_text(
        query,
        f"<b>{html.escape(card.front)}</b>\n\n<i>{_position(session)}</i>",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("\U0001f440 Show answer", callback_data='show_answer')],
            STOP_BUTTON,
        ]),
    )
    return ReviewState.SHOWING_FRONT


def _answer_rows(card: Card) -> list[list[InlineKeyboardButton]]:
    """Wrong / Correct, each labelled with the interval it would give."""
    outcome = schedule_both(card)
    wrong = f"\U0001f534 Wrong \u00b7 {format_interval(outcome[INCORRECT].interval)}"
    right = f"\U0001f7e2 Correct \u00b7 {format_interval(outcome[CORRECT].interval)}"
    return [
        [
            InlineKeyboardButton(wrong, callback_data=f'rate_{INCORRECT}'),
            InlineKeyboardButton(right, callback_data=f'rate_{CORRECT}'),
        ],
        STOP_BUTTON,
    ]


async def _wrap_up(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> int:
    session = context.user_data.pop('review', None) or {'cards': [], 'correct': 0}
    total = len(session['cards'])
    correct = session['correct']

    await safe_edit_text(
        query,
        f"\U0001f389 Session done: {correct}/{total} right",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("\U0001f3af Challenge", callback_data='challenge'),
             InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
        ]),
    )
    return ConversationHandler.END
