import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
from utils.challenge import (
    CHOICE_COUNT, LIVES, ROUND_SIZE,
    build_choices, build_round, is_over, new_game, record_answer,
)
from utils.constants import ChallengeState, MENU_BUTTON
from utils.telegram_helpers import safe_edit_text, safe_send_text


async def challenge_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Start a round over all decks; due dates are ignored here."""
    query = update.callback_query
    await query.answer()

    cards = build_round(db.load_state(update.effective_user.id).cards)
    if len(cards) < 2:
        await safe_edit_text(
            query,
            "\U0001f3af Challenge needs at least two cards with short answers.",
            reply_markup=InlineKeyboardMarkup([MENU_BUTTON])
        )
        return ConversationHandler.END

    context.user_data['challenge'] = new_game(cards)
    return await _ask(query, context.user_data['challenge'])


async def answer_choice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    game = context.user_data.get('challenge')
    if not game or is_over(game):
        return await _finish(query, context)

    card = game['cards'][game['index']]
    picked = int(query.data.split('_')[1])  # ch_<n>
    is_correct = picked < len(game['choices']) and game['choices'][picked] == card.back

    try:
        db.review_card(update.effective_user.id, card.id, is_correct)
    except KeyError:
        logging.warning(f"Card {card.id} vanished during challenge")

    earned = record_answer(game, is_correct)
    if is_correct:
        feedback = f"\u2705 +{earned}" + (f"  (combo \u00d7{game['combo']})" if game['combo'] > 1 else "")
    else:
        feedback = f"\u274c It was: {html.escape(card.back)}"

    if is_over(game):
        return await _finish(query, context, feedback)
    return await _ask(query, game, feedback)


async def cancel_challenge(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    if update.callback_query:
        await update.callback_query.answer()
        return await _finish(update.callback_query, context)

    context.user_data.pop('challenge', None)
    await safe_send_text(update.message, "\u23f9 Challenge stopped.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
    return ConversationHandler.END


async def challenge_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/challenge slash command: sends a message with a Start button."""
    await safe_send_text(
        update.message,
        f"\U0001f3af Up to {ROUND_SIZE} quick questions, {LIVES} lives. Combos score extra.",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\u25b6 Start', callback_data='challenge')]
        ]),
    )


# ── private helpers ──────────────────────────────────────────

async def _ask(query: CallbackQuery, game: dict, feedback: str = '') -> int:
    card = game['cards'][game['index']]
    game['choices'] = build_choices(card, game['cards'], CHOICE_COUNT)

    buttons = [
        [InlineKeyboardButton(choice, callback_data=f'ch_{n}')]
        for n, choice in enumerate(game['choices'])
    ]
    buttons.append([InlineKeyboardButton("\u23f9 Stop", callback_data='cancel_challenge')])

    header = f"{feedback}\n\n" if feedback else ""
    hearts = '\u2764\ufe0f' * game['lives']
    text = (
        f"{header}"
        f"\U0001f3af <b>{html.escape(card.front)}</b>\n\n"
        f"<i>{game['index'] + 1}/{len(game['cards'])}  \u00b7  {game['score']} pts  \u00b7  </i>{hearts}"
    )
    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup(buttons))
    return ChallengeState.ANSWERING


async def _finish(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE, feedback: str = '') -> int:
    game = context.user_data.pop('challenge', None) or {}

    header = f"{feedback}\n\n" if feedback else ""
    if game.get('lives', LIVES) <= 0:
        header += "\U0001f494 Out of lives.\n"
    text = (
        f"{header}"
        f"\U0001f3c1 <b>{game.get('score', 0)} points</b>\n\n"
        f"{game.get('correct', 0)}/{game.get('index', 0)} right  \u00b7  best combo {game.get('best_combo', 0)}"
    )
    markup = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f501 Again", callback_data='challenge'),
         InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
    ])
    await safe_edit_text(query, text, reply_markup=markup)
    return ConversationHandler.END
