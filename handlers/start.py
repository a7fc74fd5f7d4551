import html

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
from utils.stats import study_streak
from utils.telegram_helpers import safe_edit_text, safe_send_text

# Per-flow scratch space in context.user_data
SESSION_KEYS = ('draft', 'review', 'challenge', 'renaming_deck_id', 'import_deck_id', 'editing_card_id')


def _summary_line(counts: dict[str, int], streak: int) -> str:
    if counts['total'] == 0:
        return "\U0001f4ad <i>Empty so far. Add a card to get going.</i>"

    due = counts['due_today']
    if due == 0:
        head = "\u2705 <b>Nothing due</b>"
    else:
        head = f"\U0001f9e0 <b>{due} due now</b>"

    tail = f"{counts['total']} cards \u00b7 {counts['mastered']} mastered"
    if streak:
        tail += f" \u00b7 \U0001f525 {streak}d"
    return f"{head}\n<i>{tail}</i>"


def build_main_menu(user_id: int) -> tuple[str, InlineKeyboardMarkup]:
    """Menu text (due count, collection size, streak) and the main keyboard."""
    counts = db.get_card_stats(user_id)
    streak = study_streak(db.load_state(user_id).review_stats)
    due = counts['due_today']

    rows = [
        [
            InlineKeyboardButton('\U0001f4dd Add', callback_data='add_card'),
            InlineKeyboardButton(
                f'\U0001f9e0 Review ({due})' if due else '\U0001f9e0 Review',
                callback_data='review',
            ),
        ],
        [
            InlineKeyboardButton('\U0001f3af Challenge', callback_data='challenge'),
            InlineKeyboardButton('\U0001f4da Decks', callback_data='my_decks'),
        ],
        [
            InlineKeyboardButton('\U0001f4ca Stats', callback_data='stats'),
            InlineKeyboardButton('\U0001f4e5 Import', callback_data='import'),
            InlineKeyboardButton('\u2753 Help', callback_data='help'),
        ],
    ]
    return _summary_line(counts, streak), InlineKeyboardMarkup(rows)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    first_name = html.escape(user.first_name or 'there')

    if not db.get_all_decks(user.id):
        await safe_send_text(
            update.message,
            f"Hi {first_name} \U0001f44b\n\n"
            "Send me something you want to remember as "
            "<code>question | answer</code>. "
            "Answer right and it comes back in a day, then six, then further out; "
            "miss it and you see it again tomorrow.",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton("\U0001f4dd First card", callback_data='add_card')],
                [InlineKeyboardButton("\U0001f4e5 Import a list", callback_data='import')],
            ]),
        )
        return

    text, markup = build_main_menu(user.id)
    await safe_send_text(update.message, f"Hi {first_name} \U0001f44b\n\n{text}", reply_markup=markup)


def clear_session(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in SESSION_KEYS:
        context.user_data.pop(key, None)


async def force_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """/start inside any conversation: drop the flow, show the menu."""
    clear_session(context)
    text, markup = build_main_menu(update.effective_user.id)
    await safe_send_text(update.message, text, reply_markup=markup)
    return ConversationHandler.END


async def main_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    text, markup = build_main_menu(update.effective_user.id)
    await safe_edit_text(query, text, reply_markup=markup)


async def reset_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/reset: wipe every deck, card and review stat, after a confirmation tap."""
    await safe_send_text(
        update.message,
        "\u26a0\ufe0f This deletes <b>all</b> your decks, cards and review history. "
        "Maybe /export a backup first.",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Delete everything", callback_data='reset_yes'),
            InlineKeyboardButton("Keep", callback_data='main_menu'),
        ]]),
    )


async def reset_confirmed(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    db.clear_state(user_id)
    clear_session(context)

    text, markup = build_main_menu(user_id)
    await safe_edit_text(query, f"\U0001f9f9 All cleared.\n\n{text}", reply_markup=markup)
