from telegram import Update, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from utils.constants import MENU_BUTTON
from utils.telegram_helpers import safe_edit_text, safe_send_text


HELP_TEXT = (
    "<b>\u2753 How it works</b>\n\n"
    "1. Send <code>front | back</code> (or two lines) to make a card\n"
    "2. Add a last line like <code>#verbs #b1</code> to tag it\n"
    "3. Hit Review when cards are due and answer honestly\n"
    "4. /challenge for a quick multiple-choice round\n"
    "5. /import a list of cards, /export a backup, /reset to start over\n"
    "6. Open a card under \U0001f4da Decks to edit it or its tags\n\n"
    "Right answers push a card further out: 1 day, 6 days, then longer "
    "and longer. A miss brings it back tomorrow \U0001f9e0"
)

_MARKUP = InlineKeyboardMarkup([MENU_BUTTON])


async def help_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, HELP_TEXT, reply_markup=_MARKUP)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(update.message, HELP_TEXT, reply_markup=_MARKUP)
