import html
import json
import logging
from datetime import date

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, Message
from telegram.error import TelegramError
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
import utils.utils as utils
from utils.constants import ImportState, MENU_BUTTON
from utils.telegram_helpers import safe_edit_text, safe_send_document, safe_send_text

IMPORT_HINT = (
    "\U0001f4e5 Send a JSON export file, or paste cards one per line:\n\n"
    "<code>front,back</code>\n"
    "<code>front\tback</code>\n\n"
    "<i>Pasted cards go to {deck}. /cancel to stop.</i>"
)


def _export_filename() -> str:
    return f"flashcard-export-{date.today().isoformat()}.json"


def _encode(data: dict) -> bytes:
    return json.dumps(data, indent=2, ensure_ascii=False).encode('utf-8')


# ── Export ───────────────────────────────────────────────────

async def export_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/export: send every deck and card as a JSON file."""
    user_id = update.effective_user.id
    data = db.export_data(user_id)

    if not data['cards'] and not data['decks']:
        await safe_send_text(update.message, "Nothing to export yet \U0001f4ad")
        return

    await safe_send_document(
        update.message,
        _encode(data),
        _export_filename(),
        caption=f"\U0001f4e4 {len(data['decks'])} decks \u00b7 {len(data['cards'])} cards",
    )
    logging.info(f"Exported all data for user {user_id}")


async def deck_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    deck_id = query.data.split('_', 2)[2]  # deck_export_<id>

    try:
        data = db.export_data(update.effective_user.id, deck_id)
    except KeyError:
        await safe_edit_text(query, "Deck not found.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return

    deck_name = data['decks'][0]['name']
    await safe_send_document(
        query.message,
        _encode(data),
        _export_filename(),
        caption=f"\U0001f4e4 {deck_name} \u00b7 {len(data['cards'])} cards",
    )


# ── Import conversation ──────────────────────────────────────

def _prompt(user_id: int, context: ContextTypes.DEFAULT_TYPE) -> tuple[str, InlineKeyboardMarkup]:
    deck_id = db.get_current_deck_id(user_id)
    deck_name = db.get_deck_name(user_id, deck_id) if deck_id else None
    context.user_data['import_deck_id'] = deck_id if deck_name else None

    target = f"\U0001f4c1 {html.escape(deck_name)}" if deck_name else "a new \"Imported\" deck"
    markup = InlineKeyboardMarkup([[InlineKeyboardButton("Cancel", callback_data='cancel_import')]])
    return IMPORT_HINT.format(deck=target), markup


async def import_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    text, markup = _prompt(update.effective_user.id, context)
    await safe_edit_text(query, text, reply_markup=markup)
    return ImportState.AWAITING_FILE


async def import_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text, markup = _prompt(update.effective_user.id, context)
    await safe_send_text(update.message, text, reply_markup=markup)
    return ImportState.AWAITING_FILE


async def receive_file(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    document = update.message.document

    try:
        file = await document.get_file()
        raw = bytes(await file.download_as_bytearray())
    except TelegramError as e:
        logging.warning(f"Import download failed: {e}")
        await safe_send_text(update.message, "\u26a0\ufe0f Couldn't download that file. Try again:")
        return ImportState.AWAITING_FILE

    try:
        content = raw.decode('utf-8-sig')
    except UnicodeDecodeError:
        await safe_send_text(update.message, "\u26a0\ufe0f That file isn't text. Send a .json or .csv file:")
        return ImportState.AWAITING_FILE

    name = (document.file_name or '').lower()
    if name.endswith('.json') or content.lstrip().startswith('{'):
        return await _import_json(update.message, context, content)
    return await _import_rows(update.message, context, content)


async def receive_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    return await _import_rows(update.message, context, update.message.text or '')


async def cancel_import(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop('import_deck_id', None)

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, "Import cancelled.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
    else:
        await safe_send_text(update.message, "Import cancelled.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))

    return ConversationHandler.END


# ── private helpers ──────────────────────────────────────────

async def _import_json(message: Message, context: ContextTypes.DEFAULT_TYPE, content: str) -> int:
    user_id = message.from_user.id

    try:
        new_decks, new_cards = db.import_data(user_id, json.loads(content))
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        logging.warning(f"Rejected import for user {user_id}: {e}")
        await safe_send_text(message, "\u26a0\ufe0f Failed to parse import file. Send a valid export:")
        return ImportState.AWAITING_FILE

    context.user_data.pop('import_deck_id', None)
    await safe_send_text(
        message,
        f"\u2705 Imported {new_decks} decks and {new_cards} cards. All of them are due now.",
        reply_markup=InlineKeyboardMarkup([MENU_BUTTON]),
    )
    return ConversationHandler.END


async def _import_rows(message: Message, context: ContextTypes.DEFAULT_TYPE, content: str) -> int:
    user_id = message.from_user.id
    deck_id = context.user_data.get('import_deck_id')
    if not deck_id or db.get_deck_name(user_id, deck_id) is None:
        deck_id = db.get_deck_id(user_id, 'Imported') or db.create_deck(user_id, 'Imported')

    entries = utils.parse_bulk_text(content, deck_id)
    if not entries:
        await safe_send_text(
            message,
            "\u26a0\ufe0f No cards found. Each line needs a front and a back, "
            "separated by a comma or a tab:"
        )
        return ImportState.AWAITING_FILE

    cards = db.save_cards(user_id, entries)
    context.user_data.pop('import_deck_id', None)

    deck_name = db.get_deck_name(user_id, deck_id) or ''
    await safe_send_text(
        message,
        f"\u2705 Imported {len(cards)} cards into {html.escape(deck_name)}",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("\U0001f4da Open deck", callback_data=f'deck_open_{deck_id}')],
            MENU_BUTTON,
        ]),
    )
    return ConversationHandler.END
