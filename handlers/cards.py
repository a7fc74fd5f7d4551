"""
Add-card conversation (text in, preview, save) and editing of saved cards:
new front/back, adding and removing tags.

The card being built lives in context.user_data['draft']:
    {'card': {'front', 'back', 'tags'}, 'deck_id': str | None}
"""

import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, Message, CallbackQuery
from telegram.ext import ContextTypes, ConversationHandler

import database.database as db
import utils.utils as utils
from handlers.decks import card_info, card_view, deck_name_problem
from handlers.start import build_main_menu
from utils.constants import AddCardState, CardEditState, PREVIEW_BUTTONS, CARD_SIDE_MAX, MENU_BUTTON
from utils.models import Card
from utils.telegram_helpers import safe_edit_text, safe_send_text

FORMAT_HINT = (
    "<i><code>front | back</code>, or front and back on two lines.\n"
    "Tags go on an optional last line: <code>#verbs #b1</code></i>"
)


def _draft(context: ContextTypes.DEFAULT_TYPE) -> dict:
    return context.user_data.setdefault('draft', {'card': None, 'deck_id': None})


async def add_card_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    context.user_data['draft'] = {'card': None, 'deck_id': None}

    user_id = update.effective_user.id
    deck_id = db.get_current_deck_id(user_id)
    deck_name = db.get_deck_name(user_id, deck_id) if deck_id else None

    target = f"\n\n\U0001f4c1 {html.escape(deck_name)}" if deck_name else ""
    await safe_edit_text(
        query,
        f"\U0001f4dd New card{target}\n\n{FORMAT_HINT}",
        reply_markup=InlineKeyboardMarkup([MENU_BUTTON]),
    )
    return AddCardState.AWAITING_CONTENT


def _content_problem(parsed: dict) -> str | None:
    front, back = parsed['front'], parsed['back']
    if not front:
        return "\u26a0\ufe0f That was empty. Send the card text:"
    if max(len(front), len(back)) > CARD_SIDE_MAX:
        return f"\u26a0\ufe0f Each side can be at most {CARD_SIDE_MAX} characters. Try again:"
    if not back:
        sample = html.escape(front[:20])
        return (
            "\u26a0\ufe0f I only see one side.\n\n"
            f"<code>{sample} | the answer</code>\n\n"
            "or\n\n"
            f"<code>{sample}\nthe answer</code>"
        )
    return None


async def get_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    parsed = utils.parse_text(update.message.text or '')
    problem = _content_problem(parsed)
    if problem:
        await safe_send_text(update.message, problem)
        return AddCardState.AWAITING_CONTENT

    draft = _draft(context)
    draft['card'] = parsed

    user_id = update.effective_user.id
    if draft['deck_id'] is None:
        current = db.get_current_deck_id(user_id)
        if current and db.get_deck_name(user_id, current):
            draft['deck_id'] = current

    if draft['deck_id']:
        await preview(update.message, context)
        return AddCardState.CONFIRMATION_PREVIEW
    return await _ask_for_deck(update.message, user_id)


async def _ask_for_deck(target: Message | CallbackQuery, user_id: int) -> int:
    reply = safe_send_text if isinstance(target, Message) else safe_edit_text
    decks = db.get_all_decks(user_id)

    if not decks:
        await reply(target, "\U0001f4c1 You have no decks yet. Name your first one:")
        return AddCardState.CREATING_DECK

    rows = utils.get_buttons(decks, 'deck')
    rows.append([InlineKeyboardButton("\u2795 New deck", callback_data='new_deck')])
    rows.append([InlineKeyboardButton("\u2716 Cancel", callback_data='cancel')])
    await reply(target, "\U0001f4c1 Put it in which deck?", reply_markup=InlineKeyboardMarkup(rows))
    return AddCardState.AWAITING_DECK


async def preview(target: Message | CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> None:
    draft = _draft(context)
    card = draft['card'] or {'front': '', 'back': '', 'tags': []}
    user_id = target.from_user.id
    deck_name = db.get_deck_name(user_id, draft['deck_id']) if draft['deck_id'] else None

    lines = [
        f"<b>{html.escape(card['front'])}</b>",
        html.escape(card['back']),
    ]
    if card['tags']:
        lines.append(html.escape(' '.join('#' + t for t in card['tags'])))
    lines.append(f"\n<i>\U0001f4c1 {html.escape(deck_name or '?')}</i>")
    text = '\n'.join(lines)

    if isinstance(target, Message):
        await safe_send_text(target, text, reply_markup=InlineKeyboardMarkup(PREVIEW_BUTTONS))
    else:
        await safe_edit_text(target, text, reply_markup=InlineKeyboardMarkup(PREVIEW_BUTTONS))


async def selected_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    _draft(context)['deck_id'] = query.data.split('_', 1)[1]  # deck_<id>
    await preview(query, context)
    return AddCardState.CONFIRMATION_PREVIEW


async def create_new_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    await safe_edit_text(query, "\u270f\ufe0f Name for the new deck:")
    return AddCardState.CREATING_DECK


async def create_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user_id = update.effective_user.id
    deck_name = (update.message.text or '').strip()

    problem = deck_name_problem(user_id, deck_name)
    if problem:
        await safe_send_text(update.message, problem)
        return AddCardState.CREATING_DECK

    draft = _draft(context)
    draft['deck_id'] = db.create_deck(user_id, deck_name)

    if draft['card']:
        await preview(update.message, context)
        return AddCardState.CONFIRMATION_PREVIEW

    await safe_send_text(update.message, f"\u2705 \"{html.escape(deck_name)}\" is ready. Now the card:\n\n{FORMAT_HINT}")
    return AddCardState.AWAITING_CONTENT


async def save_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    draft = context.user_data.pop('draft', None) or {}
    card_data, deck_id = draft.get('card'), draft.get('deck_id')

    if not card_data or not deck_id or db.get_deck_name(user_id, deck_id) is None:
        await safe_edit_text(
            query,
            "\u26a0\ufe0f This card was lost (the deck may be gone). Start again from the menu.",
            reply_markup=InlineKeyboardMarkup([MENU_BUTTON]),
        )
        return ConversationHandler.END

    card = db.save_card(user_id, card_data, deck_id)
    db.set_current_deck(user_id, deck_id)
    logging.info(f"User {user_id} added card {card.id} to deck {deck_id}")

    await safe_edit_text(
        query,
        "\u2705 Saved. You'll see it in your next review.",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("\U0001f4dd Next card", callback_data='add_card'),
             InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
        ]),
    )
    return ConversationHandler.END


async def edit_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    await safe_edit_text(query, f"\u270f\ufe0f Send the corrected card.\n\n{FORMAT_HINT}")
    return AddCardState.AWAITING_CONTENT


async def change_deck(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    return await _ask_for_deck(query, update.effective_user.id)


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel button, Menu button or /cancel: drop the draft, back to the menu."""
    context.user_data.pop('draft', None)
    text, markup = build_main_menu(update.effective_user.id)

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)
    return ConversationHandler.END


# ── Editing saved cards ──────────────────────────────────────

async def start_card_edit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    card = db.get_card(update.effective_user.id, query.data.split('_', 2)[2])  # card_edit_<id>
    if card is None:
        await safe_edit_text(query, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return ConversationHandler.END

    context.user_data['editing_card_id'] = card.id
    await safe_edit_text(
        query,
        f"\u270f\ufe0f Now:\n<code>{html.escape(card.front)} | {html.escape(card.back)}</code>\n\n"
        f"Send the new version.\n{FORMAT_HINT}",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("\u2190 Back", callback_data=f'card_info_{card.id}')]
        ]),
    )
    return CardEditState.EDITING_CONTENT


async def receive_card_edit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user_id = update.effective_user.id
    card_id = context.user_data.get('editing_card_id')
    if card_id is None:
        return ConversationHandler.END

    parsed = utils.parse_text(update.message.text or '')
    problem = _content_problem(parsed)
    if problem:
        await safe_send_text(update.message, problem)
        return CardEditState.EDITING_CONTENT

    context.user_data.pop('editing_card_id', None)
    try:
        db.update_card_content(user_id, card_id, parsed['front'], parsed['back'])
    except KeyError:
        await safe_send_text(update.message, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return ConversationHandler.END

    card = db.add_tags(user_id, card_id, parsed['tags'])
    logging.info(f"User {user_id} edited card {card_id}")

    text, markup = card_view(card)
    await safe_send_text(update.message, f"\u2705 Updated\n\n{text}", reply_markup=markup)
    return ConversationHandler.END


def _tag_screen(card: Card, known: list[str]) -> tuple[str, InlineKeyboardMarkup]:
    lines = [f"\U0001f3f7 <b>{html.escape(card.front)}</b>"]
    if card.tags:
        lines.append(html.escape(' '.join('#' + t for t in card.tags)))
    unused = [t for t in known if t not in card.tags]
    if unused:
        lines.append(f"\nIn use elsewhere: {html.escape(' '.join('#' + t for t in unused[:15]))}")
    lines.append("\n<i>Send tags to add them, tap one below to remove it.</i>")

    rows = [
        [InlineKeyboardButton(f"\u2716 #{tag}", callback_data=f'card_untag_{card.id}_{n}')]
        for n, tag in enumerate(card.tags)
    ]
    rows.append([InlineKeyboardButton("\u2705 Done", callback_data=f'card_info_{card.id}')])
    return '\n'.join(lines), InlineKeyboardMarkup(rows)


async def start_tagging(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    card = db.get_card(user_id, query.data.split('_', 2)[2])  # card_tags_<id>
    if card is None:
        await safe_edit_text(query, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return ConversationHandler.END

    context.user_data['editing_card_id'] = card.id
    text, markup = _tag_screen(card, db.get_all_tags(user_id))
    await safe_edit_text(query, text, reply_markup=markup)
    return CardEditState.EDITING_TAGS


async def receive_tags(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user_id = update.effective_user.id
    card_id = context.user_data.get('editing_card_id')
    card = db.add_tags(user_id, card_id, utils.parse_tags(update.message.text or '')) if card_id else None
    if card is None:
        context.user_data.pop('editing_card_id', None)
        await safe_send_text(update.message, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return ConversationHandler.END

    text, markup = _tag_screen(card, db.get_all_tags(user_id))
    await safe_send_text(update.message, text, reply_markup=markup)
    return CardEditState.EDITING_TAGS


async def untag(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    user_id = update.effective_user.id
    _, _, card_id, n = query.data.split('_')  # card_untag_<id>_<n>
    card = db.get_card(user_id, card_id)
    if card is None:
        await safe_edit_text(query, "That card no longer exists.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
        return ConversationHandler.END

    if int(n) < len(card.tags):
        card = db.remove_tag(user_id, card_id, card.tags[int(n)])
    text, markup = _tag_screen(card, db.get_all_tags(user_id))
    await safe_edit_text(query, text, reply_markup=markup)
    return CardEditState.EDITING_TAGS


async def back_to_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop('editing_card_id', None)
    await card_info(update, context)
    return ConversationHandler.END


async def cancel_card_edit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop('editing_card_id', None)
    await safe_send_text(update.message, "Cancelled.", reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
    return ConversationHandler.END
