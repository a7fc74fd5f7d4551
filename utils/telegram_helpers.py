"""
Guarded Telegram API calls for the handlers.

A failed send or edit is logged and reported as False; it never takes the
handler down with it. Editing falls back to a fresh reply when the original
message can't be edited (too old, deleted, identical markup quirks).

Messages go out as HTML, so card sides, deck names and tags must be passed
through html.escape() first:

    await safe_edit_text(query, f"\U0001f4c1 {html.escape(deck.name)}")
"""

import logging
from typing import Awaitable

from telegram import CallbackQuery, InlineKeyboardMarkup, Message
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError

logger = logging.getLogger(__name__)

PARSE_MODE = 'HTML'


async def _deliver(action: str, call: Awaitable) -> bool:
    try:
        await call
    except Forbidden:
        logger.warning(f"{action}: bot was blocked by user")
        return False
    except (TimedOut, NetworkError) as e:
        logger.warning(f"{action} network error: {e}")
        return False
    except BadRequest as e:
        logger.warning(f"{action} rejected: {e}")
        return False
    return True


async def safe_edit_text(
    query: CallbackQuery,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
) -> bool:
    try:
        await query.edit_message_text(text, reply_markup=reply_markup, parse_mode=PARSE_MODE)
        return True
    except BadRequest as e:
        if "message is not modified" in str(e).lower():
            return True
        logger.info(f"Edit failed ({e}), replying instead")
    except (TimedOut, NetworkError) as e:
        logger.warning(f"edit network error: {e}")
        return False

    return await _deliver(
        'reply after failed edit',
        query.message.reply_text(text, reply_markup=reply_markup, parse_mode=PARSE_MODE),
    )


async def safe_send_text(
    message: Message,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
) -> bool:
    return await _deliver(
        'send',
        message.reply_text(text, reply_markup=reply_markup, parse_mode=PARSE_MODE),
    )


async def safe_send_document(
    message: Message,
    content: bytes,
    filename: str,
    caption: str | None = None,
) -> bool:
    """Send raw bytes as a file attachment (no parse mode on the caption)."""
    return await _deliver(
        'send document',
        message.reply_document(document=content, filename=filename, caption=caption),
    )
