import logging

from telegram import Update
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError, TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    MessageHandler,
    ConversationHandler,
    CallbackQueryHandler,
    ContextTypes,
    filters,
)

from config import TG_BOT_TOKEN, PROXY_URL
from database.database import init_db
import handlers.cards as hand_card
import handlers.challenge as hand_challenge
import handlers.decks as hand_deck
import handlers.help as hand_help
import handlers.review as hand_review
import handlers.start as hand_start
import handlers.stats as hand_stats
import handlers.transfer as hand_transfer
from utils.constants import AddCardState, CardEditState, ChallengeState, ImportState, ReviewState, ID_PATTERN
from utils.srs import CORRECT, INCORRECT

TEXT_INPUT = filters.TEXT & ~filters.COMMAND

COMMANDS = {
    'start': hand_start.start,
    'review': hand_review.review_command,
    'challenge': hand_challenge.challenge_command,
    'stats': hand_stats.stats_command,
    'decks': hand_deck.decks_command,
    'export': hand_transfer.export_command,
    'help': hand_help.help_command,
    'reset': hand_start.reset_command,
}

# Buttons that work outside any conversation
CALLBACKS = [
    ('main_menu', hand_start.main_menu),
    ('stats', hand_stats.stats_entry),
    ('help', hand_help.help_entry),
    ('reset_yes', hand_start.reset_confirmed),
    ('my_decks', hand_deck.my_decks_entry),
    (r'decks_page_\d+', hand_deck.decks_page),
    (rf'deck_open_{ID_PATTERN}', hand_deck.deck_open),
    (rf'deck_page_{ID_PATTERN}_\d+', hand_deck.deck_cards_page),
    (rf'deck_use_{ID_PATTERN}', hand_deck.deck_use),
    (rf'deck_export_{ID_PATTERN}', hand_transfer.deck_export),
    (rf'deck_delete_{ID_PATTERN}', hand_deck.deck_delete_confirm),
    (rf'deck_delete_yes_{ID_PATTERN}', hand_deck.deck_delete_yes),
    (rf'card_info_{ID_PATTERN}', hand_deck.card_info),
    (rf'card_delete_{ID_PATTERN}', hand_deck.card_delete_confirm),
    (rf'card_delete_yes_{ID_PATTERN}', hand_deck.card_delete_yes),
]

# BadRequest texts that only mean the user tapped an old or repeated button
HARMLESS_BAD_REQUESTS = (
    'message is not modified',
    'message to edit not found',
    'message to delete not found',
    'query is too old',
)


def _conversation(entry_points, states, cancel) -> ConversationHandler:
    return ConversationHandler(
        entry_points=entry_points,
        states=states,
        fallbacks=[
            CommandHandler('cancel', cancel),
            CommandHandler('start', hand_start.force_start),
        ],
        per_message=False,
    )


def add_card_conversation() -> ConversationHandler:
    return _conversation(
        [CallbackQueryHandler(hand_card.add_card_entry, pattern='^add_card$')],
        {
            AddCardState.AWAITING_CONTENT: [
                CallbackQueryHandler(hand_card.cancel, pattern='^main_menu$'),
                MessageHandler(TEXT_INPUT, hand_card.get_content),
            ],
            AddCardState.AWAITING_DECK: [
                CallbackQueryHandler(hand_card.selected_deck, pattern=rf'^deck_{ID_PATTERN}$'),
                CallbackQueryHandler(hand_card.create_new_deck, pattern='^new_deck$'),
                CallbackQueryHandler(hand_card.cancel, pattern='^cancel$'),
            ],
            AddCardState.CREATING_DECK: [
                MessageHandler(TEXT_INPUT, hand_card.create_deck),
            ],
            AddCardState.CONFIRMATION_PREVIEW: [
                CallbackQueryHandler(hand_card.save_card, pattern='^save_card$'),
                CallbackQueryHandler(hand_card.edit_card, pattern='^edit_card$'),
                CallbackQueryHandler(hand_card.change_deck, pattern='^change_deck$'),
                CallbackQueryHandler(hand_card.cancel, pattern='^cancel$'),
            ],
        },
        hand_card.cancel,
    )


def review_conversation() -> ConversationHandler:
    stop = CallbackQueryHandler(hand_review.cancel_review, pattern='^cancel_review$')
    return _conversation(
        [CallbackQueryHandler(hand_review.review_entry, pattern='^review$')],
        {
            ReviewState.DECK_PICKER: [
                # before the id pattern, 'all' would match it too
                CallbackQueryHandler(hand_review.review_all_decks, pattern='^review_deck_all$'),
                CallbackQueryHandler(hand_review.review_deck_selected, pattern=rf'^review_deck_{ID_PATTERN}$'),
            ],
            ReviewState.SHOWING_FRONT: [
                CallbackQueryHandler(hand_review.show_answer, pattern='^show_answer$'),
                stop,
            ],
            ReviewState.RATING: [
                CallbackQueryHandler(hand_review.rate_card, pattern=f'^rate_({CORRECT}|{INCORRECT})$'),
                stop,
            ],
        },
        hand_review.cancel_review,
    )


def challenge_conversation() -> ConversationHandler:
    return _conversation(
        [CallbackQueryHandler(hand_challenge.challenge_entry, pattern='^challenge$')],
        {
            ChallengeState.ANSWERING: [
                CallbackQueryHandler(hand_challenge.answer_choice, pattern=r'^ch_\d+$'),
                CallbackQueryHandler(hand_challenge.cancel_challenge, pattern='^cancel_challenge$'),
            ],
        },
        hand_challenge.cancel_challenge,
    )


def import_conversation() -> ConversationHandler:
    return _conversation(
        [
            CallbackQueryHandler(hand_transfer.import_entry, pattern='^import$'),
            CommandHandler('import', hand_transfer.import_command),
        ],
        {
            ImportState.AWAITING_FILE: [
                MessageHandler(filters.Document.ALL, hand_transfer.receive_file),
                MessageHandler(TEXT_INPUT, hand_transfer.receive_text),
                CallbackQueryHandler(hand_transfer.cancel_import, pattern='^cancel_import$'),
            ],
        },
        hand_transfer.cancel_import,
    )


def card_edit_conversation() -> ConversationHandler:
    back = CallbackQueryHandler(hand_card.back_to_card, pattern=rf'^card_info_{ID_PATTERN}$')
    return _conversation(
        [
            CallbackQueryHandler(hand_card.start_card_edit, pattern=rf'^card_edit_{ID_PATTERN}$'),
            CallbackQueryHandler(hand_card.start_tagging, pattern=rf'^card_tags_{ID_PATTERN}$'),
        ],
        {
            CardEditState.EDITING_CONTENT: [
                MessageHandler(TEXT_INPUT, hand_card.receive_card_edit),
                back,
            ],
            CardEditState.EDITING_TAGS: [
                MessageHandler(TEXT_INPUT, hand_card.receive_tags),
                CallbackQueryHandler(hand_card.untag, pattern=rf'^card_untag_{ID_PATTERN}_\d+$'),
                back,
            ],
        },
        hand_card.cancel_card_edit,
    )


def register_handlers(application: Application) -> None:
    # Conversations first so their /start fallback wins while a flow is open
    application.add_handler(add_card_conversation())
    application.add_handler(review_conversation())
    application.add_handler(challenge_conversation())
    application.add_handler(import_conversation())
    application.add_handler(card_edit_conversation())
    application.add_handler(hand_deck.new_deck_handler)
    application.add_handler(hand_deck.rename_deck_handler)

    for name, callback in COMMANDS.items():
        application.add_handler(CommandHandler(name, callback))

    for pattern, callback in CALLBACKS:
        application.add_handler(CallbackQueryHandler(callback, pattern=f'^{pattern}$'))

    application.add_error_handler(error_handler)


def main() -> None:
    builder = ApplicationBuilder().token(TG_BOT_TOKEN)
    if PROXY_URL:
        builder = builder.proxy(PROXY_URL).get_updates_proxy(PROXY_URL)
    application = builder.build()

    register_handlers(application)
    logging.info("Polling for updates")
    application.run_polling()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Log whatever a handler raised; tell the user unless it was a transport hiccup."""
    error = context.error

    if isinstance(error, Forbidden):
        logging.warning(f"Blocked by user: {error}")
        return
    if isinstance(error, (TimedOut, NetworkError)):
        logging.warning(f"Telegram unreachable: {error}")
        return
    if isinstance(error, BadRequest) and any(s in str(error).lower() for s in HARMLESS_BAD_REQUESTS):
        logging.debug(f"Ignored stale request: {error}")
        return

    logging.error(f"Unhandled error while processing {update}", exc_info=error)

    if isinstance(update, Update) and update.effective_chat:
        try:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="\u26a0\ufe0f Something broke on my side. /start gets you back to the menu.",
            )
        except TelegramError as e:
            logging.warning(f"Could not report the error to the user: {e}")


if __name__ == '__main__':
    init_db()
    main()
