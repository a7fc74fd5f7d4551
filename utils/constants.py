from enum import auto, IntEnum
from telegram import InlineKeyboardButton

from utils.models import ID_PATTERN  # noqa: F401

DECK_NAME_MAX = 50
CARD_SIDE_MAX = 1000


class AddCardState(IntEnum):
    AWAITING_CONTENT = auto()
    AWAITING_DECK = auto()
    CREATING_DECK = auto()
    CONFIRMATION_PREVIEW = auto()


class ReviewState(IntEnum):
    DECK_PICKER = auto()
    SHOWING_FRONT = auto()
    RATING = auto()


class ChallengeState(IntEnum):
    ANSWERING = auto()


class DeckState(IntEnum):
    NAMING_DECK = auto()
    RENAMING_DECK = auto()


class ImportState(IntEnum):
    AWAITING_FILE = auto()


class CardEditState(IntEnum):
    EDITING_CONTENT = auto()
    EDITING_TAGS = auto()


PREVIEW_BUTTONS = [
    [InlineKeyboardButton("\u2705 Save", callback_data='save_card')],
    [
        InlineKeyboardButton("\u270f\ufe0f Edit", callback_data='edit_card'),
        InlineKeyboardButton("\U0001f4c1 Deck", callback_data='change_deck'),
    ],
    [InlineKeyboardButton("\u2716 Cancel", callback_data='cancel')],
]

MENU_BUTTON = [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
