from typing import Any

from telegram import Update, InlineKeyboardMarkup
from telegram.ext import ContextTypes

import database.database as db
from utils.constants import MENU_BUTTON
from utils.srs import to_datetime
from utils.stats import daily_stats, longest_streak, performance_metrics, study_streak
from utils.telegram_helpers import safe_edit_text, safe_send_text


def _forecast_lines(forecast: list[dict[str, Any]]) -> str:
    if not any(entry['count'] for entry in forecast):
        return "  No cards due in the next 7 days"

    lines = []
    for entry in forecast:
        day_label = to_datetime(entry['day']).strftime('%b %d')  # "Feb 18"
        count = entry['count']
        lines.append(f"  {day_label}  \u00b7  {count} card{'s' if count != 1 else ''}")
    return '\n'.join(lines)


def _week_lines(week: list[dict[str, Any]]) -> str:
    if not week:
        return "  No reviews yet"
    return '\n'.join(
        f"  {entry['date']}  \u00b7  {entry['cards_reviewed']} reviewed, {entry['accuracy']}%"
        for entry in week
    )


def _build_stats_text(user_id: int) -> str:
    counts = db.get_card_stats(user_id)
    forecast = db.get_forecast(user_id, days=7)
    state = db.load_state(user_id)
    metrics = performance_metrics(state.review_stats, state.decks)

    return (
        f"\U0001f4ca Stats\n\n"
        f"\U0001f4da Total: {counts['total']}\n"
        f"\U0001f195 New: {counts['new']}\n"
        f"\U0001f4d6 Learning: {counts['learning']}\n"
        f"\U0001f3c6 Mastered: {counts['mastered']}\n"
        f"\U0001f514 Due now: {counts['due_today']}\n"
        f"\U0001f4c6 Coming up this week: {counts['due_week']}\n\n"
        f"\U0001f525 Streak: {study_streak(state.review_stats)} days "
        f"(best {longest_streak(state.review_stats)})\n"
        f"\U0001f3af Accuracy: {metrics['correct_rate']}% over {metrics['total_reviews']} reviews\n"
        f"\U0001f4c8 Per study day: {metrics['average_daily_reviews']}\n\n"
        f"\U0001f5d3 Last 7 days\n"
        f"{_week_lines(daily_stats(state.review_stats))}\n\n"
        f"\U0001f4c5 Next 7 days\n"
        f"{_forecast_lines(forecast)}"
    )


async def stats_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    text = _build_stats_text(update.effective_user.id)
    await safe_edit_text(query, text, reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))


async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/stats slash command: send a fresh stats message."""
    text = _build_stats_text(update.effective_user.id)
    await safe_send_text(update.message, text, reply_markup=InlineKeyboardMarkup([MENU_BUTTON]))
