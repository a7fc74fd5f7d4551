import csv
from typing import Any

from telegram import InlineKeyboardButton


def _split_tags(lines: list[str]) -> tuple[list[str], list[str]]:
    """Pull a trailing '#tag #other' line off the message."""
    if len(lines) < 2:
        return lines, []
    words = lines[-1].split()
    if words and all(w.startswith('#') and len(w) > 1 for w in words):
        return lines[:-1], [w[1:] for w in words]
    return lines, []


def parse_text(content: str) -> dict[str, Any]:
    """
    returns: {'front': str, 'back': str, 'tags': list[str]}
    """
    lines = [l.strip() for l in content.strip().split('\n') if l.strip()]
    lines, tags = _split_tags(lines)
    text = '\n'.join(lines)

    if '|' in text:
        parts = text.split('|', 1)
        return {'front': parts[0].strip(), 'back': parts[1].strip(), 'tags': tags}

    if len(lines) >= 2:
        return {'front': lines[0], 'back': '\n'.join(lines[1:]), 'tags': tags}

    return {'front': text, 'back': '', 'tags': tags}


def parse_tags(content: str) -> list[str]:
    """'#verbs b1 #verbs' -> ['verbs', 'b1']"""
    tags: list[str] = []
    for word in content.split():
        tag = word.lstrip('#')
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def parse_bulk_text(content: str, deck_id: str) -> list[dict[str, Any]]:
    """
    One card per line, tab- or comma-separated, double quotes around fields
    that contain the delimiter. A 'front,back' header row is skipped and rows
    missing either side are dropped.
    """
    lines = content.split('\n')
    header = lines[0].lower()
    start = 1 if 'front' in header and 'back' in header else 0

    entries: list[dict[str, Any]] = []
    for line in lines[start:]:
        line = line.strip()
        if not line:
            continue

        delimiter = '\t' if '\t' in line else ','
        row = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True))
        parts = [p.strip() for p in row]
        front = parts[0]
        back = parts[1] if len(parts) > 1 else ''

        if front and back:
            entries.append({'front': front, 'back': back, 'deckId': deck_id})
    return entries


def get_buttons(items: list[dict[str, str | int]], prefix: str) -> list[list[InlineKeyboardButton]]:
    buttons: list[list[InlineKeyboardButton]] = []
    for item in items:
        buttons.append([
            InlineKeyboardButton(
                item['name'],
                callback_data=f"{prefix}_{item['id']}"
            )
        ])
    return buttons
