"""
Tests for utils/utils.py — parse_text and parse_bulk_text (pure Python, no Telegram objects).
"""
from utils.utils import get_buttons, parse_bulk_text, parse_tags, parse_text


class TestParseText:
    # ── Pipe separator ────────────────────────────────────────

    def test_pipe_basic(self):
        r = parse_text("bonjour | hello")
        assert r['front'] == 'bonjour'
        assert r['back'] == 'hello'
        assert r['tags'] == []

    def test_pipe_strips_whitespace(self):
        r = parse_text("  bonjour  |  hello  ")
        assert (r['front'], r['back']) == ('bonjour', 'hello')

    def test_pipe_splits_on_first_only(self):
        r = parse_text("x | y | z")
        assert r['front'] == 'x'
        assert r['back'] == 'y | z'

    def test_pipe_empty_back(self):
        r = parse_text("bonjour |")
        assert r['front'] == 'bonjour'
        assert r['back'] == ''

    # ── Newline separator ─────────────────────────────────────

    def test_two_lines(self):
        r = parse_text("bonjour\nhello")
        assert (r['front'], r['back']) == ('bonjour', 'hello')

    def test_extra_lines_join_the_back(self):
        r = parse_text("to be\nêtre\n(irregular)")
        assert r['front'] == 'to be'
        assert r['back'] == 'être\n(irregular)'

    def test_blank_lines_ignored(self):
        r = parse_text("\n\nbonjour\n\n\nhello\n")
        assert (r['front'], r['back']) == ('bonjour', 'hello')

    def test_pipe_takes_priority_over_newline(self):
        r = parse_text("a | b\nc")
        assert r['front'] == 'a'
        assert r['back'] == 'b\nc'

    # ── Single line / empty ───────────────────────────────────

    def test_single_line_gives_empty_back(self):
        r = parse_text("  only a front  ")
        assert r['front'] == 'only a front'
        assert r['back'] == ''

    def test_empty_string(self):
        r = parse_text("")
        assert (r['front'], r['back'], r['tags']) == ('', '', [])

    # ── Tags line ─────────────────────────────────────────────

    def test_trailing_tags_line(self):
        r = parse_text("bonjour | hello\n#greeting #a1")
        assert r['back'] == 'hello'
        assert r['tags'] == ['greeting', 'a1']

    def test_tags_after_two_lines(self):
        r = parse_text("bonjour\nhello\n#greeting")
        assert (r['front'], r['back'], r['tags']) == ('bonjour', 'hello', ['greeting'])

    def test_mixed_line_is_not_tags(self):
        r = parse_text("bonjour\nhello #greeting")
        assert r['back'] == 'hello #greeting'
        assert r['tags'] == []

    def test_lone_hash_is_not_a_tag(self):
        r = parse_text("bonjour\n#")
        assert r['back'] == '#'
        assert r['tags'] == []


class TestParseBulkText:
    def test_comma_rows(self):
        rows = parse_bulk_text("chat,cat\nchien,dog", 'd1')
        assert rows == [
            {'front': 'chat', 'back': 'cat', 'deckId': 'd1'},
            {'front': 'chien', 'back': 'dog', 'deckId': 'd1'},
        ]

    def test_tab_rows(self):
        rows = parse_bulk_text("un, deux\tone, two", 'd1')
        assert rows == [{'front': 'un, deux', 'back': 'one, two', 'deckId': 'd1'}]

    def test_header_skipped(self):
        rows = parse_bulk_text("Front,Back\nchat,cat", 'd1')
        assert [r['front'] for r in rows] == ['chat']

    def test_extra_fields_ignored(self):
        rows = parse_bulk_text("chat,cat,noun", 'd1')
        assert rows[0]['back'] == 'cat'

    def test_incomplete_rows_dropped(self):
        rows = parse_bulk_text("chat,\n,dog\nlonely\n\n  \nsoleil , sun ", 'd1')
        assert rows == [{'front': 'soleil', 'back': 'sun', 'deckId': 'd1'}]

    def test_quoted_field_keeps_delimiter(self):
        rows = parse_bulk_text('"1,000",thousand\nmille, "a thousand, roughly"', 'd1')
        assert rows == [
            {'front': '1,000', 'back': 'thousand', 'deckId': 'd1'},
            {'front': 'mille', 'back': 'a thousand, roughly', 'deckId': 'd1'},
        ]

    def test_empty_input(self):

        assert parse_bulk_text("", 'd1') == []


class TestParseTags:
    def test_hash_optional(self):
        assert parse_tags("#verbs b1") == ['verbs', 'b1']

    def test_duplicates_and_bare_hashes_dropped(self):
        assert parse_tags("#verbs # #verbs  ##b1") == ['verbs', 'b1']

    def test_empty(self):
        assert parse_tags("   ") == []


class TestGetButtons:

    def test_one_button_per_row(self):
        buttons = get_buttons([{'id': 'abc', 'name': 'French'}, {'id': 'xyz', 'name': 'German'}], 'deck')
        assert len(buttons) == 2
        assert buttons[0][0].text == 'French'
        assert buttons[0][0].callback_data == 'deck_abc'
