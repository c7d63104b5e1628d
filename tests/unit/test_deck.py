"""
Unit tests for CSV deck loading.
"""

import pytest

from flashcards.quiz.deck import DeckError, deck_name, list_decks, load_deck, parse_csv_line


class TestParseCsvLine:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ("What is 2+2?,4", ("What is 2+2?", "4")),
            ('"Capital, of France?",Paris', ("Capital, of France?", "Paris")),
            ('Q,"A, with comma"', ("Q", "A, with comma")),
            ('"Say ""hi""",hello', ('Say "hi"', "hello")),
            ("Q,a,b,c", ("Q", "a,b,c")),
            ("no separator", ("no separator", "")),
        ],
    )
    def test_parse(self, line, expected):
        assert parse_csv_line(line) == expected


class TestLoadDeck:
    def test_loads_cards_in_file_order(self, deck_dir):
        cards = load_deck(deck_dir / "basics.csv")

        assert [c.question for c in cards] == ["What is 2+2?", "Capital of France?", 'Say "hi"']
        assert cards[2].answer == "hi, there"
        assert all(c.user_answer is None and c.feedback is None for c in cards)

    def test_skips_blank_and_incomplete_lines(self, tmp_path):
        path = tmp_path / "partial.csv"
        path.write_text("Q1,A1\n\n   \nonly question\n,only answer\nQ2,A2\n", encoding="utf-8")

        cards = load_deck(path)

        assert [(c.question, c.answer) for c in cards] == [("Q1", "A1"), ("Q2", "A2")]

    def test_shuffle_keeps_all_cards(self, deck_dir):
        cards = load_deck(deck_dir / "basics.csv", shuffle=True)
        assert sorted(c.answer for c in cards) == ["4", "Paris", "hi, there"]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(DeckError):
            load_deck(tmp_path / "nope.csv")


class TestListDecks:
    def test_lists_csv_files_sorted(self, tmp_path):
        (tmp_path / "b.csv").write_text("q,a\n")
        (tmp_path / "a.csv").write_text("q,a\n")
        (tmp_path / "notes.txt").write_text("ignore me")

        assert [p.name for p in list_decks(tmp_path)] == ["a.csv", "b.csv"]

    def test_missing_directory_is_empty(self, tmp_path):
        assert list_decks(tmp_path / "missing") == []

    def test_deck_name_is_stem(self, tmp_path):
        assert deck_name(tmp_path / "networking.csv") == "networking"
