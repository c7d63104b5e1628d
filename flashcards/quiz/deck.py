"""
CSV deck loading.

A deck is a ``.csv`` file in the deck directory with one card per line:
``question,answer``. Fields may be double-quoted; a doubled quote inside a
quoted field is a literal quote. Everything after the first separator belongs
to the answer, so answers may contain unquoted commas.
"""

from __future__ import annotations

import random
from pathlib import Path

from loguru import logger

from flashcards.quiz.models import Flashcard


class DeckError(Exception):
    """Raised when a deck file cannot be read."""


def list_decks(directory: Path) -> list[Path]:
    """Sorted ``*.csv`` files in ``directory`` (empty if it does not exist)."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix == ".csv" and p.is_file())


def deck_name(path: Path) -> str:
    return path.stem


def parse_csv_line(line: str) -> tuple[str, str]:
    """Split one deck line into (question, answer)."""
    question: list[str] = []
    answer: list[str] = []
    current = question
    in_quotes = False
    i = 0

    while i < len(line):
        c = line[i]
        nxt = line[i + 1] if i + 1 < len(line) else None

        if c == '"' and not in_quotes:
            in_quotes = True
        elif c == '"' and in_quotes:
            if nxt == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = False
                if nxt == ",":
                    i += 1
                if current is question:
                    current = answer
        elif c == "," and not in_quotes and current is question:
            current = answer
        else:
            current.append(c)
        i += 1

    return "".join(question), "".join(answer)


def load_deck(path: Path, shuffle: bool = False) -> list[Flashcard]:
    """
    Load a deck file.

    Args:
        path: CSV file
        shuffle: Shuffle once at load; card order is fixed afterwards

    Returns:
        Cards with non-blank question and answer

    Raises:
        DeckError: if the file cannot be read
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DeckError(f"Cannot read deck {path}: {e}") from e

    cards: list[Flashcard] = []
    for line_no, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        question, answer = parse_csv_line(line)
        if not question.strip() or not answer.strip():
            logger.warning("Skipping {}:{}: missing question or answer", path.name, line_no)
            continue
        cards.append(Flashcard(question=question, answer=answer))

    if shuffle:
        random.shuffle(cards)

    logger.info("Loaded {} cards from {}", len(cards), path)
    return cards
