"""
Quiz state: cards, decks and the single-owner session.

``QuizSession`` lives in ``flashcards.quiz.session`` and is not re-exported
here because it depends on ``flashcards.db``, which itself imports the card
model from this package.
"""

from .deck import DeckError, deck_name, list_decks, load_deck, parse_csv_line
from .models import EvaluationStatus, Flashcard, InFlight

__all__ = [
    "DeckError",
    "EvaluationStatus",
    "Flashcard",
    "InFlight",
    "deck_name",
    "list_decks",
    "load_deck",
    "parse_csv_line",
]
