"""interactive-flashcards: terminal flashcard quizzes with AI answer grading."""

__version__ = "0.1.0"
