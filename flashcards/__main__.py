"""Allow running as: python -m flashcards"""

from flashcards.cli.main import run

run()
