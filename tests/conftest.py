"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import asyncio
import json
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flashcards.db.store import SessionStore  # noqa: E402
from flashcards.quiz.models import Flashcard  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (worker + session + store)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


CORRECT_REPLY = json.dumps(
    {
        "is_correct": True,
        "correctness_score": 1.0,
        "corrections": [],
        "explanation": "Exactly right.",
        "suggestions": [],
    }
)

ASSESSMENT_REPLY = json.dumps(
    {
        "grade_percentage": 75.0,
        "mastery_level": "Intermediate",
        "overall_feedback": "Solid grasp of the basics.",
        "suggestions": ["Review subnetting"],
        "strengths": ["Arithmetic"],
        "weaknesses": ["Geography"],
    }
)

CHAT_REPLY = "Paris has been the capital of France since the 10th century."


class FakeClient:
    """
    In-process stand-in for the evaluation client.

    ``reply`` is either a string or a callable ``(question, user_answer) -> str``.
    Tracks concurrency so tests can assert the worker never overlaps calls.
    """

    def __init__(
        self,
        reply=CORRECT_REPLY,
        assessment_reply=ASSESSMENT_REPLY,
        chat_reply=CHAT_REPLY,
        delay=0.0,
        error=None,
    ):
        self.reply = reply
        self.assessment_reply = assessment_reply
        self.chat_reply = chat_reply
        self.delay = delay
        self.error = error
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def evaluate(self, question, correct_answer, user_answer, config=None):
        self.calls.append(("evaluate", question, user_answer))
        reply = self.reply(question, user_answer) if callable(self.reply) else self.reply
        return await self._respond(reply)

    async def assess_session(self, deck_name, cards, total_cards, config=None):
        self.calls.append(("assess", deck_name, len(cards)))
        return await self._respond(self.assessment_reply)

    async def chat(self, question, correct_answer, user_answer, initial_feedback, history, user_message, config=None):
        self.calls.append(("chat", question, user_message, tuple(history)))
        return await self._respond(self.chat_reply)

    async def _respond(self, reply):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return reply
        finally:
            self.active -= 1

    async def aclose(self):
        self.closed = True


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fake_client():
    """Evaluation client that answers every request with a correct verdict."""
    return FakeClient()


@pytest.fixture
def sample_cards():
    """Three arithmetic/geography cards."""
    return [
        Flashcard(question="What is 2+2?", answer="4"),
        Flashcard(question="Capital of France?", answer="Paris"),
        Flashcard(question="What is 3*3?", answer="9"),
    ]


@pytest.fixture
def store(tmp_path):
    """File-backed session store in a temp directory."""
    store = SessionStore(tmp_path / "flashcards.db")
    yield store
    store.close()


@pytest.fixture
def deck_dir(tmp_path):
    """Deck directory with one small deck."""
    directory = tmp_path / "decks"
    directory.mkdir()
    (directory / "basics.csv").write_text(
        'What is 2+2?,4\n"Capital of France?",Paris\n"Say ""hi""","hi, there"\n',
        encoding="utf-8",
    )
    return directory
