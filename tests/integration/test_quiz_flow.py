"""
Integration tests: quiz session, evaluation worker and store working together.

The worker runs as a real asyncio task against an in-process fake client;
the test plays the quiz loop by draining outcomes between user actions.
"""

import asyncio

import pytest
import pytest_asyncio

from flashcards.ai.channel import Channel
from flashcards.ai.worker import EvaluationWorker
from flashcards.quiz.models import EvaluationStatus
from flashcards.quiz.session import QuizSession

pytestmark = pytest.mark.integration


def grade_by_answer(question, user_answer):
    correct = user_answer.strip().lower() in {"4", "paris", "9"}
    return (
        '```json\n{"is_correct": %s, "correctness_score": %s, "explanation": "graded"}\n```'
        % ("true" if correct else "false", "1.0" if correct else "0.0")
    )


async def settle(session, until, timeout=2.0):
    """Drain outcomes like the quiz loop does until ``until()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not until():
        session.drain_outcomes()
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


@pytest_asyncio.fixture
async def runtime(sample_cards, store, fake_client):
    fake_client.reply = grade_by_answer
    requests, outcomes = Channel(capacity=1), Channel(capacity=1)
    session_id = store.create_session("basics", sample_cards)
    session = QuizSession(
        sample_cards,
        "basics",
        requests=requests,
        outcomes=outcomes,
        store=store,
        session_id=session_id,
    )
    worker = EvaluationWorker(requests, outcomes, client_factory=lambda: fake_client, timeout=0.5)
    task = asyncio.create_task(worker.run())

    yield session, fake_client

    requests.close()
    outcomes.close_receiver()
    await asyncio.wait_for(task, timeout=2.0)


@pytest.mark.asyncio
async def test_feedback_follows_card_while_user_moves_on(runtime, store):
    session, client = runtime
    client.delay = 0.05

    session.submit_answer("4")
    session.next_card()
    session.next_card()

    await settle(session, lambda: session.in_flight is None)

    assert session.current_index == 2
    assert session.flashcards[0].feedback.is_correct is True
    assert session.flashcards[2].feedback is None
    stored = store.load_flashcards(session.session_id)
    assert stored[0].feedback == session.flashcards[0].feedback


@pytest.mark.asyncio
async def test_answering_every_card_grades_every_card(runtime):
    session, client = runtime

    for answer in ["4", "Lyon", "9"]:
        session.submit_answer(answer)
        await settle(session, lambda: session.in_flight is None)
        session.next_card()

    assert [c.feedback.is_correct for c in session.flashcards] == [True, False, True]
    assert client.max_active == 1
    answered, average = session.calculate_stats()
    assert answered == 3
    assert average == pytest.approx(200 / 3)


@pytest.mark.asyncio
async def test_cancelled_evaluation_never_lands(runtime):
    session, client = runtime
    client.delay = 0.1

    session.submit_answer("4")
    session.cancel_evaluation()

    # Let the worker finish the abandoned request and deliver it.
    await asyncio.sleep(0.2)
    session.drain_outcomes()

    assert session.flashcards[0].feedback is None
    assert session.status == EvaluationStatus.IDLE

    client.delay = 0.0
    assert session.retry_evaluation() is True
    await settle(session, lambda: session.in_flight is None)
    assert session.flashcards[0].feedback is not None


@pytest.mark.asyncio
async def test_timeout_then_retry(runtime):
    session, client = runtime
    client.delay = 1.0

    session.submit_answer("4")
    await settle(session, lambda: session.in_flight is None)

    assert session.status == EvaluationStatus.TIMED_OUT
    assert "timed out after 0.5 seconds" in session.last_error

    client.delay = 0.0
    session.retry_evaluation()
    await settle(session, lambda: session.in_flight is None)

    assert session.status == EvaluationStatus.SUCCEEDED
    assert session.flashcards[0].feedback.is_correct is True


@pytest.mark.asyncio
async def test_assessment_is_persisted(runtime, store):
    session, client = runtime

    session.submit_answer("4")
    await settle(session, lambda: session.in_flight is None)

    assert session.request_assessment() is True
    await settle(session, lambda: session.in_flight is None)

    assert session.assessment is not None
    assert session.assessment.grade_percentage == 75.0
    assert store.get_assessment(session.session_id) == session.assessment


@pytest.mark.asyncio
async def test_follow_up_chat_is_stored(runtime, store):
    session, client = runtime

    session.submit_answer("5")
    await settle(session, lambda: session.in_flight is None)
    assert session.open_chat() is True

    session.send_chat_message("What should I have answered?")
    await settle(session, lambda: session.in_flight is None)
    session.send_chat_message("Thanks")
    await settle(session, lambda: session.in_flight is None)

    chat_calls = [call for call in client.calls if call[0] == "chat"]
    assert len(chat_calls) == 2
    assert chat_calls[1][3][0] == ("user", "What should I have answered?")

    card_id = session.flashcards[0].id
    stored = store.load_chat_messages(card_id)
    assert [m.order for m in stored] == [0, 1, 2, 3]
    assert stored[1].content == client.chat_reply
