"""
Unit tests for the SQLite session store.
"""

from pathlib import Path

import pytest

from flashcards.ai.models import Feedback, SessionAssessment
from flashcards.db.store import SessionStore, StoreError
from flashcards.quiz.models import ChatMessage, ChatRole


def test_create_session_assigns_card_ids(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)

    record = store.get_session(session_id)
    assert record.deck_name == "basics"
    assert record.questions_total == 3
    assert record.questions_answered == 0
    assert record.is_completed is False
    assert all(card.id is not None for card in sample_cards)
    assert len({card.id for card in sample_cards}) == 3


def test_load_flashcards_keeps_display_order(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)

    loaded = store.load_flashcards(session_id)

    assert [c.question for c in loaded] == [c.question for c in sample_cards]
    assert [c.id for c in loaded] == [c.id for c in sample_cards]
    assert not any(c.persisted for c in loaded)


def test_answer_and_feedback_round_trip(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)
    feedback = Feedback(
        is_correct=False,
        correctness_score=0.25,
        corrections=["It is Paris"],
        explanation="Lyon is not the capital",
        suggestions=["Review capitals"],
    )

    store.save_answer(sample_cards[1].id, "Lyon")
    store.update_feedback(sample_cards[1].id, feedback)
    store.update_progress(session_id, 1)

    loaded = store.load_flashcards(session_id)
    assert loaded[1].user_answer == "Lyon"
    assert loaded[1].persisted is True
    assert loaded[1].feedback == feedback
    assert loaded[0].user_answer is None
    assert store.get_session(session_id).questions_answered == 1


def test_unreadable_feedback_is_dropped(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)
    store.conn.execute(
        "UPDATE flashcards SET ai_feedback = ? WHERE id = ?",
        ('{"is_correct": true, "correctness_score": 7}', sample_cards[0].id),
    )
    store.conn.commit()

    assert store.load_flashcards(session_id)[0].feedback is None


def test_complete_session(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)

    store.complete_session(session_id)

    assert store.get_session(session_id).is_completed is True


def test_list_sessions_most_recent_first(store, sample_cards):
    first = store.create_session("one", sample_cards)
    second = store.create_session("two", sample_cards)

    assert [r.id for r in store.list_sessions()] == [second, first]


def test_assessment_round_trip_and_replace(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)
    first = SessionAssessment(
        grade_percentage=40, mastery_level="Beginner", overall_feedback="Keep going"
    )
    second = SessionAssessment(
        grade_percentage=85,
        mastery_level="Advanced",
        overall_feedback="Much better",
        strengths=["Math"],
        weaknesses=["Geography"],
        suggestions=["Atlas time"],
    )

    assert store.get_assessment(session_id) is None
    store.save_assessment(session_id, first)
    store.save_assessment(session_id, second)

    assert store.get_assessment(session_id) == second


def test_delete_session_removes_everything(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)
    store.save_chat_message(sample_cards[0].id, session_id, ChatMessage(ChatRole.USER, "Why?", 0))
    store.save_assessment(
        session_id,
        SessionAssessment(grade_percentage=50, mastery_level="Intermediate", overall_feedback="ok"),
    )

    assert store.delete_session(session_id) is True
    assert store.get_session(session_id) is None
    assert store.load_flashcards(session_id) == []
    assert store.get_assessment(session_id) is None
    assert store.load_chat_messages(sample_cards[0].id) == []
    assert store.delete_session(session_id) is False


def test_persists_across_connections(tmp_path, sample_cards):
    path = tmp_path / "nested" / "flashcards.db"
    store = SessionStore(path)
    session_id = store.create_session("basics", sample_cards)
    store.save_answer(sample_cards[0].id, "4")
    store.close()

    reopened = SessionStore(path)
    try:
        assert reopened.load_flashcards(session_id)[0].user_answer == "4"
    finally:
        reopened.close()


def test_in_memory_store(sample_cards):
    store = SessionStore(Path(":memory:"))
    session_id = store.create_session("basics", sample_cards)
    assert store.get_session(session_id) is not None
    store.close()


def test_chat_messages_round_trip_in_order(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)
    card_id = sample_cards[1].id

    store.save_chat_message(card_id, session_id, ChatMessage(ChatRole.USER, "Why Paris?", 0))
    store.save_chat_message(card_id, session_id, ChatMessage(ChatRole.ASSISTANT, "Seat of government.", 1))
    store.save_chat_message(card_id, session_id, ChatMessage(ChatRole.USER, "Since when?", 2))

    messages = store.load_chat_messages(card_id)

    assert [m.role for m in messages] == [ChatRole.USER, ChatRole.ASSISTANT, ChatRole.USER]
    assert [m.content for m in messages] == ["Why Paris?", "Seat of government.", "Since when?"]
    assert [m.order for m in messages] == [0, 1, 2]
    assert store.load_chat_messages(sample_cards[0].id) == []


def test_chat_for_unknown_card_is_empty(store):
    assert store.load_chat_messages(999) == []


def test_chat_message_for_missing_card_rejected(store, sample_cards):
    session_id = store.create_session("basics", sample_cards)

    with pytest.raises(StoreError):
        store.save_chat_message(999, session_id, ChatMessage(ChatRole.USER, "Hello", 0))
