"""
Messages exchanged between the quiz loop and the evaluation worker.

Requests flow loop -> worker, outcomes flow worker -> loop. Every outcome
carries the ``index`` and ``generation`` of the request it answers so the loop
can route it to the right card and drop it if the request was superseded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from flashcards.ai.models import Feedback, SessionAssessment


@dataclass(frozen=True)
class EvaluationRequest:
    """Grade one answer. ``index`` is the card's stable deck position."""

    index: int
    question: str
    correct_answer: str
    user_answer: str
    generation: int = 0


@dataclass(frozen=True)
class CardSummary:
    """One answered card as sent for a session assessment."""

    question: str
    answer: str
    user_answer: str
    feedback: Feedback | None = None


@dataclass(frozen=True)
class AssessmentRequest:
    """Assess a whole session."""

    session_id: int | None
    deck_name: str
    cards: tuple[CardSummary, ...] = field(default_factory=tuple)
    total_cards: int = 0
    generation: int = 0


@dataclass(frozen=True)
class ChatRequest:
    """
    Follow-up question about a graded card.

    ``history`` holds the earlier turns as ``(role, content)`` pairs, oldest
    first, without ``user_message``.
    """

    index: int
    question: str
    correct_answer: str
    user_answer: str
    initial_feedback: str
    user_message: str
    history: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    generation: int = 0


@dataclass(frozen=True)
class EvaluationSuccess:
    index: int
    feedback: Feedback
    generation: int = 0


@dataclass(frozen=True)
class EvaluationFailure:
    index: int
    error: str
    kind: str
    generation: int = 0


@dataclass(frozen=True)
class AssessmentSuccess:
    session_id: int | None
    assessment: SessionAssessment
    generation: int = 0


@dataclass(frozen=True)
class AssessmentFailure:
    session_id: int | None
    error: str
    kind: str
    generation: int = 0


@dataclass(frozen=True)
class ChatSuccess:
    index: int
    reply: str
    generation: int = 0


@dataclass(frozen=True)
class ChatFailure:
    index: int
    error: str
    kind: str
    generation: int = 0


WorkerRequest = Union[EvaluationRequest, AssessmentRequest, ChatRequest]
EvaluationOutcome = Union[EvaluationSuccess, EvaluationFailure]
AssessmentOutcome = Union[AssessmentSuccess, AssessmentFailure]
ChatOutcome = Union[ChatSuccess, ChatFailure]
WorkerOutcome = Union[EvaluationOutcome, AssessmentOutcome, ChatOutcome]
