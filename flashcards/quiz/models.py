"""Quiz domain objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from flashcards.ai.models import Feedback


@dataclass
class Flashcard:
    """One question/answer card and what the user did with it."""

    question: str
    answer: str
    user_answer: str | None = None
    feedback: Feedback | None = None
    persisted: bool = False  # user_answer has been written to the store
    id: int | None = None  # store row id, stable across resume

    @property
    def is_answered(self) -> bool:
        return self.user_answer is not None


class EvaluationStatus(str, Enum):
    """Per-request evaluation lifecycle as seen by the quiz loop."""

    IDLE = "idle"
    REQUESTED = "requested"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class RequestKind(str, Enum):
    EVALUATION = "evaluation"
    ASSESSMENT = "assessment"
    CHAT = "chat"


@dataclass(frozen=True)
class InFlight:
    """Bookkeeping for the one outstanding worker request."""

    generation: int
    started_at: float  # time.monotonic()
    index: int | None = None  # None for a session assessment
    kind: RequestKind = RequestKind.EVALUATION


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass
class ChatMessage:
    """One turn of a follow-up chat about a card."""

    role: ChatRole
    content: str
    order: int = 0


@dataclass
class ChatState:
    """The open chat for one card. ``messages`` is shared with the session's cache."""

    index: int
    messages: list[ChatMessage] = field(default_factory=list)
    error: str | None = None
