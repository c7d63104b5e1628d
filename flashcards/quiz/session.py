"""
Quiz session state.

``QuizSession`` is the single owner of everything the quiz shows: the cards,
the current position, the user's answers and the AI feedback. Only the quiz
loop mutates it. The evaluation worker runs concurrently but never sees this
object; it talks to the session through two channels:

    session.requests  (loop -> worker)  evaluation, assessment and chat requests
    session.outcomes  (worker -> loop)  success / failure outcomes

Correlation rules:
- At most one request is outstanding (``in_flight``); new requests are
  refused until it is reconciled or cancelled.
- Every request carries a generation number. The session remembers the
  generation of the latest request and cancelling bumps it, so an outcome
  whose generation differs is stale and dropped without touching any card.
- An outcome lands on the card at the index it carries, whichever card is
  on screen when it arrives.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from loguru import logger

from flashcards.ai.channel import Channel, ChannelClosed, ChannelFull
from flashcards.ai.messages import (
    AssessmentFailure,
    AssessmentRequest,
    AssessmentSuccess,
    CardSummary,
    ChatFailure,
    ChatRequest,
    ChatSuccess,
    EvaluationFailure,
    EvaluationRequest,
    EvaluationSuccess,
    WorkerOutcome,
    WorkerRequest,
)
from flashcards.ai.models import SessionAssessment
from flashcards.db.store import SessionStore, StoreError
from flashcards.quiz.models import (
    ChatMessage,
    ChatRole,
    ChatState,
    EvaluationStatus,
    Flashcard,
    InFlight,
    RequestKind,
)

CANCELLED_MESSAGE = "Evaluation cancelled"
BUSY_MESSAGE = "An AI request is already running. Press Ctrl+X (:x) to cancel it first."
QUEUE_FULL_MESSAGE = "The evaluator is still finishing a cancelled request. Try again shortly."
UNAVAILABLE_MESSAGE = "AI evaluation is not available."
PENDING_MESSAGE = "Answer saved. Press Ctrl+E (:e) to grade it once the running request finishes."
CHAT_CANCELLED_MESSAGE = "Chat request cancelled"


class QuizSession:
    """Single-owner quiz state plus evaluation bookkeeping."""

    def __init__(
        self,
        flashcards: list[Flashcard],
        deck_name: str,
        requests: Channel[WorkerRequest] | None = None,
        outcomes: Channel[WorkerOutcome] | None = None,
        store: SessionStore | None = None,
        session_id: int | None = None,
        log: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            flashcards: Cards in their final (already shuffled) order
            deck_name: Deck the cards came from
            requests: Sending side of the worker's request channel
            outcomes: Receiving side of the worker's outcome channel
            store: Persistence for answers and feedback (optional)
            session_id: Store id of this session
            log: loguru-compatible logger
            clock: Monotonic clock, injectable for tests
        """
        self.flashcards = flashcards
        self.deck_name = deck_name
        self.requests = requests
        self.outcomes = outcomes
        self.store = store
        self.session_id = session_id
        self.log = log or logger.bind(component="quiz-session")
        self._clock = clock

        self.current_index = 0
        self.showing_answer = bool(flashcards) and flashcards[0].is_answered
        self.questions_answered = sum(1 for card in flashcards if card.is_answered)

        self.status = EvaluationStatus.IDLE
        self.in_flight: InFlight | None = None
        self.generation = 0
        self.last_error: str | None = None

        self.assessment: SessionAssessment | None = None
        self.assessment_error: str | None = None

        self.chat: ChatState | None = None
        self._chats: dict[int, list[ChatMessage]] = {}

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def ai_enabled(self) -> bool:
        return self.requests is not None and self.outcomes is not None

    @property
    def evaluation_in_flight(self) -> bool:
        return self.in_flight is not None

    @property
    def in_flight_index(self) -> int | None:
        return self.in_flight.index if self.in_flight else None

    @property
    def evaluation_started_at(self) -> float | None:
        return self.in_flight.started_at if self.in_flight else None

    @property
    def assessment_loading(self) -> bool:
        return self.in_flight is not None and self.in_flight.kind == RequestKind.ASSESSMENT

    @property
    def chat_loading(self) -> bool:
        """A reply is pending for the open chat."""
        return (
            self.chat is not None
            and self.in_flight is not None
            and self.in_flight.kind == RequestKind.CHAT
            and self.in_flight.index == self.chat.index
        )

    @property
    def current_card(self) -> Flashcard:
        return self.flashcards[self.current_index]

    @property
    def is_complete(self) -> bool:
        return all(card.is_answered for card in self.flashcards)

    def elapsed(self) -> float | None:
        """Seconds since the outstanding request was sent."""
        if self.in_flight is None:
            return None
        return self._clock() - self.in_flight.started_at

    def calculate_stats(self) -> tuple[int, float]:
        """(answered count, mean AI score in percent over graded cards)."""
        scores = [
            card.feedback.correctness_score
            for card in self.flashcards
            if card.feedback is not None
        ]
        average = sum(scores) / len(scores) * 100 if scores else 0.0
        return self.questions_answered, average

    # =========================================================================
    # Navigation and answering
    # =========================================================================

    def next_card(self) -> bool:
        if self.current_index >= len(self.flashcards) - 1:
            return False
        self.current_index += 1
        self._after_navigation()
        return True

    def previous_card(self) -> bool:
        if self.current_index == 0:
            return False
        self.current_index -= 1
        self._after_navigation()
        return True

    def _after_navigation(self) -> None:
        self.showing_answer = self.current_card.is_answered
        self.last_error = None
        self.chat = None
        if self.status != EvaluationStatus.REQUESTED:
            self.status = EvaluationStatus.IDLE

    def submit_answer(self, text: str) -> bool:
        """
        Record an answer for the current card and, with AI on, request grading.

        Returns:
            False if the answer is blank
        """
        if not text.strip():
            return False

        card = self.current_card
        if not card.is_answered:
            self.questions_answered += 1
        card.user_answer = text
        card.persisted = False
        self._persist_answer(card)

        self.last_error = None
        self.showing_answer = True

        if self.ai_enabled:
            if self.in_flight is not None:
                self.last_error = PENDING_MESSAGE
            else:
                self.request_evaluation(self.current_index)
        return True

    # =========================================================================
    # Requests
    # =========================================================================

    def request_evaluation(self, index: int) -> bool:
        """
        Send the card at ``index`` for grading.

        Args:
            index: Stable deck position of the card

        Returns:
            True if a request was sent
        """
        if not self.ai_enabled:
            return False
        if self.in_flight is not None:
            self.log.debug("Evaluation already in flight, not sending {}", index)
            return False

        card = self.flashcards[index]
        if card.user_answer is None or not card.user_answer.strip():
            return False

        generation = self.generation + 1
        request = EvaluationRequest(
            index=index,
            question=card.question,
            correct_answer=card.answer,
            user_answer=card.user_answer,
            generation=generation,
        )
        if not self._send(request):
            return False

        self.generation = generation
        self.in_flight = InFlight(generation=generation, started_at=self._clock(), index=index)
        self.status = EvaluationStatus.REQUESTED
        self.last_error = None
        self.log.info("Sent AI request for flashcard {} (generation {})", index, generation)
        return True

    def retry_evaluation(self) -> bool:
        """Explicit user request to (re-)grade the current card."""
        if not self.ai_enabled:
            return False
        if self.in_flight is not None:
            self.last_error = BUSY_MESSAGE
            return False
        self.last_error = None
        return self.request_evaluation(self.current_index)

    def request_assessment(self) -> bool:
        """Send the answered cards for an overall session assessment."""
        if not self.ai_enabled:
            return False
        if self.in_flight is not None:
            self.assessment_error = BUSY_MESSAGE
            return False

        answered = tuple(
            CardSummary(
                question=card.question,
                answer=card.answer,
                user_answer=card.user_answer,
                feedback=card.feedback,
            )
            for card in self.flashcards
            if card.user_answer is not None
        )
        if not answered:
            self.assessment_error = "Answer at least one question before requesting an assessment."
            return False

        generation = self.generation + 1
        request = AssessmentRequest(
            session_id=self.session_id,
            deck_name=self.deck_name,
            cards=answered,
            total_cards=len(self.flashcards),
            generation=generation,
        )
        if not self._send(request):
            self.assessment_error = self.last_error
            return False

        self.generation = generation
        self.in_flight = InFlight(
            generation=generation, started_at=self._clock(), kind=RequestKind.ASSESSMENT
        )
        self.status = EvaluationStatus.REQUESTED
        self.assessment_error = None
        self.log.info("Sent session assessment request (generation {})", generation)
        return True

    def cancel_evaluation(self) -> bool:
        """
        Forget the outstanding request.

        The worker may still finish it; bumping the generation makes that
        outcome stale so it is dropped on arrival.
        """
        if self.in_flight is None:
            return False
        self.log.info("Cancelled request generation {}", self.in_flight.generation)
        was_chat = self.in_flight.kind == RequestKind.CHAT
        self.generation += 1
        self.in_flight = None
        self.status = EvaluationStatus.IDLE
        if was_chat and self.chat is not None:
            self.chat.error = CHAT_CANCELLED_MESSAGE
        else:
            self.last_error = CANCELLED_MESSAGE
        return True

    # =========================================================================
    # Follow-up chat
    # =========================================================================

    def open_chat(self) -> bool:
        """
        Open the follow-up chat for the current card.

        The card needs AI feedback first. Earlier turns are loaded from the
        store the first time a card's chat is opened.
        """
        card = self.current_card
        if not self.ai_enabled or card.feedback is None:
            return False

        index = self.current_index
        if index not in self._chats:
            self._chats[index] = self._load_chat(card)
        self.chat = ChatState(index=index, messages=self._chats[index])
        self.log.info("Opened chat for flashcard {}", index)
        return True

    def close_chat(self) -> None:
        self.chat = None

    def send_chat_message(self, text: str) -> bool:
        """
        Send a follow-up question from the open chat.

        Returns:
            True if the request was sent
        """
        chat = self.chat
        text = text.strip()
        if chat is None or not self.ai_enabled or not text:
            return False
        if self.in_flight is not None:
            chat.error = BUSY_MESSAGE
            return False

        card = self.flashcards[chat.index]
        generation = self.generation + 1
        request = ChatRequest(
            index=chat.index,
            question=card.question,
            correct_answer=card.answer,
            user_answer=card.user_answer or "",
            initial_feedback=card.feedback.explanation if card.feedback else "",
            user_message=text,
            history=tuple((m.role.value, m.content) for m in chat.messages),
            generation=generation,
        )
        if not self._send(request):
            chat.error = self.last_error
            return False

        message = ChatMessage(role=ChatRole.USER, content=text, order=len(chat.messages))
        chat.messages.append(message)
        self._persist_chat(card, message)

        self.generation = generation
        self.in_flight = InFlight(
            generation=generation,
            started_at=self._clock(),
            index=chat.index,
            kind=RequestKind.CHAT,
        )
        chat.error = None
        self.log.info("Sent chat message for flashcard {} (generation {})", chat.index, generation)
        return True

    def _load_chat(self, card: Flashcard) -> list[ChatMessage]:
        if self.store is None or card.id is None:
            return []
        try:
            return self.store.load_chat_messages(card.id)
        except StoreError as e:
            self.log.warning("Failed to load chat history: {}", e)
            return []

    def _send(self, request: WorkerRequest) -> bool:
        if self.requests is None:
            self.last_error = UNAVAILABLE_MESSAGE
            return False
        try:
            self.requests.try_send(request)
        except ChannelFull:
            self.last_error = QUEUE_FULL_MESSAGE
            return False
        except ChannelClosed:
            self.last_error = UNAVAILABLE_MESSAGE
            return False
        return True

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def drain_outcomes(self) -> int:
        """
        Apply every outcome already waiting, without blocking.

        Returns:
            Number of outcomes applied (stale ones are not counted)
        """
        if self.outcomes is None:
            return 0
        applied = 0
        while True:
            outcome = self.outcomes.try_receive()
            if outcome is None:
                return applied
            if self.reconcile(outcome):
                applied += 1

    def reconcile(self, outcome: WorkerOutcome) -> bool:
        """
        Fold one worker outcome into session state.

        Returns:
            True if applied, False if dropped as stale or unroutable
        """
        if outcome.generation != self.generation:
            self.log.info(
                "Dropping stale outcome (generation {}, current {})",
                outcome.generation,
                self.generation,
            )
            return False

        if isinstance(outcome, (EvaluationSuccess, EvaluationFailure)):
            return self._reconcile_evaluation(outcome)
        if isinstance(outcome, (ChatSuccess, ChatFailure)):
            return self._reconcile_chat(outcome)
        return self._reconcile_assessment(outcome)

    def _reconcile_evaluation(self, outcome: EvaluationSuccess | EvaluationFailure) -> bool:
        index = outcome.index
        if not 0 <= index < len(self.flashcards):
            self.log.warning("Outcome for unknown flashcard index {}", index)
            return False

        self._clear_in_flight(outcome.generation, index)

        if isinstance(outcome, EvaluationSuccess):
            card = self.flashcards[index]
            card.feedback = outcome.feedback
            self.last_error = None
            self.status = EvaluationStatus.SUCCEEDED
            self.log.info(
                "Received evaluation for flashcard {}: score {:.2f}",
                index,
                outcome.feedback.correctness_score,
            )
            self._persist_feedback(card)
        else:
            self.last_error = outcome.error
            self.status = (
                EvaluationStatus.TIMED_OUT
                if outcome.kind == "timeout"
                else EvaluationStatus.FAILED
            )
            self.log.info("Received error for flashcard {}: {}", index, outcome.error)
        return True

    def _reconcile_assessment(self, outcome: AssessmentSuccess | AssessmentFailure) -> bool:
        self._clear_in_flight(outcome.generation, None)

        if isinstance(outcome, AssessmentSuccess):
            self.assessment = outcome.assessment
            self.assessment_error = None
            self.status = EvaluationStatus.SUCCEEDED
            if self.store is not None and self.session_id is not None:
                self._persist(self.store.save_assessment, self.session_id, outcome.assessment)
        else:
            self.assessment_error = outcome.error
            self.status = (
                EvaluationStatus.TIMED_OUT
                if outcome.kind == "timeout"
                else EvaluationStatus.FAILED
            )
        return True

    def _reconcile_chat(self, outcome: ChatSuccess | ChatFailure) -> bool:
        index = outcome.index
        if not 0 <= index < len(self.flashcards):
            self.log.warning("Chat reply for unknown flashcard index {}", index)
            return False

        self._clear_in_flight(outcome.generation, index)
        chat = self.chat if self.chat is not None and self.chat.index == index else None

        if isinstance(outcome, ChatSuccess):
            messages = self._chats.setdefault(index, [])
            message = ChatMessage(
                role=ChatRole.ASSISTANT, content=outcome.reply, order=len(messages)
            )
            messages.append(message)
            self._persist_chat(self.flashcards[index], message)
            if chat is not None:
                chat.error = None
            self.log.info("Received chat reply for flashcard {}", index)
        elif chat is not None:
            chat.error = outcome.error
        else:
            self.last_error = outcome.error
        return True

    def _clear_in_flight(self, generation: int, index: int | None) -> None:
        if (
            self.in_flight is not None
            and self.in_flight.generation == generation
            and self.in_flight.index == index
        ):
            self.in_flight = None

    # =========================================================================
    # Persistence
    # =========================================================================

    def finish(self) -> None:
        """Mark the stored session complete once every card is answered."""
        if self.store is not None and self.session_id is not None and self.is_complete:
            self._persist(self.store.complete_session, self.session_id)

    def _persist_answer(self, card: Flashcard) -> None:
        if self.store is None or card.id is None:
            return
        if self._persist(self.store.save_answer, card.id, card.user_answer):
            card.persisted = True
        if self.session_id is not None:
            self._persist(self.store.update_progress, self.session_id, self.questions_answered)

    def _persist_feedback(self, card: Flashcard) -> None:
        if self.store is None or card.id is None or card.feedback is None:
            return
        self._persist(self.store.update_feedback, card.id, card.feedback)

    def _persist_chat(self, card: Flashcard, message: ChatMessage) -> None:
        if self.store is None or card.id is None or self.session_id is None:
            return
        self._persist(self.store.save_chat_message, card.id, self.session_id, message)

    def _persist(self, operation: Callable[..., Any], *args: Any) -> bool:
        try:
            operation(*args)
        except StoreError as e:
            self.log.warning("Failed to persist session data: {}", e)
            return False
        return True
