"""
Evaluation worker.

A single asyncio task that owns the evaluation client. It takes requests off
the inbound channel one at a time, races each client call against a fixed
deadline, and puts exactly one outcome per request on the outbound channel.

The worker never touches quiz state. Everything it learns travels back as an
outcome tagged with the request's index and generation; the quiz loop decides
what to do with it.

Usage:
    requests: Channel[WorkerRequest] = Channel(capacity=1)
    outcomes: Channel[WorkerOutcome] = Channel(capacity=1)
    worker = EvaluationWorker(requests, outcomes, client_factory=OpenRouterClient)
    task = asyncio.create_task(worker.run(), name="evaluation-worker")
    ...
    requests.close()      # worker finishes the current request and exits
    await task
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from loguru import logger

from flashcards.ai.channel import Channel, ChannelClosed
from flashcards.ai.client import EvaluationClient, ModelConfig
from flashcards.ai.errors import (
    ClientUnavailable,
    EvaluationError,
    EvaluationTimeout,
    TransportError,
)
from flashcards.ai.messages import (
    AssessmentFailure,
    AssessmentRequest,
    AssessmentSuccess,
    ChatFailure,
    ChatRequest,
    ChatSuccess,
    EvaluationFailure,
    EvaluationRequest,
    EvaluationSuccess,
    WorkerOutcome,
    WorkerRequest,
)
from flashcards.ai.normalizer import parse_feedback, parse_session_assessment

EVALUATION_TIMEOUT_SECONDS = 30.0


class EvaluationWorker:
    """Single-flight consumer of evaluation requests."""

    def __init__(
        self,
        requests: Channel[WorkerRequest],
        outcomes: Channel[WorkerOutcome],
        client_factory: Callable[[], EvaluationClient],
        model_config: ModelConfig | None = None,
        timeout: float = EVALUATION_TIMEOUT_SECONDS,
        strict_json: bool = False,
        log: Any = None,
    ):
        """
        Args:
            requests: Inbound channel; the worker exits once it is closed and empty
            outcomes: Outbound channel; outcomes are dropped if its receiver is closed
            client_factory: Builds the evaluation client; may raise ClientUnavailable
            model_config: Model overrides forwarded to every client call
            timeout: Per-request deadline in seconds
            strict_json: Use the strict JSON policy when parsing replies
            log: loguru-compatible logger (defaults to a bound module logger)
        """
        self.requests = requests
        self.outcomes = outcomes
        self.client_factory = client_factory
        self.model_config = model_config
        self.timeout = timeout
        self.strict_json = strict_json
        self.log = log or logger.bind(component="evaluation-worker")

        self._client: EvaluationClient | None = None
        self.processed = 0

    async def run(self) -> None:
        """Process requests until the inbound channel closes."""
        self.log.debug("Evaluation worker started")
        try:
            while True:
                try:
                    request = await self.requests.receive()
                except ChannelClosed:
                    self.log.info("Request channel closed, evaluation worker exiting")
                    break

                outcome = await self.process(request)
                self.processed += 1

                try:
                    await self.outcomes.send(outcome)
                except ChannelClosed:
                    self.log.debug("Outcome receiver gone, dropping {}", outcome)
        finally:
            await self._close_client()

    async def process(self, request: WorkerRequest) -> WorkerOutcome:
        """Handle one request start to finish. Never raises EvaluationError."""
        if isinstance(request, AssessmentRequest):
            return await self._process_assessment(request)
        if isinstance(request, ChatRequest):
            return await self._process_chat(request)
        return await self._process_evaluation(request)

    async def _process_evaluation(self, request: EvaluationRequest) -> WorkerOutcome:
        self.log.info("Worker received request for flashcard {}", request.index)
        try:
            client = self._get_client()
            raw = await self._with_deadline(
                client.evaluate(
                    request.question,
                    request.correct_answer,
                    request.user_answer,
                    self.model_config,
                )
            )
            self.log.debug("Raw AI response: {}", raw)
            feedback = parse_feedback(raw, strict=self.strict_json)
        except EvaluationError as e:
            self.log.warning("Worker error ({}): {}", e.kind, e.message)
            if isinstance(e, EvaluationTimeout):
                error = e.message
            else:
                error = f"AI evaluation failed: {e.message}"
            return EvaluationFailure(
                index=request.index,
                error=error,
                kind=e.kind,
                generation=request.generation,
            )

        self.log.info(
            "Worker sending evaluation success for flashcard {} (score {:.2f})",
            request.index,
            feedback.correctness_score,
        )
        return EvaluationSuccess(
            index=request.index,
            feedback=feedback,
            generation=request.generation,
        )

    async def _process_assessment(self, request: AssessmentRequest) -> WorkerOutcome:
        self.log.info("Worker received assessment request for {}", request.deck_name)
        try:
            client = self._get_client()
            raw = await self._with_deadline(
                client.assess_session(
                    request.deck_name,
                    request.cards,
                    request.total_cards,
                    self.model_config,
                )
            )
            assessment = parse_session_assessment(raw, strict=self.strict_json)
        except EvaluationError as e:
            self.log.warning("Assessment error ({}): {}", e.kind, e.message)
            return AssessmentFailure(
                session_id=request.session_id,
                error=f"Session assessment failed: {e.message}",
                kind=e.kind,
                generation=request.generation,
            )

        return AssessmentSuccess(
            session_id=request.session_id,
            assessment=assessment,
            generation=request.generation,
        )

    async def _process_chat(self, request: ChatRequest) -> WorkerOutcome:
        self.log.info("Worker received chat message for flashcard {}", request.index)
        try:
            client = self._get_client()
            reply = await self._with_deadline(
                client.chat(
                    request.question,
                    request.correct_answer,
                    request.user_answer,
                    request.initial_feedback,
                    request.history,
                    request.user_message,
                    self.model_config,
                )
            )
        except EvaluationError as e:
            self.log.warning("Chat error ({}): {}", e.kind, e.message)
            if isinstance(e, EvaluationTimeout):
                error = f"AI chat timed out after {e.seconds:g} seconds."
            else:
                error = f"AI chat failed: {e.message}"
            return ChatFailure(
                index=request.index,
                error=error,
                kind=e.kind,
                generation=request.generation,
            )

        reply = reply.strip()
        if not reply:
            return ChatFailure(
                index=request.index,
                error="AI chat failed: empty reply",
                kind="malformed_response",
                generation=request.generation,
            )
        return ChatSuccess(index=request.index, reply=reply, generation=request.generation)

    def _get_client(self) -> EvaluationClient:
        """Build the client on first use; a failed build is retried next time."""
        if self._client is None:
            try:
                self._client = self.client_factory()
            except ClientUnavailable:
                raise
            except Exception as e:
                raise ClientUnavailable(f"Failed to create AI client: {e}") from e
        return self._client

    async def _with_deadline(self, call: Any) -> str:
        """Await a client call, mapping deadline expiry and stray errors."""
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise EvaluationTimeout(self.timeout) from e
        except EvaluationError:
            raise
        except Exception as e:
            self.log.exception("Unexpected error from evaluation client")
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def _close_client(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except Exception as e:
            self.log.warning("Failed to close evaluation client: {}", e)
        self._client = None
