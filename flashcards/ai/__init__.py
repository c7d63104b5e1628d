"""
AI evaluation for interactive-flashcards.

Modules:
- client: OpenRouter chat-completions client
- normalizer: reply cleaning and Feedback decoding
- worker: single-flight evaluation worker
- channel: bounded channel between the quiz loop and the worker
"""
from .channel import Channel, ChannelClosed, ChannelFull
from .client import DEFAULT_MODEL, EvaluationClient, ModelConfig, OpenRouterClient
from .errors import (
    ClientUnavailable,
    EvaluationError,
    EvaluationTimeout,
    MalformedResponse,
    TransportError,
)
from .messages import (
    AssessmentFailure,
    AssessmentRequest,
    AssessmentSuccess,
    CardSummary,
    EvaluationFailure,
    EvaluationRequest,
    EvaluationSuccess,
    WorkerOutcome,
    WorkerRequest,
)
from .models import Feedback, SessionAssessment
from .normalizer import clean_json_response, parse_feedback, parse_session_assessment
from .worker import EVALUATION_TIMEOUT_SECONDS, EvaluationWorker

__all__ = [
    "AssessmentFailure",
    "AssessmentRequest",
    "AssessmentSuccess",
    "CardSummary",
    "Channel",
    "ChannelClosed",
    "ChannelFull",
    "ClientUnavailable",
    "DEFAULT_MODEL",
    "EVALUATION_TIMEOUT_SECONDS",
    "EvaluationClient",
    "EvaluationError",
    "EvaluationFailure",
    "EvaluationRequest",
    "EvaluationSuccess",
    "EvaluationTimeout",
    "EvaluationWorker",
    "Feedback",
    "MalformedResponse",
    "ModelConfig",
    "OpenRouterClient",
    "SessionAssessment",
    "TransportError",
    "WorkerOutcome",
    "WorkerRequest",
    "clean_json_response",
    "parse_feedback",
    "parse_session_assessment",
]
