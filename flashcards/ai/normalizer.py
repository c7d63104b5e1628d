"""
Turn a model's free-form reply into structured feedback.

Models are told to answer with bare JSON but routinely wrap it in a markdown
fence or add a sentence before or after. Cleaning:

1. Trim whitespace.
2. If the reply starts with a ``` fence, keep only the lines between the
   opening and closing fence.
3. Lenient mode: slice from the first ``{`` to the last ``}``.
   Strict mode: no slicing, the remaining text must be one JSON object.
4. Trim again and decode.

Decoding and range checks are done by the pydantic models; any failure is
raised as MalformedResponse with both raw and cleaned text attached.
"""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel, ValidationError

from flashcards.ai.errors import MalformedResponse
from flashcards.ai.models import Feedback, SessionAssessment

ModelT = TypeVar("ModelT", bound=BaseModel)

FENCE = "```"


def clean_json_response(response: str, strict: bool = False) -> str:
    """Strip fences (and, unless strict, surrounding prose) from a reply."""
    cleaned = response.strip()

    if cleaned.startswith(FENCE):
        lines = cleaned.splitlines()
        if len(lines) > 2:
            cleaned = "\n".join(lines[1:-1])

    if not strict:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start != -1 and end != -1 and start < end:
            cleaned = cleaned[start : end + 1]

    return cleaned.strip()


def _decode(model: type[ModelT], response: str, strict: bool, what: str) -> ModelT:
    cleaned = clean_json_response(response, strict=strict)
    try:
        return model.model_validate_json(cleaned)
    except ValidationError as e:
        raise MalformedResponse(
            f"Failed to parse {what}: {_describe(e)}", response, cleaned
        ) from e


def _describe(error: ValidationError) -> str:
    """Compact, single-line summary of a pydantic validation error."""
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "body"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_feedback(response: str, strict: bool = False) -> Feedback:
    """
    Decode a grading reply.

    Args:
        response: Raw reply text from the evaluation client
        strict: Require the (unfenced) reply to be exactly one JSON object

    Returns:
        Feedback with correctness_score in [0.0, 1.0]

    Raises:
        MalformedResponse: if the reply does not decode or the score is out of range
    """
    return _decode(Feedback, response, strict, "AI response as feedback")


def parse_session_assessment(response: str, strict: bool = False) -> SessionAssessment:
    """Decode a session assessment reply. Raises MalformedResponse."""
    return _decode(SessionAssessment, response, strict, "session assessment")
