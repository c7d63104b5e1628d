"""
Structured grading results.

These are the only shapes the model's free-form replies are allowed to take.
Range checks live on the models so an out-of-range value can never be
constructed, whether it comes from the network or from the database.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator

MASTERY_LEVELS = ("Beginner", "Intermediate", "Advanced", "Expert")


class Feedback(BaseModel):
    """Grading of a single answer."""

    model_config = ConfigDict(frozen=True)

    is_correct: bool
    correctness_score: float
    corrections: list[str] = Field(default_factory=list)
    explanation: str = ""
    suggestions: list[str] = Field(default_factory=list)

    @field_validator("correctness_score")
    @classmethod
    def _score_in_range(cls, value: float) -> float:
        if math.isnan(value) or not 0.0 <= value <= 1.0:
            raise ValueError(
                f"Invalid correctness score: {value} (expected 0.0 to 1.0)"
            )
        return value


class SessionAssessment(BaseModel):
    """Overall assessment of a finished quiz session."""

    model_config = ConfigDict(frozen=True)

    grade_percentage: float
    mastery_level: str
    overall_feedback: str
    suggestions: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)

    @field_validator("grade_percentage")
    @classmethod
    def _grade_in_range(cls, value: float) -> float:
        if math.isnan(value) or not 0.0 <= value <= 100.0:
            raise ValueError(
                f"Invalid grade percentage: {value} (expected 0 to 100)"
            )
        return value
