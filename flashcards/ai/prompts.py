"""Prompt templates for answer grading, session assessment and follow-up chat."""

from __future__ import annotations

from typing import Sequence

from flashcards.ai.messages import CardSummary
from flashcards.ai.models import MASTERY_LEVELS

EVALUATION_SYSTEM_PROMPT = (
    "You are an educational assistant evaluating quiz answers. "
    "Be concise and helpful."
)

ASSESSMENT_SYSTEM_PROMPT = (
    "You are an educational assessment coach. Provide constructive, specific "
    "feedback to help students improve."
)

# Score at or above which an AI-graded answer counts as correct
CORRECT_SCORE_THRESHOLD = 0.7

# Explanations are truncated when summarizing a session
EXPLANATION_PREVIEW_CHARS = 200


def evaluation_prompt(question: str, correct_answer: str, user_answer: str) -> str:
    return f"""Evaluate this answer and respond ONLY with valid JSON.

Question: {question}
Correct Answer: {correct_answer}
User's Answer: {user_answer}

IMPORTANT:

- Respond ONLY with this exact JSON structure (no markdown, no extra text):
{{
    "is_correct": boolean,
    "correctness_score": float between 0.0 and 1.0,
    "corrections": ["correction1", "correction2"],
    "explanation": "detailed explanation. must contain also deep dives on the topic regardless of correctness",
    "suggestions": ["suggestion1", "suggestion2"]
}}
- Do not account for minor typos in the user's answer when determining correctness.
"""


def assessment_prompt(
    deck_name: str,
    cards: Sequence[CardSummary],
    total_cards: int,
) -> str:
    qa_lines: list[str] = []
    correct = 0
    for i, card in enumerate(cards, start=1):
        score = card.feedback.correctness_score if card.feedback else 0.0
        if score >= CORRECT_SCORE_THRESHOLD:
            correct += 1
        qa_lines.append(f"Q{i}: {card.question}")
        qa_lines.append(f"A{i}: {card.answer}")
        qa_lines.append(f"User: {card.user_answer}")
        if card.feedback:
            qa_lines.append(
                f"AI Score: {card.feedback.correctness_score * 100:.0f}%, "
                f"Feedback: {card.feedback.explanation[:EXPLANATION_PREVIEW_CHARS]}"
            )
        qa_lines.append("")

    levels = " | ".join(f'"{level}"' for level in MASTERY_LEVELS)
    qa_list = "\n".join(qa_lines)

    return f"""Analyze this quiz session for "{deck_name}" and provide a comprehensive assessment.

Quiz Results:
- Total Questions: {total_cards}
- Answered: {len(cards)}
- Correct (AI-evaluated): {correct}

Question-Answer Pairs:
{qa_list}

IMPORTANT:
- Respond ONLY with valid JSON (no markdown, no extra text)
- Use this exact JSON structure:
{{
    "grade_percentage": float (0-100),
    "mastery_level": {levels},
    "overall_feedback": "detailed paragraph analysis of performance",
    "suggestions": ["suggestion1", "suggestion2", "suggestion3"],
    "strengths": ["strength1", "strength2"],
    "weaknesses": ["weakness1", "weakness2"]
}}

Guidelines:
- grade_percentage: weighted by answered questions, consider AI scores
- mastery_level: Beginner (0-40%), Intermediate (41-70%), Advanced (71-90%), Expert (91-100%)
- overall_feedback: 2-3 sentences analyzing patterns, progress, areas for improvement
- suggestions: 3-5 actionable, specific study recommendations
- strengths: 2-3 specific areas where user performed well
- weaknesses: 2-3 specific areas needing improvement
"""


def chat_system_prompt(
    question: str,
    correct_answer: str,
    user_answer: str,
    initial_feedback: str,
) -> str:
    return f"""You are a patient tutor. The student just answered a flashcard and wants to talk it through.
Answer their follow-up questions clearly and concisely. Plain text or light markdown only.

Flashcard question: {question}
Correct answer: {correct_answer}
Student's answer: {user_answer}
Your earlier feedback: {initial_feedback or "(none)"}
"""
