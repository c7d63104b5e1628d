"""
Rich renderables for the quiz screen.

Every function here is pure: it takes session state and returns a Rich
renderable, so the interactive loop decides when to print and tests can
render into a string console.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from rich import box
from rich.console import Group
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text

from flashcards.ai.models import Feedback, SessionAssessment
from flashcards.db.store import SessionRecord
from flashcards.quiz.models import ChatRole, ChatState, EvaluationStatus, RequestKind
from flashcards.quiz.session import QuizSession

# =============================================================================
# Theme
# =============================================================================

THEME = {
    "primary": "#5FAFFF",
    "accent": "#AF87FF",
    "success": "#00D787",
    "warning": "#FFD75F",
    "error": "#FF5F5F",
    "dim": "#808080",
}

STYLES = {
    "primary": Style(color=THEME["primary"], bold=True),
    "accent": Style(color=THEME["accent"]),
    "success": Style(color=THEME["success"], bold=True),
    "warning": Style(color=THEME["warning"], bold=True),
    "error": Style(color=THEME["error"], bold=True),
    "dim": Style(color=THEME["dim"]),
}

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

HELP_ROWS = [
    ("<text>", "Submit an answer for the current card"),
    ("<enter>", "Next card (once the current card is answered)"),
    (":n  :next", "Next card"),
    (":p  :prev", "Previous card"),
    (":e  :eval", "Evaluate the current answer again (Ctrl+E)"),
    (":c  :chat", "Open or close the AI chat about the current card (Ctrl+T)"),
    (":x  :cancel", "Cancel the running AI request (Ctrl+X)"),
    (":s  :summary", "Show the summary and request an assessment"),
    (":q  :quit", "Save and quit"),
    (":h  :help", "Show this help"),
]


# =============================================================================
# Card
# =============================================================================


def card_panel(session: QuizSession) -> Panel:
    """Question, and once answered, the user's answer next to the correct one."""
    card = session.current_card
    total = len(session.flashcards)

    header = Text()
    header.append(f"Card {session.current_index + 1}/{total}", style=STYLES["primary"])
    header.append(f"  {session.deck_name}", style=STYLES["dim"])
    header.append(f"  answered {session.questions_answered}/{total}", style=STYLES["dim"])

    content = Text()
    content.append("Q: ", style=STYLES["accent"])
    content.append(card.question)

    if session.showing_answer and card.user_answer is not None:
        content.append("\n\nYour answer: ", style=STYLES["dim"])
        content.append(card.user_answer)
        content.append("\nCorrect answer: ", style=STYLES["dim"])
        content.append(card.answer, style=STYLES["success"])

    return Panel(
        content,
        title=header,
        title_align="left",
        border_style=Style(color=THEME["primary"]),
        box=box.ROUNDED,
        padding=(1, 2),
    )


def feedback_panel(feedback: Feedback) -> Panel:
    """AI verdict for one answer."""
    color = THEME["success"] if feedback.is_correct else THEME["error"]
    icon = "✓" if feedback.is_correct else "✗"
    verdict = "CORRECT" if feedback.is_correct else "INCORRECT"

    content = Text()
    content.append(f"{icon} {verdict}", style=Style(color=color, bold=True))
    content.append(f"  score {feedback.correctness_score * 100:.0f}%", style=STYLES["dim"])

    if feedback.corrections:
        content.append("\n\nCorrections:", style=STYLES["warning"])
        for item in feedback.corrections:
            content.append(f"\n  • {item}")
    if feedback.explanation:
        content.append("\n\n")
        content.append(feedback.explanation)
    if feedback.suggestions:
        content.append("\n\nSuggestions:", style=STYLES["accent"])
        for item in feedback.suggestions:
            content.append(f"\n  • {item}")

    return Panel(
        content,
        title="[bold]AI Feedback[/bold]",
        title_align="left",
        border_style=Style(color=color),
        box=box.ROUNDED,
        padding=(0, 1),
    )


def status_line(session: QuizSession, frame: int = 0) -> Text | None:
    """One-line evaluation status, or None when there is nothing to say."""
    if session.in_flight is not None:
        elapsed = session.elapsed() or 0.0
        spinner = SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]
        if session.assessment_loading:
            what = "Assessing session"
        elif session.in_flight.kind == RequestKind.CHAT:
            what = f"Waiting for chat reply on card {session.in_flight.index + 1}"
        else:
            what = f"Evaluating card {session.in_flight.index + 1}"
        text = Text(f"{spinner} {what}... {elapsed:.0f}s", style=STYLES["warning"])
        text.append("  (:x to cancel)", style=STYLES["dim"])
        if session.last_error:
            text.append(f"\n{session.last_error}", style=STYLES["dim"])
        return text

    if session.last_error:
        style = STYLES["dim"] if session.status == EvaluationStatus.IDLE else STYLES["error"]
        return Text(session.last_error, style=style)

    if not session.ai_enabled:
        return Text("AI evaluation disabled", style=STYLES["dim"])
    return None


def chat_panel(chat: ChatState, loading: bool = False, frame: int = 0) -> Panel:
    """Follow-up conversation for the card the chat was opened on."""
    content = Text()
    if not chat.messages:
        content.append("Ask a follow-up question about this card.", style=STYLES["dim"])
    for i, message in enumerate(chat.messages):
        if i:
            content.append("\n\n")
        if message.role == ChatRole.USER:
            content.append("You: ", style=STYLES["accent"])
        else:
            content.append("AI: ", style=STYLES["success"])
        content.append(message.content)

    if loading:
        spinner = SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]
        content.append(f"\n\n{spinner} Thinking...", style=STYLES["warning"])
    if chat.error:
        content.append(f"\n\n{chat.error}", style=STYLES["error"])

    return Panel(
        content,
        title=f"[bold]Chat: card {chat.index + 1}[/bold]",
        title_align="left",
        subtitle=":c to close",
        border_style=Style(color=THEME["accent"]),
        box=box.ROUNDED,
        padding=(0, 1),
    )


def render_screen(session: QuizSession, frame: int = 0) -> Group:
    """Full quiz screen for the current card."""
    parts: list = [card_panel(session)]
    card = session.current_card
    if session.showing_answer and card.feedback is not None:
        parts.append(feedback_panel(card.feedback))
    if session.chat is not None:
        parts.append(chat_panel(session.chat, session.chat_loading, frame))
    status = status_line(session, frame)
    if status is not None:
        parts.append(status)
    if session.chat is not None:
        parts.append(Text("Type a message, or :c to close the chat", style=STYLES["dim"]))
    else:
        parts.append(Text("Type an answer, or :h for help", style=STYLES["dim"]))
    return Group(*parts)


# =============================================================================
# Summary and assessment
# =============================================================================


def summary_panel(session: QuizSession) -> Panel:
    answered, average = session.calculate_stats()
    total = len(session.flashcards)
    graded = sum(1 for card in session.flashcards if card.feedback is not None)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Deck", session.deck_name)
    table.add_row("Answered", f"{answered}/{total}")
    table.add_row("AI graded", str(graded))
    table.add_row("Average score", f"{average:.1f}%" if graded else "-")

    return Panel(
        table,
        title="[bold]Session Summary[/bold]",
        border_style=Style(color=THEME["accent"]),
        box=box.ROUNDED,
    )


def assessment_panel(assessment: SessionAssessment) -> Panel:
    grade = assessment.grade_percentage
    if grade >= 80:
        color = THEME["success"]
    elif grade >= 50:
        color = THEME["warning"]
    else:
        color = THEME["error"]

    content = Text()
    content.append(f"{grade:.0f}%", style=Style(color=color, bold=True))
    content.append(f"  {assessment.mastery_level}", style=STYLES["accent"])
    content.append(f"\n\n{assessment.overall_feedback}")

    for title, items, style in (
        ("Strengths", assessment.strengths, STYLES["success"]),
        ("Weaknesses", assessment.weaknesses, STYLES["error"]),
        ("Suggestions", assessment.suggestions, STYLES["accent"]),
    ):
        if items:
            content.append(f"\n\n{title}:", style=style)
            for item in items:
                content.append(f"\n  • {item}")

    return Panel(
        content,
        title="[bold]Session Assessment[/bold]",
        border_style=Style(color=color),
        box=box.ROUNDED,
        padding=(1, 2),
    )


def help_panel() -> Panel:
    table = Table(show_header=False, box=None)
    table.add_column("Command", style="bold cyan")
    table.add_column("Action")
    for command, action in HELP_ROWS:
        table.add_row(command, action)
    return Panel(table, title="[bold]Commands[/bold]", box=box.ROUNDED)


# =============================================================================
# Listings
# =============================================================================


def sessions_table(records: Sequence[SessionRecord]) -> Table:
    table = Table(title="Sessions")
    table.add_column("ID", justify="right")
    table.add_column("Deck")
    table.add_column("Started")
    table.add_column("Progress", justify="right")
    table.add_column("Status")

    for record in records:
        started = datetime.fromtimestamp(record.started_at).strftime("%Y-%m-%d %H:%M")
        status = "[green]done[/green]" if record.is_completed else "[yellow]open[/yellow]"
        table.add_row(
            str(record.id),
            record.deck_name,
            started,
            f"{record.questions_answered}/{record.questions_total}",
            status,
        )
    return table


def decks_table(rows: Sequence[tuple[str, int]]) -> Table:
    table = Table(title="Decks")
    table.add_column("Deck")
    table.add_column("Cards", justify="right")
    for name, count in rows:
        table.add_row(name, str(count))
    return table
