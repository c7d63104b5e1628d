"""
SQLite session store.

Provides persistence for:
- Quiz sessions (deck, progress, completion)
- Cards per session with the user's answers and AI feedback
- Session assessments
- Follow-up chat messages per card

Database location: ~/.local/share/interactive-flashcards/flashcards.db
"""

from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from loguru import logger
from pydantic import ValidationError

from flashcards.ai.models import Feedback, SessionAssessment
from flashcards.quiz.models import ChatMessage, ChatRole, Flashcard


class StoreError(Exception):
    """Raised when a store operation fails."""


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class SessionRecord:
    """A stored quiz session."""

    id: int
    deck_name: str
    started_at: int
    completed_at: int | None
    questions_total: int
    questions_answered: int
    created_at: int
    updated_at: int

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


def _now() -> int:
    return int(time.time())


# =============================================================================
# Session Store
# =============================================================================


class SessionStore:
    """
    SQLite-backed persistence for quiz sessions.

    Writes happen from the quiz loop only; the evaluation worker never
    touches the store.
    """

    def __init__(self, db_path: Path):
        """
        Initialize the store.

        Args:
            db_path: Database file (``":memory:"`` is accepted for tests)
        """
        self.db_path = db_path
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.debug("SessionStore initialized at {}", self.db_path)

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            conn = sqlite3.connect(str(self.db_path))
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                deck_name TEXT NOT NULL,
                started_at INTEGER NOT NULL,
                completed_at INTEGER,
                questions_total INTEGER NOT NULL,
                questions_answered INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS flashcards (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL,
                question TEXT NOT NULL,
                answer TEXT NOT NULL,
                user_answer TEXT,
                ai_feedback TEXT,
                answered_at INTEGER,
                display_order INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS session_assessments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL UNIQUE,
                grade_percentage REAL NOT NULL,
                mastery_level TEXT NOT NULL,
                overall_feedback TEXT NOT NULL,
                suggestions TEXT NOT NULL,
                strengths TEXT NOT NULL,
                weaknesses TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS chat_messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                flashcard_id INTEGER NOT NULL,
                session_id INTEGER NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
                content TEXT NOT NULL,
                message_order INTEGER NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                FOREIGN KEY (flashcard_id) REFERENCES flashcards(id) ON DELETE CASCADE,
                FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
            )
        """)

        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_sessions_deck ON sessions(deck_name)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_flashcards_session ON flashcards(session_id)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_chat_messages_flashcard ON chat_messages(flashcard_id)"
        )

        self.conn.commit()

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, deck_name: str, cards: Sequence[Flashcard]) -> int:
        """
        Create a session and insert its cards in display order.

        Assigns ``id`` on each card in place.

        Returns:
            New session id
        """
        now = _now()
        try:
            cursor = self.conn.execute(
                """INSERT INTO sessions
                   (deck_name, started_at, questions_total, questions_answered,
                    created_at, updated_at)
                   VALUES (?, ?, ?, 0, ?, ?)""",
                (deck_name, now, len(cards), now, now),
            )
            session_id = int(cursor.lastrowid)

            for order, card in enumerate(cards):
                cursor = self.conn.execute(
                    """INSERT INTO flashcards
                       (session_id, question, answer, display_order, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (session_id, card.question, card.answer, order, now, now),
                )
                card.id = int(cursor.lastrowid)

            self.conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StoreError(f"Failed to create session: {e}") from e

        logger.info("Created session {} for deck {} ({} cards)", session_id, deck_name, len(cards))
        return session_id

    def get_session(self, session_id: int) -> SessionRecord | None:
        row = self.conn.execute(
            "SELECT * FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(self) -> list[SessionRecord]:
        """All sessions, most recently updated first."""
        rows = self.conn.execute(
            "SELECT * FROM sessions ORDER BY updated_at DESC, id DESC"
        ).fetchall()
        return [_row_to_session(row) for row in rows]

    def update_progress(self, session_id: int, answered: int) -> None:
        self._write(
            "UPDATE sessions SET updated_at = ?, questions_answered = ? WHERE id = ?",
            (_now(), answered, session_id),
        )

    def complete_session(self, session_id: int) -> None:
        now = _now()
        self._write(
            "UPDATE sessions SET updated_at = ?, completed_at = ? WHERE id = ?",
            (now, now, session_id),
        )

    def delete_session(self, session_id: int) -> bool:
        """Delete a session with its cards, chats and assessment."""
        try:
            self.conn.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            self.conn.execute(
                "DELETE FROM session_assessments WHERE session_id = ?", (session_id,)
            )
            self.conn.execute("DELETE FROM flashcards WHERE session_id = ?", (session_id,))
            cursor = self.conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            self.conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StoreError(f"Failed to delete session {session_id}: {e}") from e
        return cursor.rowcount == 1

    # =========================================================================
    # Cards
    # =========================================================================

    def save_answer(self, flashcard_id: int, user_answer: str) -> None:
        now = _now()
        self._write(
            """UPDATE flashcards
               SET user_answer = ?, answered_at = ?, updated_at = ?
               WHERE id = ?""",
            (user_answer, now, now, flashcard_id),
        )

    def update_feedback(self, flashcard_id: int, feedback: Feedback) -> None:
        self._write(
            "UPDATE flashcards SET ai_feedback = ?, updated_at = ? WHERE id = ?",
            (feedback.model_dump_json(), _now(), flashcard_id),
        )

    def load_flashcards(self, session_id: int) -> list[Flashcard]:
        """Cards of a session in display order, with answers and feedback."""
        rows = self.conn.execute(
            """SELECT id, question, answer, user_answer, ai_feedback
               FROM flashcards WHERE session_id = ? ORDER BY display_order""",
            (session_id,),
        ).fetchall()

        cards = []
        for row in rows:
            cards.append(
                Flashcard(
                    question=row["question"],
                    answer=row["answer"],
                    user_answer=row["user_answer"],
                    feedback=_decode_feedback(row["id"], row["ai_feedback"]),
                    persisted=row["user_answer"] is not None,
                    id=row["id"],
                )
            )
        return cards

    # =========================================================================
    # Chat
    # =========================================================================

    def save_chat_message(
        self, flashcard_id: int, session_id: int, message: ChatMessage
    ) -> None:
        now = _now()
        self._write(
            """INSERT INTO chat_messages
               (flashcard_id, session_id, role, content, message_order,
                created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                flashcard_id,
                session_id,
                message.role.value,
                message.content,
                message.order,
                now,
                now,
            ),
        )

    def load_chat_messages(self, flashcard_id: int) -> list[ChatMessage]:
        """Chat history of one card, oldest first."""
        try:
            rows = self.conn.execute(
                """SELECT role, content, message_order FROM chat_messages
                   WHERE flashcard_id = ? ORDER BY message_order, id""",
                (flashcard_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load chat for flashcard {flashcard_id}: {e}") from e
        return [
            ChatMessage(
                role=ChatRole(row["role"]),
                content=row["content"],
                order=row["message_order"],
            )
            for row in rows
        ]

    # =========================================================================
    # Assessments
    # =========================================================================

    def save_assessment(self, session_id: int, assessment: SessionAssessment) -> None:
        self._write(
            """INSERT OR REPLACE INTO session_assessments
               (session_id, grade_percentage, mastery_level, overall_feedback,
                suggestions, strengths, weaknesses, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session_id,
                assessment.grade_percentage,
                assessment.mastery_level,
                assessment.overall_feedback,
                json.dumps(assessment.suggestions),
                json.dumps(assessment.strengths),
                json.dumps(assessment.weaknesses),
                _now(),
            ),
        )

    def get_assessment(self, session_id: int) -> SessionAssessment | None:
        row = self.conn.execute(
            "SELECT * FROM session_assessments WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row is None:
            return None
        return SessionAssessment(
            grade_percentage=row["grade_percentage"],
            mastery_level=row["mastery_level"],
            overall_feedback=row["overall_feedback"],
            suggestions=json.loads(row["suggestions"]),
            strengths=json.loads(row["strengths"]),
            weaknesses=json.loads(row["weaknesses"]),
        )

    def _write(self, sql: str, params: tuple) -> None:
        try:
            self.conn.execute(sql, params)
            self.conn.commit()
        except sqlite3.Error as e:
            self._rollback()
            raise StoreError(str(e)) from e

    def _rollback(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.rollback()
        except sqlite3.Error as e:
            logger.warning("Rollback failed: {}", e)


def _row_to_session(row: sqlite3.Row) -> SessionRecord:
    return SessionRecord(
        id=row["id"],
        deck_name=row["deck_name"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        questions_total=row["questions_total"],
        questions_answered=row["questions_answered"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _decode_feedback(flashcard_id: int, raw: str | None) -> Feedback | None:
    if not raw:
        return None
    try:
        return Feedback.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Dropping unreadable feedback for flashcard {}: {}", flashcard_id, e)
        return None
