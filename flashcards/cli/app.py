"""
Interactive quiz loop.

The loop is the only code that mutates ``QuizSession``. Each iteration:

1. waits for a line of input or one UI tick, whichever comes first
2. drains evaluation outcomes that arrived meanwhile (never blocks on them)
3. handles the line, if one was read
4. re-renders when something visible changed

Input is read on a daemon thread that hands each line to the loop through
an ``asyncio.Queue``. A pending ``input()`` never stalls outcome delivery,
and Ctrl+C ends the process without waiting for the prompt to return.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from typing import Any, Callable

from loguru import logger
from rich.console import Console
from rich.text import Text

from flashcards.ai.worker import EvaluationWorker
from flashcards.cli.ui import (
    STYLES,
    assessment_panel,
    help_panel,
    render_screen,
    summary_panel,
)
from flashcards.quiz.session import QuizSession

SHUTDOWN_TIMEOUT_SECONDS = 5.0

COMMANDS = {
    ":n": "next",
    ":next": "next",
    ":p": "prev",
    ":prev": "prev",
    ":e": "eval",
    ":eval": "eval",
    "\x05": "eval",  # Ctrl+E
    ":c": "chat",
    ":chat": "chat",
    "\x14": "chat",  # Ctrl+T
    ":x": "cancel",
    ":cancel": "cancel",
    "\x18": "cancel",  # Ctrl+X
    ":s": "summary",
    ":summary": "summary",
    ":q": "quit",
    ":quit": "quit",
    ":h": "help",
    ":help": "help",
}

# Commands that still work while a chat is open
CHAT_COMMANDS = {"cancel", "help"}


class QuizApp:
    """Drives one ``QuizSession`` from the terminal."""

    def __init__(
        self,
        session: QuizSession,
        worker: EvaluationWorker | None = None,
        console: Console | None = None,
        read_line: Callable[[], str] | None = None,
        tick: float = 0.25,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT_SECONDS,
        log: Any = None,
    ):
        self.session = session
        self.worker = worker
        self.console = console or Console()
        self.read_line = read_line or self._prompt
        self.tick = tick
        self.shutdown_timeout = shutdown_timeout
        self.log = log or logger.bind(component="quiz-app")

        self.running = True
        self.frame = 0
        self.show_summary = False
        self.show_help = False
        self.notes: list[Text] = []

        self._lines: asyncio.Queue | None = None
        self._want_line = threading.Event()
        self._reader: threading.Thread | None = None
        self._reader_stopped = False

    def _prompt(self) -> str:
        return self.console.input("> ")

    # =========================================================================
    # Main loop
    # =========================================================================

    async def run(self) -> None:
        """Run until the user quits, then stop the worker and close out."""
        worker_task: asyncio.Task | None = None
        if self.worker is not None:
            worker_task = asyncio.create_task(self.worker.run(), name="evaluation-worker")

        timeout = self.shutdown_timeout
        try:
            await self._loop()
        except (asyncio.CancelledError, KeyboardInterrupt):
            # Interrupted: do not wait for the worker to finish its request
            timeout = 0.0
            raise
        finally:
            await self._shutdown(worker_task, timeout)
            self.session.finish()

    async def _loop(self) -> None:
        lines = self._start_reader()
        self.render()
        pending: asyncio.Future | None = None

        try:
            while self.running:
                if pending is None:
                    self._want_line.set()
                    pending = asyncio.ensure_future(lines.get())

                done, _ = await asyncio.wait({pending}, timeout=self.tick)
                self.frame += 1
                changed = self.session.drain_outcomes() > 0

                if pending in done:
                    line, error = pending.result()
                    pending = None
                    if isinstance(error, EOFError):
                        self.session.close_chat()
                        line = ":q"
                    elif error is not None:
                        raise error
                    self.handle_command(line)
                    if self.running:
                        self.render()
                elif changed:
                    self.render(reprompt=True)
        finally:
            if pending is not None:
                pending.cancel()
            self._stop_reader()

    def _start_reader(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        self._lines = asyncio.Queue()
        self._reader_stopped = False
        self._reader = threading.Thread(
            target=self._read_lines,
            args=(loop, self._lines),
            name="quiz-input",
            daemon=True,
        )
        self._reader.start()
        return self._lines

    def _read_lines(self, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
        """Reader thread: read one line each time the loop asks for one."""
        while True:
            self._want_line.wait()
            self._want_line.clear()
            if self._reader_stopped:
                return

            line, error = "", None
            try:
                line = self.read_line()
            except Exception as e:
                error = e

            try:
                loop.call_soon_threadsafe(lines.put_nowait, (line, error))
            except RuntimeError:
                # Event loop already closed
                return
            if isinstance(error, EOFError):
                return

    def _stop_reader(self) -> None:
        # A reader blocked in read_line() is left behind; it is a daemon.
        self._reader_stopped = True
        self._want_line.set()

    async def _shutdown(self, worker_task: asyncio.Task | None, timeout: float) -> None:
        if self.session.requests is not None:
            self.session.requests.close()
        if self.session.outcomes is not None:
            self.session.outcomes.close_receiver()
        if worker_task is None:
            return

        done, _ = await asyncio.wait({worker_task}, timeout=timeout)
        if worker_task not in done:
            if timeout:
                self.log.warning("Evaluation worker did not stop in time, cancelling it")
            worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker_task
        elif not worker_task.cancelled() and worker_task.exception() is not None:
            self.log.error("Evaluation worker crashed: {}", worker_task.exception())

    # =========================================================================
    # Commands
    # =========================================================================

    def handle_command(self, line: str) -> None:
        """Apply one line of user input to the session."""
        self.notes = []
        text = line.strip()

        if self.session.chat is not None:
            self._handle_chat_line(text)
            return

        if not text:
            if self.session.current_card.is_answered:
                self._cmd_next()
            return

        action = COMMANDS.get(text.lower())
        if action is None:
            if text.startswith(":") and " " not in text:
                self._unknown(text)
                return
            self.show_summary = False
            self.session.submit_answer(text)
            return

        getattr(self, f"_cmd_{action}")()

    def _handle_chat_line(self, text: str) -> None:
        if not text:
            return

        action = COMMANDS.get(text.lower())
        if action in ("chat", "quit"):
            self.session.close_chat()
        elif action in CHAT_COMMANDS:
            getattr(self, f"_cmd_{action}")()
        elif action is not None:
            self.notes.append(Text("Close the chat with :c first.", style=STYLES["dim"]))
        elif text.startswith(":") and " " not in text:
            self._unknown(text)
        else:
            self.session.send_chat_message(text)

    def _unknown(self, text: str) -> None:
        self.notes.append(Text(f"Unknown command {text}. Type :h for help.", style=STYLES["error"]))

    def _cmd_next(self) -> None:
        self.show_summary = False
        if not self.session.next_card():
            self.notes.append(Text("Last card. Use :s for the summary or :q to quit.", style=STYLES["dim"]))

    def _cmd_prev(self) -> None:
        self.show_summary = False
        if not self.session.previous_card():
            self.notes.append(Text("Already at the first card.", style=STYLES["dim"]))

    def _cmd_eval(self) -> None:
        if not self.session.ai_enabled:
            self.notes.append(Text("AI evaluation is disabled.", style=STYLES["dim"]))
        elif not self.session.current_card.is_answered:
            self.notes.append(Text("Answer this card first.", style=STYLES["dim"]))
        else:
            self.session.retry_evaluation()

    def _cmd_chat(self) -> None:
        if not self.session.ai_enabled:
            self.notes.append(Text("AI evaluation is disabled.", style=STYLES["dim"]))
        elif not self.session.open_chat():
            self.notes.append(Text("Chat opens once this card has AI feedback.", style=STYLES["dim"]))
        else:
            self.show_summary = False

    def _cmd_cancel(self) -> None:
        if not self.session.cancel_evaluation():
            self.notes.append(Text("No AI request is running.", style=STYLES["dim"]))

    def _cmd_summary(self) -> None:
        self.show_summary = True
        if self.session.assessment is None and self.session.ai_enabled:
            self.session.request_assessment()

    def _cmd_help(self) -> None:
        self.show_help = not self.show_help

    def _cmd_quit(self) -> None:
        self.running = False
        answered, _ = self.session.calculate_stats()
        self.console.print(summary_panel(self.session))
        self.log.info(
            "Quiz ended: {}/{} answered", answered, len(self.session.flashcards)
        )

    # =========================================================================
    # Rendering
    # =========================================================================

    def render(self, reprompt: bool = False) -> None:
        self.console.clear()
        self.console.print(render_screen(self.session, self.frame))

        if self.show_summary:
            self.console.print(summary_panel(self.session))
            if self.session.assessment is not None:
                self.console.print(assessment_panel(self.session.assessment))
            elif self.session.assessment_error:
                self.console.print(Text(self.session.assessment_error, style=STYLES["error"]))
        if self.show_help:
            self.console.print(help_panel())
        for note in self.notes:
            self.console.print(note)

        if reprompt:
            self.console.print("> ", end="")
