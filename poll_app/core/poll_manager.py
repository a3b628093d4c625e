"""Facade shared by the teacher UI: sessions, questions and live results."""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Future
from dataclasses import replace
import logging
from threading import Lock

from poll_app.core.backend import BroadcastHub, ChangeFeed, PollStore
from poll_app.core.errors import LoadError, PersistError
from poll_app.core.event_loop import BackgroundLoop
from poll_app.core.models import (
    FeedSnapshot,
    PollSession,
    Question,
    QuestionType,
    ResultsStatus,
    ResultsView,
    TallySnapshot,
)
from poll_app.core.services.essay_feed import EssayFeedEngine
from poll_app.core.services.live_aggregate import LiveAggregate
from poll_app.core.services.session_service import SessionService
from poll_app.core.services.tally_engine import McqTallyEngine

logger = logging.getLogger(__name__)


class PollManager:
    """Thread-safe entry point for the Qt console.

    Store calls and engines run on the background loop; the UI thread only
    reads the published :class:`ResultsView` under the lock.
    """

    def __init__(
        self,
        store: PollStore,
        change_feed: ChangeFeed,
        broadcasts: BroadcastHub,
        loop: BackgroundLoop,
        teacher_id: str | None = None,
        *,
        deduplicate: bool = False,
    ) -> None:
        self._lock = Lock()
        self._store = store
        self._change_feed = change_feed
        self._broadcasts = broadcasts
        self._loop = loop
        self._teacher_id = teacher_id
        self._deduplicate = deduplicate
        self._sessions = SessionService(store)

        self._session: PollSession | None = None
        self._results = ResultsView(status=ResultsStatus.IDLE)
        # Only touched on the background loop.
        self._engine: LiveAggregate | None = None
        self._closed = False

    # --- Sessions ---

    def start_session(self) -> PollSession:
        session = self._loop.run(self._sessions.create_session(self._teacher_id))
        with self._lock:
            self._session = session
        self.close_results()
        return session

    def end_session(self) -> None:
        session = self.get_current_session()
        if session is None:
            return
        self.close_results()
        self._loop.run(self._sessions.end_session(session.id))
        with self._lock:
            self._session = None

    def list_sessions(self) -> list[PollSession]:
        """All sessions of this teacher, newest first."""
        return self._loop.run(self._sessions.list_sessions(self._teacher_id))

    def resume_session(self, session_id: str) -> PollSession:
        """Make an earlier session current, reopening it if it had ended.

        Live results of the session's active question, if any, are shown again.
        """
        session = self._loop.run(self._sessions.get_session(session_id))
        if not session.is_active:
            session = self._loop.run(self._sessions.reopen_session(session_id))
        self.close_results()
        with self._lock:
            self._session = session
        active_question = self._loop.run(self._sessions.get_active_question(session.id))
        if active_question is not None:
            self.open_results(active_question)
        return session

    def set_session_active(self, session_id: str, active: bool) -> PollSession:
        """Reopen or end any session of this teacher without switching to it."""
        current = self.get_current_session()
        is_current = current is not None and current.id == session_id
        if active:
            session = self._loop.run(self._sessions.reopen_session(session_id))
            if is_current:
                with self._lock:
                    self._session = session
            return session
        if is_current:
            self.end_session()
            return self._loop.run(self._sessions.get_session(session_id))
        return self._loop.run(self._sessions.end_session(session_id))

    def get_current_session(self) -> PollSession | None:
        with self._lock:
            return self._session

    def has_session(self) -> bool:
        return self.get_current_session() is not None

    # --- Questions ---

    def list_questions(self) -> list[Question]:
        session = self.get_current_session()
        if session is None:
            return []
        return self._loop.run(self._sessions.list_questions(session.id))

    def create_question(
        self,
        question_type: QuestionType,
        text: str,
        options: Sequence[str] = (),
        allow_multiple: bool = False,
    ) -> Question:
        session = self.get_current_session()
        if session is None:
            raise RuntimeError("No session is running.")
        return self._loop.run(
            self._sessions.create_question(session.id, question_type, text, options, allow_multiple)
        )

    def activate_question(self, question_id: str) -> Question:
        question = self._loop.run(self._sessions.activate_question(question_id))
        self.open_results(question)
        return question

    def deactivate_question(self, question_id: str) -> None:
        self._loop.run(self._sessions.deactivate_question(question_id))
        with self._lock:
            showing = self._results.question is not None and self._results.question.id == question_id
        if showing:
            self.close_results()

    # --- Results ---

    def open_results(self, question: Question) -> Future:
        with self._lock:
            self._results = ResultsView(status=ResultsStatus.LOADING, question=question)
        return self._loop.submit(self._start_engine(question))

    def retry_results(self) -> Future | None:
        with self._lock:
            question = self._results.question
        if question is None:
            return None
        return self.open_results(question)

    def close_results(self) -> None:
        with self._lock:
            self._results = ResultsView(status=ResultsStatus.IDLE)
        self._loop.run(self._stop_engine())

    def get_results_view(self) -> ResultsView:
        with self._lock:
            return replace(self._results)

    def clear_notice(self) -> None:
        with self._lock:
            self._results = replace(self._results, notice=None)

    def set_deduplicate(self, enabled: bool) -> None:
        """Applies to the next results view that is opened."""
        with self._lock:
            self._deduplicate = enabled

    def toggle_answer_hidden(self, answer_id: str, current_hidden: bool) -> Future:
        return self._loop.submit(self._toggle_hidden(answer_id, current_hidden))

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._loop.run(self._stop_engine())
        finally:
            self._loop.stop()

    # --- Loop-side helpers ---

    async def _start_engine(self, question: Question) -> None:
        await self._stop_engine()
        with self._lock:
            deduplicate = self._deduplicate
        engine_type = McqTallyEngine if question.is_mcq else EssayFeedEngine
        engine = engine_type(
            self._store,
            self._change_feed,
            self._broadcasts,
            deduplicate=deduplicate,
            on_change=self._publish,
        )
        self._engine = engine
        try:
            await engine.start(question.id)
        except LoadError as exc:
            logger.error("Loading results for question %s failed: %s", question.id, exc)
            with self._lock:
                if self._results.question is not None and self._results.question.id == question.id:
                    self._results = replace(self._results, status=ResultsStatus.ERROR, error=str(exc))

    async def _stop_engine(self) -> None:
        if self._engine is not None:
            self._engine.stop()
            self._engine = None

    async def _toggle_hidden(self, answer_id: str, current_hidden: bool) -> bool:
        engine = self._engine
        if not isinstance(engine, EssayFeedEngine):
            raise RuntimeError("Moderation is only available for essay questions.")
        try:
            return await engine.toggle_hidden(answer_id, current_hidden)
        except PersistError:
            with self._lock:
                self._results = replace(self._results, notice="Could not update the answer; change reverted.")
            raise

    def _publish(self, snapshot: TallySnapshot | FeedSnapshot) -> None:
        with self._lock:
            question = self._results.question
            if question is None or question.id != snapshot.question_id:
                return
            if isinstance(snapshot, TallySnapshot):
                self._results = replace(self._results, status=ResultsStatus.READY, tally=snapshot, error=None)
            else:
                self._results = replace(self._results, status=ResultsStatus.READY, feed=snapshot, error=None)
