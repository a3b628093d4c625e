"""Tests for the thread-safe facade used by the Qt console."""

from __future__ import annotations

import time

import pytest

from poll_app.core.errors import PersistError
from poll_app.core.event_loop import BackgroundLoop
from poll_app.core.models import QuestionType, ResultsStatus
from poll_app.core.poll_manager import PollManager
from poll_app.core.services.submission_service import SubmissionService


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")


@pytest.fixture
def loop():
    background = BackgroundLoop()
    background.start()
    yield background
    background.stop()


@pytest.fixture
def manager(backend, loop):
    poll_manager = PollManager(backend, backend, backend.broadcasts, loop, "teacher-1")
    yield poll_manager
    poll_manager.close()


def test_session_lifecycle(manager) -> None:
    assert manager.get_current_session() is None

    session = manager.start_session()

    assert manager.has_session()
    assert len(session.code) == 6
    manager.end_session()
    assert manager.get_current_session() is None


def test_create_question_requires_session(manager) -> None:
    with pytest.raises(RuntimeError):
        manager.create_question(QuestionType.ESSAY, "Why?")


def test_activating_mcq_publishes_live_tally(manager, backend, loop) -> None:
    manager.start_session()
    question = manager.create_question(QuestionType.MCQ, "Pick", ["A", "B"])
    active = manager.activate_question(question.id)
    _wait_for(lambda: manager.get_results_view().status is ResultsStatus.READY)

    submissions = SubmissionService(backend, backend.broadcasts)
    loop.run(submissions.submit_mcq(active, "s-1", [active.options[0].id]))
    _wait_for(lambda: manager.get_results_view().tally.total_answers > 0)

    view = manager.get_results_view()
    assert view.question.id == question.id
    assert view.tally.count_for(active.options[0].id) >= 1
    assert view.tally.count_for(active.options[1].id) == 0


def test_deactivating_shown_question_clears_results(manager) -> None:
    manager.start_session()
    question = manager.create_question(QuestionType.ESSAY, "Why?")
    manager.activate_question(question.id)

    manager.deactivate_question(question.id)

    assert manager.get_results_view().status is ResultsStatus.IDLE
    assert all(not q.is_active for q in manager.list_questions())


def test_load_error_then_retry(backend, loop, flaky_store) -> None:
    manager = PollManager(flaky_store, backend, backend.broadcasts, loop, "teacher-1")
    manager.start_session()
    question = manager.create_question(QuestionType.ESSAY, "Why?")
    flaky_store.fail_select = True
    try:
        manager.open_results(question).result(timeout=5)
        view = manager.get_results_view()
        assert view.status is ResultsStatus.ERROR
        assert "store unavailable" in view.error

        flaky_store.fail_select = False
        manager.retry_results().result(timeout=5)
        assert manager.get_results_view().status is ResultsStatus.READY
    finally:
        manager.close()


def test_failed_toggle_sets_notice_and_reverts(backend, loop, flaky_store) -> None:
    manager = PollManager(flaky_store, backend, backend.broadcasts, loop, "teacher-1")
    manager.start_session()
    question = manager.create_question(QuestionType.ESSAY, "Why?")
    row = loop.run(backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "hi"}))
    try:
        manager.open_results(question).result(timeout=5)
        flaky_store.fail_update = True

        with pytest.raises(PersistError):
            manager.toggle_answer_hidden(row["id"], False).result(timeout=5)

        view = manager.get_results_view()
        assert view.notice
        assert not view.feed.entries[0].answer.is_hidden
        manager.clear_notice()
        assert manager.get_results_view().notice is None
    finally:
        manager.close()


class CorruptAnswersStore:
    """Store wrapper whose answer selects fail with an unexpected error."""

    def __init__(self, backend) -> None:
        self._backend = backend
        self.corrupt = False

    async def select(self, table, filters=None, **kwargs):
        if self.corrupt and table == "answers":
            raise RuntimeError("corrupt answer page")
        return await self._backend.select(table, filters, **kwargs)

    def __getattr__(self, name):
        return getattr(self._backend, name)


def test_unexpected_load_failure_shows_error_and_unsubscribes(backend, loop) -> None:
    store = CorruptAnswersStore(backend)
    manager = PollManager(store, backend, backend.broadcasts, loop, "teacher-1")
    manager.start_session()
    question = manager.create_question(QuestionType.ESSAY, "Why?")
    store.corrupt = True
    try:
        manager.open_results(question).result(timeout=5)

        view = manager.get_results_view()
        assert view.status is ResultsStatus.ERROR
        assert "corrupt answer page" in view.error
        assert backend.subscriber_count() == 0
    finally:
        manager.close()


def test_list_sessions_newest_first(manager) -> None:
    first = manager.start_session()
    manager.end_session()
    time.sleep(0.01)
    second = manager.start_session()

    sessions = manager.list_sessions()

    assert [s.id for s in sessions] == [second.id, first.id]
    assert [s.is_active for s in sessions] == [True, False]


def test_resume_reopens_ended_session(manager, sessions, loop) -> None:
    first = manager.start_session()
    manager.create_question(QuestionType.ESSAY, "Why?")
    manager.end_session()
    manager.start_session()

    resumed = manager.resume_session(first.id)

    assert resumed.is_active
    assert manager.get_current_session().id == first.id
    assert [q.text for q in manager.list_questions()] == ["Why?"]
    assert loop.run(sessions.join_session(first.code)).id == first.id
    assert manager.get_results_view().status is ResultsStatus.IDLE


def test_resume_shows_results_of_active_question(manager, sessions, loop) -> None:
    first = manager.start_session()
    question = manager.create_question(QuestionType.ESSAY, "Why?")
    manager.activate_question(question.id)
    manager.start_session()
    assert manager.get_results_view().status is ResultsStatus.IDLE

    manager.resume_session(first.id)

    _wait_for(lambda: manager.get_results_view().status is ResultsStatus.READY)
    assert manager.get_results_view().question.id == question.id


def test_set_session_active_toggles_without_switching(manager) -> None:
    first = manager.start_session()
    manager.end_session()
    current = manager.start_session()

    reopened = manager.set_session_active(first.id, True)
    assert reopened.is_active
    assert manager.get_current_session().id == current.id

    ended = manager.set_session_active(first.id, False)
    assert not ended.is_active
    assert manager.get_current_session().id == current.id


def test_ending_current_session_from_list_clears_it(manager) -> None:
    session = manager.start_session()

    ended = manager.set_session_active(session.id, False)

    assert not ended.is_active
    assert manager.get_current_session() is None
