"""Tests for the essay feed engine and its pure helpers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
import random

import pytest

from poll_app.core.errors import PersistError
from poll_app.core.models import Answer, QuestionType
from poll_app.core.services.essay_feed import (
    EssayFeedEngine,
    apply_new_answer,
    apply_update,
    begin_hidden_toggle,
    build_feed,
    commit_or_revert,
)

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _essay(answer_id: str, student_id: str, minutes: int, text: str | None = "text") -> Answer:
    return Answer(
        id=answer_id,
        question_id="q-1",
        student_id=student_id,
        created_at=T0 + timedelta(minutes=minutes),
        text=text,
    )


def _engine(backend, store=None, **kwargs) -> EssayFeedEngine:
    return EssayFeedEngine(store or backend, backend, backend.broadcasts, **kwargs)


def _latest_per_student(entries) -> dict[str, int]:
    counts: dict[str, int] = {}
    for entry in entries:
        if entry.is_latest:
            counts[entry.answer.student_id] = counts.get(entry.answer.student_id, 0) + 1
    return counts


def test_build_feed_orders_latest_first_then_newest() -> None:
    a = _essay("A", "s-1", 1)
    b = _essay("B", "s-2", 2)
    c = _essay("C", "s-1", 3)

    entries = build_feed([a, b, c])

    assert [entry.answer.id for entry in entries] == ["C", "B", "A"]
    assert [entry.is_latest for entry in entries] == [True, True, False]


def test_build_feed_flags_exactly_one_latest_per_student() -> None:
    answers = [_essay(str(i), f"s-{i % 3}", i) for i in range(9)]

    entries = build_feed(answers)

    assert _latest_per_student(entries) == {"s-0": 1, "s-1": 1, "s-2": 1}


def test_build_feed_breaks_timestamp_ties_by_arrival() -> None:
    first = _essay("first", "s-1", 0)
    second = _essay("second", "s-1", 0)

    entries = build_feed([first, second])

    assert entries[0].answer.id == "second"
    assert entries[0].is_latest


def test_build_feed_skips_answers_without_text() -> None:
    assert build_feed([_essay("A", "s-1", 0, text=None)]) == []


def test_new_answer_demotes_previous_latest() -> None:
    entries = build_feed([_essay("A", "s-1", 1), _essay("B", "s-2", 2)])

    updated = apply_new_answer(entries, _essay("C", "s-1", 3), sequence=2)

    assert [e.answer.id for e in updated] == ["C", "B", "A"]
    assert _latest_per_student(updated) == {"s-1": 1, "s-2": 1}
    assert entries[1].is_latest, "input entries must not be mutated"


def test_update_merges_fields_into_matching_entry() -> None:
    entries = build_feed([_essay("A", "s-1", 1)])

    updated = apply_update(entries, "A", {"is_hidden": True, "unknown_column": 1})

    assert updated[0].answer.is_hidden
    assert not entries[0].answer.is_hidden


def test_update_for_unknown_answer_changes_nothing() -> None:
    entries = build_feed([_essay("A", "s-1", 1)])

    assert apply_update(entries, "missing", {"is_hidden": True}) == entries


def test_toggle_helpers_revert_on_failure() -> None:
    entries = build_feed([_essay("A", "s-1", 1)])

    tentative, pending = begin_hidden_toggle(entries, "A", current_hidden=False)
    assert tentative[0].answer.is_hidden
    assert commit_or_revert(tentative, pending, succeeded=True)[0].answer.is_hidden
    assert not commit_or_revert(tentative, pending, succeeded=False)[0].answer.is_hidden


@pytest.mark.asyncio
async def test_engine_loads_and_tracks_live_answers(backend, make_question, drain) -> None:
    question = await make_question(QuestionType.ESSAY)
    await backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "first"})
    engine = _engine(backend)
    await engine.start(question.id)

    await backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "second"})
    await drain()

    assert [e.answer.text for e in engine.all_answers()] == ["second", "first"]
    assert [e.answer.text for e in engine.latest_only()] == ["second"]
    engine.stop()


@pytest.mark.asyncio
async def test_toggle_hidden_persists_flag(backend, make_question, drain) -> None:
    question = await make_question(QuestionType.ESSAY)
    row = await backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "hi"})
    engine = _engine(backend)
    await engine.start(question.id)

    assert await engine.toggle_hidden(row["id"], current_hidden=False) is True
    await drain()

    stored = await backend.select("answers", {"id": row["id"]})
    assert stored[0]["is_hidden"] is True
    assert engine.all_answers()[0].answer.is_hidden
    engine.stop()


@pytest.mark.asyncio
async def test_toggle_hidden_rolls_back_when_store_rejects(backend, flaky_store, make_question) -> None:
    question = await make_question(QuestionType.ESSAY)
    row = await backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "hi"})
    published = []
    engine = _engine(backend, store=flaky_store, on_change=published.append)
    await engine.start(question.id)
    flaky_store.fail_update = True

    with pytest.raises(PersistError):
        await engine.toggle_hidden(row["id"], current_hidden=False)

    assert not engine.all_answers()[0].answer.is_hidden
    assert [s.entries[0].answer.is_hidden for s in published[-2:]] == [True, False]
    engine.stop()


@pytest.mark.asyncio
async def test_deduplicating_feed_keeps_one_entry_with_durable_id(
    backend, submissions, make_question, drain
) -> None:
    question = await make_question(QuestionType.ESSAY)
    engine = _engine(backend, deduplicate=True)
    await engine.start(question.id)

    answer = await submissions.submit_essay(question, "s-1", "  photosynthesis  ")
    await drain()

    entries = engine.all_answers()
    assert len(entries) == 1
    assert entries[0].answer.id == answer.id
    assert entries[0].answer.text == "photosynthesis"
    engine.stop()


@pytest.mark.asyncio
async def test_broadcast_first_is_rewritten_to_durable_id(backend, make_question, drain) -> None:
    question = await make_question(QuestionType.ESSAY)
    engine = _engine(backend, deduplicate=True)
    await engine.start(question.id)

    await backend.broadcasts.send(
        f"question-{question.id}",
        "new-answer",
        {"question_id": question.id, "student_id": "s-1", "text": "early"},
    )
    await drain()
    assert engine.all_answers()[0].answer.is_provisional

    row = await backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "early"})
    await drain()

    entries = engine.all_answers()
    assert len(entries) == 1
    assert entries[0].answer.id == row["id"]
    assert not entries[0].answer.is_provisional
    engine.stop()


def test_latest_flags_track_distinct_students_after_every_new_answer() -> None:
    rng = random.Random(2024)
    entries = build_feed([])

    for sequence in range(150):
        student_id = f"s-{rng.randint(0, 9)}"
        answer = _essay(f"a-{sequence}", student_id, rng.randint(-30, 30))
        entries = apply_new_answer(entries, answer, sequence=sequence)

        students = {entry.answer.student_id for entry in entries}
        assert sum(1 for entry in entries if entry.is_latest) == len(students)
        assert set(_latest_per_student(entries).values()) == {1}
        assert [e.answer.id for e in entries if e.answer.student_id == student_id and e.is_latest] == [answer.id]


@pytest.mark.asyncio
async def test_engine_keeps_repeated_delivery_of_same_answer(backend, make_question) -> None:
    question = await make_question(QuestionType.ESSAY)
    engine = _engine(backend)
    await engine.start(question.id)
    answer = Answer(
        id="durable-1",
        question_id=question.id,
        student_id="s-1",
        created_at=T0,
        text="twice",
    )

    engine.on_new_answer(answer)
    engine.on_new_answer(answer)

    # Without the de-duplicating wrapper a redelivered row appears twice.
    entries = engine.all_answers()
    assert [entry.answer.id for entry in entries] == ["durable-1", "durable-1"]
    assert [entry.is_latest for entry in entries] == [True, False]
    engine.stop()


class SlowUpdateStore:
    """Store wrapper whose updates wait until ``gate`` is set."""

    def __init__(self, backend) -> None:
        self._backend = backend
        self.gate = asyncio.Event()

    async def update(self, *args, **kwargs):
        await self.gate.wait()
        return await self._backend.update(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._backend, name)


@pytest.mark.asyncio
async def test_toggle_finishing_after_stop_does_not_publish(backend, make_question, drain) -> None:
    question = await make_question(QuestionType.ESSAY)
    row = await backend.insert("answers", {"question_id": question.id, "student_id": "s-1", "text": "hi"})
    store = SlowUpdateStore(backend)
    published = []
    engine = _engine(backend, store=store, on_change=published.append)
    await engine.start(question.id)

    toggle = asyncio.create_task(engine.toggle_hidden(row["id"], current_hidden=False))
    await drain()
    published_before_stop = len(published)
    engine.stop()
    store.gate.set()

    assert await toggle is True
    assert len(published) == published_before_stop
    stored = await backend.select("answers", {"id": row["id"]})
    assert stored[0]["is_hidden"] is True
