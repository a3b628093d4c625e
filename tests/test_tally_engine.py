"""Tests for the multiple-choice tally engine."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone

import pytest

from poll_app.core.errors import LoadError
from poll_app.core.models import Answer, QuestionOption, QuestionType
from poll_app.core.services.event_reconciler import broadcast_channel_for
from poll_app.core.services.tally_engine import (
    McqTallyEngine,
    apply_increment,
    build_tally,
    percentage,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
OPTIONS = [
    QuestionOption(id="o-a", question_id="q-1", text="A", position=0),
    QuestionOption(id="o-b", question_id="q-1", text="B", position=1),
]


def _answer(option_id: str, student_id: str = "s-1", answer_id: str = "a-1", **kwargs) -> Answer:
    return Answer(
        id=answer_id,
        question_id="q-1",
        student_id=student_id,
        created_at=NOW,
        option_id=option_id,
        **kwargs,
    )


def _engine(backend, store=None, **kwargs) -> McqTallyEngine:
    return McqTallyEngine(store or backend, backend, backend.broadcasts, **kwargs)


async def _insert_answer(backend, question, option_index: int, student_id: str) -> None:
    await backend.insert(
        "answers",
        {"question_id": question.id, "student_id": student_id, "option_id": question.options[option_index].id},
    )


@pytest.mark.parametrize(
    ("count", "total", "expected"),
    [(1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (0, 0, 0), (5, 5, 100)],
)
def test_percentage_rounds_half_up(count: int, total: int, expected: int) -> None:
    assert percentage(count, total) == expected


def test_build_tally_counts_match_total() -> None:
    answers = [
        _answer("o-a", answer_id="1"),
        _answer("o-b", answer_id="2"),
        _answer("o-b", answer_id="3"),
    ]

    tally = build_tally("q-1", OPTIONS, answers)

    assert tally.total_answers == 3
    assert sum(option.count for option in tally.options) == tally.total_answers
    assert [option.percentage for option in tally.options] == [33, 67]


def test_build_tally_of_no_answers_is_all_zero() -> None:
    tally = build_tally("q-1", OPTIONS, [])

    assert tally.total_answers == 0
    assert all(option.count == 0 and option.percentage == 0 for option in tally.options)


def test_increment_for_unknown_option_leaves_tally_unchanged() -> None:
    tally = build_tally("q-1", OPTIONS, [_answer("o-a")])

    assert apply_increment(tally, _answer("o-zzz", answer_id="x")) is tally


def test_increment_returns_new_snapshot() -> None:
    tally = build_tally("q-1", OPTIONS, [])

    updated = apply_increment(tally, _answer("o-a"))

    assert updated is not tally
    assert tally.total_answers == 0
    assert updated.total_answers == 1
    assert updated.count_for("o-a") == 1
    assert updated.percentage_for("o-a") == 100


def test_multi_select_increment_counts_one_submission() -> None:
    tally = build_tally("q-1", OPTIONS, [])
    answer = _answer("o-a", selected_option_ids=("o-a", "o-b"), is_provisional=True)

    updated = apply_increment(tally, answer)

    assert updated.total_answers == 1
    assert updated.count_for("o-a") == 1
    assert updated.count_for("o-b") == 1


@pytest.mark.asyncio
async def test_start_loads_persisted_answers(backend, make_question) -> None:
    question = await make_question()
    await _insert_answer(backend, question, 0, "s-1")
    await _insert_answer(backend, question, 0, "s-2")
    await _insert_answer(backend, question, 1, "s-3")
    engine = _engine(backend)

    snapshot = await engine.start(question.id)

    assert snapshot is not None
    assert snapshot.total_answers == 3
    assert [o.count for o in snapshot.options] == [2, 1, 0]
    assert [o.percentage for o in snapshot.options] == [67, 33, 0]
    assert engine.is_running
    engine.stop()


@pytest.mark.asyncio
async def test_live_insert_updates_tally_and_notifies(backend, make_question, drain) -> None:
    question = await make_question()
    published = []
    engine = _engine(backend, on_change=published.append)
    await engine.start(question.id)

    await _insert_answer(backend, question, 2, "s-1")
    await drain()

    assert engine.snapshot().count_for(question.options[2].id) == 1
    assert published[-1].total_answers == 1
    engine.stop()


@pytest.mark.asyncio
async def test_broadcasts_during_load_are_applied_after_base(backend, gated_store, make_question, drain) -> None:
    question = await make_question()
    for index in range(4):
        await _insert_answer(backend, question, 0, f"base-{index}")
    engine = _engine(backend, store=gated_store)

    start = asyncio.create_task(engine.start(question.id))
    await drain()
    for index in range(3):
        await backend.broadcasts.send(
            broadcast_channel_for(question.id),
            "new-answer",
            {"question_id": question.id, "student_id": f"live-{index}", "option_id": question.options[1].id},
        )
    await drain()
    gated_store.gate.set()
    snapshot = await start
    await drain()

    assert snapshot is not None
    assert engine.snapshot().total_answers == 4 + 3
    assert engine.snapshot().count_for(question.options[1].id) == 3
    engine.stop()


@pytest.mark.asyncio
async def test_insert_during_load_is_not_counted_twice(backend, gated_store, make_question, drain) -> None:
    question = await make_question()
    engine = _engine(backend, store=gated_store)

    start = asyncio.create_task(engine.start(question.id))
    await drain()
    await _insert_answer(backend, question, 0, "s-1")
    await drain()
    gated_store.gate.set()
    await start
    await drain()

    assert engine.snapshot().total_answers == 1
    engine.stop()


@pytest.mark.asyncio
async def test_submission_seen_on_both_channels_counts_twice_by_default(
    backend, submissions, make_question, drain
) -> None:
    question = await make_question()
    engine = _engine(backend)
    await engine.start(question.id)

    await submissions.submit_mcq(question, "s-1", [question.options[0].id])
    await drain()

    assert engine.snapshot().total_answers == 2
    engine.stop()


@pytest.mark.asyncio
async def test_deduplicating_engine_counts_submission_once(backend, submissions, make_question, drain) -> None:
    question = await make_question(allow_multiple=True)
    engine = _engine(backend, deduplicate=True)
    await engine.start(question.id)

    await submissions.submit_mcq(question, "s-1", [question.options[0].id, question.options[1].id])
    await submissions.submit_mcq(question, "s-2", [question.options[1].id])
    await drain()

    snapshot = engine.snapshot()
    assert snapshot.count_for(question.options[0].id) == 1
    assert snapshot.count_for(question.options[1].id) == 2
    assert snapshot == await engine.load_base(question.id)
    engine.stop()


@pytest.mark.asyncio
async def test_load_failure_raises_and_stops(backend, flaky_store, make_question) -> None:
    question = await make_question()
    flaky_store.fail_select = True
    engine = _engine(backend, store=flaky_store)

    with pytest.raises(LoadError):
        await engine.start(question.id)

    assert not engine.is_running
    assert backend.subscriber_count() == 0


@pytest.mark.asyncio
async def test_stop_during_load_discards_result(backend, gated_store, make_question, drain) -> None:
    question = await make_question()
    engine = _engine(backend, store=gated_store)

    start = asyncio.create_task(engine.start(question.id))
    await drain()
    engine.stop()
    gated_store.gate.set()

    assert await start is None
    assert engine.snapshot() is None
    assert backend.subscriber_count() == 0


@pytest.mark.asyncio
async def test_stopped_engine_ignores_later_answers(backend, make_question, drain) -> None:
    question = await make_question()
    engine = _engine(backend)
    await engine.start(question.id)
    engine.stop()

    await _insert_answer(backend, question, 0, "s-1")
    await drain()

    assert engine.snapshot().total_answers == 0
    assert backend.subscriber_count() == 0


@pytest.mark.asyncio
async def test_answers_for_other_questions_are_ignored(backend, sessions, make_question, drain) -> None:
    question = await make_question()
    other = await sessions.create_question(question.session_id, QuestionType.MCQ, "Other?", ["x", "y"])
    engine = _engine(backend)
    await engine.start(question.id)

    await backend.insert(
        "answers", {"question_id": other.id, "student_id": "s-1", "option_id": other.options[0].id}
    )
    await drain()

    assert engine.snapshot().total_answers == 0
    engine.stop()


class OptionRowsWithoutText:
    """Store wrapper that returns option rows missing their text column."""

    def __init__(self, backend) -> None:
        self._backend = backend

    async def select(self, table, filters=None, **kwargs):
        rows = await self._backend.select(table, filters, **kwargs)
        if table == "options":
            return [{k: v for k, v in row.items() if k != "text"} for row in rows]
        return rows

    def __getattr__(self, name):
        return getattr(self._backend, name)


@pytest.mark.asyncio
async def test_bad_option_row_fails_load_and_releases_subscriptions(backend, make_question) -> None:
    question = await make_question()
    engine = _engine(backend, store=OptionRowsWithoutText(backend))

    with pytest.raises(LoadError):
        await engine.start(question.id)

    assert not engine.is_running
    assert backend.subscriber_count() == 0


def test_multi_select_sequence_counts_each_option_at_most_once_per_submission() -> None:
    rng = random.Random(1234)
    option_ids = [option.id for option in OPTIONS]
    tally = build_tally("q-1", OPTIONS, [])

    for index in range(200):
        picked = tuple(rng.sample(option_ids, rng.randint(1, 2)))
        answer = _answer(picked[0], answer_id=f"a-{index}", selected_option_ids=picked, is_provisional=True)
        tally = apply_increment(tally, answer)

        assert tally.total_answers == index + 1
        assert all(option.count <= tally.total_answers for option in tally.options)
        assert tally.total_answers <= sum(option.count for option in tally.options) <= 2 * tally.total_answers


def test_single_select_sequence_keeps_counts_equal_to_total() -> None:
    rng = random.Random(99)
    tally = build_tally("q-1", OPTIONS, [])

    for index in range(200):
        option_id = rng.choice(["o-a", "o-b", "o-missing"])
        tally = apply_increment(tally, _answer(option_id, answer_id=f"a-{index}"))

        assert sum(option.count for option in tally.options) == tally.total_answers
        assert all(0 <= option.percentage <= 100 for option in tally.options)


@pytest.mark.asyncio
async def test_engine_counts_repeated_delivery_of_same_answer(backend, make_question) -> None:
    question = await make_question()
    engine = _engine(backend)
    await engine.start(question.id)
    answer = Answer(
        id="durable-1",
        question_id=question.id,
        student_id="s-1",
        created_at=NOW,
        option_id=question.options[0].id,
    )

    engine.on_new_answer(answer)
    engine.on_new_answer(answer)

    # Without the de-duplicating wrapper a redelivered row is counted again.
    assert engine.snapshot().total_answers == 2
    assert engine.snapshot().count_for(question.options[0].id) == 2
    engine.stop()
