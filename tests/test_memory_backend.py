"""Tests for the in-process store, change feed and broadcast hub."""

from __future__ import annotations

import pytest

from poll_app.core.backend import ChangeType
from poll_app.core.errors import StoreError


@pytest.mark.asyncio
async def test_insert_fills_defaults(backend) -> None:
    row = await backend.insert("answers", {"question_id": "q-1", "student_id": "s-1", "text": "hi"})

    assert row["id"]
    assert row["created_at"]
    assert row["is_hidden"] is False
    assert row["option_id"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("table", "row"),
    [
        ("answers", {"question_id": "q-1"}),
        ("answers", {"question_id": "q-1", "student_id": "s-1", "colour": "red"}),
        ("nope", {"id": "x"}),
    ],
)
async def test_invalid_inserts_raise_store_error(backend, table, row) -> None:
    with pytest.raises(StoreError):
        await backend.insert(table, row)


@pytest.mark.asyncio
async def test_session_codes_are_unique(backend) -> None:
    await backend.insert("sessions", {"code": "123456"})

    with pytest.raises(StoreError):
        await backend.insert("sessions", {"code": "123456"})


@pytest.mark.asyncio
async def test_insert_many_is_all_or_nothing(backend) -> None:
    with pytest.raises(StoreError):
        await backend.insert_many(
            "options",
            [
                {"id": "o-1", "question_id": "q-1", "text": "A", "position": 0},
                {"id": "o-1", "question_id": "q-1", "text": "B", "position": 1},
            ],
        )

    assert await backend.select("options") == []


@pytest.mark.asyncio
async def test_update_rejects_unknown_rows_and_columns(backend) -> None:
    row = await backend.insert("answers", {"question_id": "q-1", "student_id": "s-1", "text": "hi"})

    with pytest.raises(StoreError):
        await backend.update("answers", "missing", {"is_hidden": True})
    with pytest.raises(StoreError):
        await backend.update("answers", row["id"], {"colour": "red"})


@pytest.mark.asyncio
async def test_select_filters_orders_and_skips_nulls(backend) -> None:
    await backend.insert("answers", {"question_id": "q-1", "student_id": "s-1", "text": "b", "created_at": "2024-01-02T00:00:00+00:00"})
    await backend.insert("answers", {"question_id": "q-1", "student_id": "s-2", "text": "a", "created_at": "2024-01-01T00:00:00+00:00"})
    await backend.insert("answers", {"question_id": "q-1", "student_id": "s-3", "option_id": "o-1"})
    await backend.insert("answers", {"question_id": "q-2", "student_id": "s-4", "text": "c"})

    rows = await backend.select("answers", {"question_id": "q-1"}, order_by="created_at", not_null=("text",))

    assert [row["text"] for row in rows] == ["a", "b"]


@pytest.mark.asyncio
async def test_change_feed_delivers_matching_events_in_order(backend, drain) -> None:
    received = []
    handle = backend.subscribe("answers", {"question_id": "q-1"}, received.append)

    first = await backend.insert("answers", {"question_id": "q-1", "student_id": "s-1", "text": "one"})
    await backend.insert("answers", {"question_id": "q-2", "student_id": "s-1", "text": "other"})
    await backend.update("answers", first["id"], {"is_hidden": True})
    await drain()

    assert [event.event_type for event in received] == [ChangeType.INSERT, ChangeType.UPDATE]
    assert received[1].row["is_hidden"] is True

    handle.unsubscribe()
    handle.unsubscribe()
    await backend.insert("answers", {"question_id": "q-1", "student_id": "s-1", "text": "late"})
    await drain()
    assert len(received) == 2


@pytest.mark.asyncio
async def test_broadcasts_reach_channel_subscribers(backend, drain) -> None:
    received = []
    backend.broadcasts.subscribe("question-q-1", "new-answer", received.append)

    for index in range(3):
        await backend.broadcasts.send("question-q-1", "new-answer", {"n": index})
    await backend.broadcasts.send("question-q-2", "new-answer", {"n": 99})
    await drain()

    assert [payload["n"] for payload in received] == [0, 1, 2]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_delivery(backend, drain) -> None:
    received = []

    def explode(_payload) -> None:
        raise RuntimeError("boom")

    backend.broadcasts.subscribe("question-q-1", "new-answer", explode)
    backend.broadcasts.subscribe("question-q-1", "new-answer", received.append)

    await backend.broadcasts.send("question-q-1", "new-answer", {"n": 1})
    await drain()

    assert received == [{"n": 1}]
