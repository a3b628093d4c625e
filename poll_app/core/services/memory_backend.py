"""In-process backend implementing the store, change feed and broadcast hub."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
from threading import Lock
from typing import Any
from uuid import uuid4

from poll_app.core.answer_records import format_timestamp, utc_now
from poll_app.core.backend import ChangeEvent, ChangeType, Row
from poll_app.core.errors import StoreError

logger = logging.getLogger(__name__)

_TABLE_COLUMNS: dict[str, dict[str, Any]] = {
    "sessions": {"code": ..., "is_active": True, "teacher_id": None},
    "questions": {
        "session_id": ...,
        "type": ...,
        "text": ...,
        "is_active": False,
        "allow_multiple": False,
    },
    "options": {"question_id": ..., "text": ..., "position": ...},
    "answers": {
        "question_id": ...,
        "student_id": ...,
        "option_id": None,
        "text": None,
        "is_hidden": False,
    },
}
_UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {"sessions": ("code",)}


@dataclass(eq=False)
class _Subscriber:
    """Callback registered on a loop; pending messages keep delivery order."""

    callback: Callable[[Any], None]
    loop: asyncio.AbstractEventLoop
    filters: Mapping[str, Any] = field(default_factory=dict)
    pending: deque = field(default_factory=deque)
    active: bool = True


class _Handle:
    """Subscription handle returned to callers."""

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._released = False

    def unsubscribe(self) -> None:
        if self._released:
            return
        self._released = True
        self._release()


class InMemoryBackend:
    """Thread-safe store with realtime notifications delivered per subscriber loop."""

    def __init__(self, notification_delay: float = 0.0) -> None:
        self._lock = Lock()
        self._tables: dict[str, dict[str, Row]] = {name: {} for name in _TABLE_COLUMNS}
        self._change_subscribers: dict[str, list[_Subscriber]] = {}
        self._broadcast_subscribers: dict[tuple[str, str], list[_Subscriber]] = {}
        self._notification_delay = max(0.0, notification_delay)

    # --- Store ---

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        not_null: Sequence[str] = (),
    ) -> list[Row]:
        with self._lock:
            rows = [
                dict(row)
                for row in self._table(table).values()
                if _matches(row, filters or {}) and all(row.get(c) is not None for c in not_null)
            ]
        if order_by is not None:
            rows.sort(key=lambda row: row.get(order_by), reverse=descending)
        return rows

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        inserted = await self.insert_many(table, [row])
        return inserted[0]

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        with self._lock:
            stored = self._table(table)
            prepared = [self._prepare_row(table, row) for row in rows]
            ids = [row["id"] for row in prepared]
            if len(set(ids)) != len(ids) or any(row_id in stored for row_id in ids):
                raise StoreError(f"Duplicate id in '{table}'.")
            self._check_unique(table, stored, prepared)
            for row in prepared:
                stored[row["id"]] = row
            inserted = [dict(row) for row in prepared]
        for row in inserted:
            self._notify(ChangeEvent(ChangeType.INSERT, table, dict(row)))
        return inserted

    async def update(self, table: str, row_id: str, patch: Mapping[str, Any]) -> Row:
        with self._lock:
            stored = self._table(table)
            current = stored.get(row_id)
            if current is None:
                raise StoreError(f"No row '{row_id}' in table '{table}'.")
            unknown = set(patch) - set(_TABLE_COLUMNS[table]) - {"created_at"}
            if unknown or "id" in patch:
                raise StoreError(f"Cannot update columns {sorted(unknown | ({'id'} & set(patch)))}.")
            candidate = {**current, **patch}
            self._check_unique(table, {k: v for k, v in stored.items() if k != row_id}, [candidate])
            stored[row_id] = candidate
            updated = dict(candidate)
        self._notify(ChangeEvent(ChangeType.UPDATE, table, dict(updated)))
        return updated

    # --- Change feed ---

    def subscribe(
        self,
        table: str,
        filters: Mapping[str, Any],
        on_event: Callable[[ChangeEvent], None],
    ) -> _Handle:
        self._table(table)
        subscriber = _Subscriber(on_event, asyncio.get_running_loop(), dict(filters))
        with self._lock:
            self._change_subscribers.setdefault(table, []).append(subscriber)
        return _Handle(lambda: self._remove(self._change_subscribers, table, subscriber))

    # --- Broadcast ---

    def broadcast_subscribe(
        self,
        channel: str,
        event: str,
        on_message: Callable[[Mapping[str, Any]], None],
    ) -> _Handle:
        subscriber = _Subscriber(on_message, asyncio.get_running_loop())
        key = (channel, event)
        with self._lock:
            self._broadcast_subscribers.setdefault(key, []).append(subscriber)
        return _Handle(lambda: self._remove(self._broadcast_subscribers, key, subscriber))

    async def broadcast_send(self, channel: str, event: str, payload: Mapping[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._broadcast_subscribers.get((channel, event), ()))
        for subscriber in subscribers:
            self._deliver(self._broadcast_subscribers, (channel, event), subscriber, dict(payload), 0.0)

    @property
    def broadcasts(self) -> "BroadcastChannels":
        return BroadcastChannels(self)

    def subscriber_count(self) -> int:
        with self._lock:
            changes = sum(len(subs) for subs in self._change_subscribers.values())
            broadcasts = sum(len(subs) for subs in self._broadcast_subscribers.values())
        return changes + broadcasts

    # --- Internals ---

    def _table(self, table: str) -> dict[str, Row]:
        try:
            return self._tables[table]
        except KeyError:
            raise StoreError(f"Unknown table '{table}'.") from None

    @staticmethod
    def _prepare_row(table: str, row: Mapping[str, Any]) -> Row:
        columns = _TABLE_COLUMNS[table]
        unknown = set(row) - set(columns) - {"id", "created_at"}
        if unknown:
            raise StoreError(f"Unknown columns for '{table}': {sorted(unknown)}")
        prepared: Row = {"id": row.get("id") or str(uuid4())}
        for column, default in columns.items():
            if column in row:
                prepared[column] = row[column]
            elif default is ...:
                raise StoreError(f"Column '{column}' is required for '{table}'.")
            else:
                prepared[column] = default
        prepared["created_at"] = row.get("created_at") or format_timestamp(utc_now())
        return prepared

    @staticmethod
    def _check_unique(table: str, existing: Mapping[str, Row], new_rows: Sequence[Row]) -> None:
        for column in _UNIQUE_COLUMNS.get(table, ()):
            seen = {row[column] for row in existing.values()}
            for row in new_rows:
                if row[column] in seen:
                    raise StoreError(f"Duplicate value for '{table}.{column}'.")
                seen.add(row[column])

    def _notify(self, event: ChangeEvent) -> None:
        with self._lock:
            subscribers = [
                s for s in self._change_subscribers.get(event.table, ()) if _matches(event.row, s.filters)
            ]
        for subscriber in subscribers:
            self._deliver(
                self._change_subscribers, event.table, subscriber, event, self._notification_delay
            )

    def _deliver(
        self,
        registry: dict,
        key: Any,
        subscriber: _Subscriber,
        message: Any,
        delay: float,
    ) -> None:
        subscriber.pending.append(message)
        try:
            if delay > 0:
                subscriber.loop.call_soon_threadsafe(
                    subscriber.loop.call_later, delay, self._dispatch, subscriber
                )
            else:
                subscriber.loop.call_soon_threadsafe(self._dispatch, subscriber)
        except RuntimeError:
            logger.debug("Dropping subscriber on a closed event loop.")
            self._remove(registry, key, subscriber)

    @staticmethod
    def _dispatch(subscriber: _Subscriber) -> None:
        if not subscriber.pending:
            return
        message = subscriber.pending.popleft()
        if not subscriber.active:
            return
        try:
            subscriber.callback(message)
        except Exception:
            logger.exception("Realtime subscriber raised while handling a message.")

    def _remove(self, registry: dict, key: Any, subscriber: _Subscriber) -> None:
        subscriber.active = False
        with self._lock:
            subscribers = registry.get(key, [])
            if subscriber in subscribers:
                subscribers.remove(subscriber)
            if not subscribers:
                registry.pop(key, None)


class BroadcastChannels:
    """:class:`BroadcastHub` view over :class:`InMemoryBackend`."""

    def __init__(self, backend: InMemoryBackend) -> None:
        self._backend = backend

    def subscribe(
        self,
        channel: str,
        event: str,
        on_message: Callable[[Mapping[str, Any]], None],
    ) -> _Handle:
        return self._backend.broadcast_subscribe(channel, event, on_message)

    async def send(self, channel: str, event: str, payload: Mapping[str, Any]) -> None:
        await self._backend.broadcast_send(channel, event, payload)


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    return all(row.get(column) == value for column, value in filters.items())
