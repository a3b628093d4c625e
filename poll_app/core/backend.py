"""Interfaces of the managed backend consumed by the polling core.

Architecture note:
    Storage, change notifications and the broadcast transport are external
    collaborators. The core only depends on these protocols, so the in-memory
    backend used by the prototype can be replaced by a hosted database with a
    realtime layer without touching the engines.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

Row = dict[str, Any]


class ChangeType(str, Enum):
    """Kind of persisted change carried by a durable notification."""

    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Durable change notification for one row."""

    event_type: ChangeType
    table: str
    row: Mapping[str, Any]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class PollStore(Protocol):
    """Row store holding sessions, questions, options and answers."""

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        not_null: Sequence[str] = (),
    ) -> list[Row]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]: ...

    async def update(self, table: str, row_id: str, patch: Mapping[str, Any]) -> Row: ...


class ChangeFeed(Protocol):
    """Durable change notifications, at-least-once and ordered per filter."""

    def subscribe(
        self,
        table: str,
        filters: Mapping[str, Any],
        on_event: Callable[[ChangeEvent], None],
    ) -> Subscription: ...


class BroadcastHub(Protocol):
    """Ephemeral, best-effort, low-latency messages between clients."""

    def subscribe(
        self,
        channel: str,
        event: str,
        on_message: Callable[[Mapping[str, Any]], None],
    ) -> Subscription: ...

    async def send(self, channel: str, event: str, payload: Mapping[str, Any]) -> None: ...
