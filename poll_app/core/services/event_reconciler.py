"""Merges durable change notifications and ephemeral broadcasts per question.

Architecture note:
    Two channels report the same student submission. The durable change feed
    fires once the row is persisted and carries the real id and timestamp but
    may lag by seconds. The broadcast channel fires almost instantly but is
    best effort and carries no store id. The reconciler routes both into one
    stream of ``on_new_answer`` / ``on_answer_update`` calls. It does not pair
    a broadcast with its later durable row, so by default a submission seen on
    both channels is applied twice. Wrap the sink in :class:`DeduplicatingSink`
    when strict counts matter.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
import logging
from typing import Any, Callable, Protocol

from poll_app.constants.poll_constants import (
    ANSWERS_TABLE,
    BROADCAST_CHANNEL_TEMPLATE,
    BROADCAST_NEW_ANSWER_EVENT,
    DEDUPE_WINDOW_SECONDS,
)
from poll_app.core.answer_records import (
    BroadcastRecord,
    DurableRecord,
    answer_changes_from_row,
    normalize_answer,
    utc_now,
)
from poll_app.core.backend import BroadcastHub, ChangeEvent, ChangeFeed, ChangeType, Subscription
from poll_app.core.errors import MalformedEvent
from poll_app.core.models import Answer

logger = logging.getLogger(__name__)


class AnswerSink(Protocol):
    """Receiver of reconciled answer events (implemented by the engines)."""

    def on_new_answer(self, answer: Answer) -> None: ...

    def on_answer_update(self, answer_id: str, changes: Mapping[str, Any]) -> None: ...


def broadcast_channel_for(question_id: str) -> str:
    return BROADCAST_CHANNEL_TEMPLATE.format(question_id=question_id)


class EventReconciler:
    """Owns both subscriptions of one question view and routes their events."""

    def __init__(
        self,
        question_id: str,
        change_feed: ChangeFeed,
        broadcasts: BroadcastHub,
        sink: AnswerSink,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.question_id = question_id
        self._change_feed = change_feed
        self._broadcasts = broadcasts
        self._sink = sink
        self._clock = clock
        self._subscriptions: list[Subscription] = []
        self._buffer: deque[ChangeEvent | BroadcastRecord] = deque()
        self._buffering = False
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        """Subscribe to both channels and hold events until :meth:`release`."""
        if self._active:
            return
        self._active = True
        self._buffering = True
        self._subscriptions = [
            self._change_feed.subscribe(
                ANSWERS_TABLE, {"question_id": self.question_id}, self.handle_change
            ),
            self._broadcasts.subscribe(
                broadcast_channel_for(self.question_id),
                BROADCAST_NEW_ANSWER_EVENT,
                self.handle_broadcast,
            ),
        ]
        logger.debug("Reconciler subscribed for question %s", self.question_id)

    def release(self, known_answer_ids: Iterable[str] = ()) -> None:
        """Replay events received during the initial load, then go live.

        Durable inserts already contained in the loaded base are skipped.
        """
        known = set(known_answer_ids)
        self._buffering = False
        while self._buffer and self._active:
            item = self._buffer.popleft()
            if isinstance(item, ChangeEvent):
                if item.event_type is ChangeType.INSERT and item.row.get("id") in known:
                    logger.debug("Skipping buffered insert %s already in base load", item.row.get("id"))
                    continue
                self._route_change(item)
            else:
                self._route_broadcast(item)

    def stop(self) -> None:
        """Unsubscribe from both channels; later deliveries are ignored."""
        self._active = False
        self._buffer.clear()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        logger.debug("Reconciler released question %s", self.question_id)

    def handle_change(self, event: ChangeEvent) -> None:
        if not self._active:
            return
        if self._buffering:
            self._buffer.append(event)
            return
        self._route_change(event)

    def handle_broadcast(self, payload: Mapping[str, Any]) -> None:
        if not self._active:
            return
        if not isinstance(payload, Mapping):
            logger.warning("Dropping malformed broadcast: payload is a %s", type(payload).__name__)
            return
        record = BroadcastRecord(payload=dict(payload), received_at=self._clock())
        if self._buffering:
            self._buffer.append(record)
            return
        self._route_broadcast(record)

    def _route_change(self, event: ChangeEvent) -> None:
        if event.row.get("question_id") != self.question_id:
            logger.debug("Ignoring change for another question: %s", event.row.get("question_id"))
            return
        try:
            if event.event_type is ChangeType.INSERT:
                self._sink.on_new_answer(normalize_answer(DurableRecord(event.row)))
            elif event.event_type is ChangeType.UPDATE:
                answer_id = event.row.get("id")
                if not isinstance(answer_id, str) or not answer_id:
                    raise MalformedEvent("Update notification without an answer id.")
                self._sink.on_answer_update(answer_id, answer_changes_from_row(event.row))
        except MalformedEvent as exc:
            logger.warning("Dropping malformed change notification: %s", exc)

    def _route_broadcast(self, record: BroadcastRecord) -> None:
        if record.payload.get("question_id") != self.question_id:
            logger.debug("Ignoring broadcast for another question: %s", record.payload.get("question_id"))
            return
        try:
            answer = normalize_answer(record)
        except MalformedEvent as exc:
            logger.warning("Dropping malformed broadcast: %s", exc)
            return
        self._sink.on_new_answer(answer)


class DeduplicatingSink:
    """Makes ``on_new_answer`` idempotent and pairs broadcasts with durable rows.

    A durable answer and a provisional (broadcast) answer are treated as the
    same submission when they share the student, the selected options or the
    text, and their timestamps lie within ``window``. When the durable row
    arrives second, the provisional entry is rewritten to the durable id
    instead of being counted again.
    """

    def __init__(
        self,
        sink: AnswerSink,
        window: timedelta = timedelta(seconds=DEDUPE_WINDOW_SECONDS),
    ) -> None:
        self._sink = sink
        self._window = window
        self._seen_ids: set[str] = set()
        # provisional answer -> option ids still expected as durable rows
        self._pending: list[tuple[Answer, set[str]]] = []
        self._unmatched_durable: list[Answer] = []

    def seed(self, answers: Iterable[Answer]) -> None:
        """Register answers that are already part of the aggregate."""
        for answer in answers:
            self._seen_ids.add(answer.id)
            if not answer.is_provisional:
                self._unmatched_durable.append(answer)

    def on_new_answer(self, answer: Answer) -> None:
        if answer.id in self._seen_ids:
            logger.debug("Duplicate delivery of answer %s ignored", answer.id)
            return
        self._seen_ids.add(answer.id)
        self._prune(answer.created_at - self._window)
        if answer.is_provisional:
            self._on_provisional(answer)
        else:
            self._on_durable(answer)

    def on_answer_update(self, answer_id: str, changes: Mapping[str, Any]) -> None:
        self._sink.on_answer_update(answer_id, changes)

    def _on_provisional(self, answer: Answer) -> None:
        matched = [d for d in self._unmatched_durable if self._same_submission(d, answer)]
        if matched:
            for durable in matched:
                self._unmatched_durable.remove(durable)
            logger.debug("Broadcast for already counted answer from %s ignored", answer.student_id)
            return
        self._pending.append((answer, set(answer.option_ids)))
        self._sink.on_new_answer(answer)

    def _on_durable(self, answer: Answer) -> None:
        for index, (provisional, remaining) in enumerate(self._pending):
            if not self._same_submission(provisional, answer):
                continue
            if remaining and not remaining.intersection(answer.option_ids):
                continue
            first_match = len(remaining) == len(provisional.option_ids)
            remaining.difference_update(answer.option_ids)
            if not remaining:
                del self._pending[index]
            if first_match:
                self._sink.on_answer_update(
                    provisional.id,
                    {
                        "id": answer.id,
                        "created_at": answer.created_at,
                        "is_hidden": answer.is_hidden,
                        "is_provisional": False,
                    },
                )
            return
        self._unmatched_durable.append(answer)
        self._sink.on_new_answer(answer)

    def pending_count(self) -> int:
        """Number of answers still waiting for their counterpart on the other channel."""
        return len(self._pending) + len(self._unmatched_durable)

    def _prune(self, cutoff: datetime) -> None:
        # Entries older than the window can no longer match anything.
        self._pending = [entry for entry in self._pending if entry[0].created_at >= cutoff]
        self._unmatched_durable = [d for d in self._unmatched_durable if d.created_at >= cutoff]

    def _same_submission(self, first: Answer, second: Answer) -> bool:
        if first.student_id != second.student_id or first.question_id != second.question_id:
            return False
        if abs(first.created_at - second.created_at) > self._window:
            return False
        if first.text is not None or second.text is not None:
            return first.text == second.text
        return bool(set(first.option_ids) & set(second.option_ids))
