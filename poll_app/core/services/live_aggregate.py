"""Shared lifecycle of the per-question live result engines."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Any, Generic, TypeVar

from poll_app.core.backend import BroadcastHub, ChangeFeed, PollStore
from poll_app.core.errors import LoadError
from poll_app.core.models import Answer
from poll_app.core.services.event_reconciler import AnswerSink, DeduplicatingSink, EventReconciler

logger = logging.getLogger(__name__)

SnapshotT = TypeVar("SnapshotT")


class LiveAggregate(Generic[SnapshotT]):
    """Base class: full load on start, incremental updates until stop.

    Subclasses implement ``_fetch`` plus the two sink callbacks. All methods
    must run on the single event loop that delivers the subscriptions.
    """

    def __init__(
        self,
        store: PollStore,
        change_feed: ChangeFeed,
        broadcasts: BroadcastHub,
        *,
        deduplicate: bool = False,
        on_change: Callable[[SnapshotT], None] | None = None,
    ) -> None:
        self._store = store
        self._change_feed = change_feed
        self._broadcasts = broadcasts
        self._deduplicate = deduplicate
        self._on_change = on_change
        self._reconciler: EventReconciler | None = None
        self._snapshot: SnapshotT | None = None
        self._question_id: str | None = None
        self._generation: int = 0

    @property
    def question_id(self) -> str | None:
        return self._question_id

    @property
    def is_running(self) -> bool:
        return self._reconciler is not None and self._reconciler.is_active

    def snapshot(self) -> SnapshotT | None:
        return self._snapshot

    async def load_base(self, question_id: str) -> SnapshotT:
        """Fetch every persisted answer of the question and aggregate it."""
        snapshot, _ = await self._fetch(question_id)
        return snapshot

    async def start(self, question_id: str) -> SnapshotT | None:
        """Subscribe, load the base aggregate and go live.

        Returns ``None`` when the view was stopped or restarted while the
        load was in flight; the stale result is discarded.
        """
        self.stop()
        generation = self._generation
        self._question_id = question_id
        self._snapshot = None

        sink: AnswerSink = DeduplicatingSink(self) if self._deduplicate else self
        reconciler = EventReconciler(question_id, self._change_feed, self._broadcasts, sink)
        self._reconciler = reconciler
        reconciler.start()

        try:
            snapshot, answers = await self._fetch(question_id)
        except Exception as exc:
            if generation == self._generation:
                self.stop()
            if isinstance(exc, LoadError):
                raise
            raise LoadError(f"Could not build results for question {question_id}: {exc!r}") from exc

        if generation != self._generation or not reconciler.is_active:
            logger.debug("Discarding stale load for question %s", question_id)
            return None

        if isinstance(sink, DeduplicatingSink):
            sink.seed(answers)
        self._commit(snapshot)
        reconciler.release(answer.id for answer in answers)
        logger.info("Live results started for question %s (%d answers)", question_id, len(answers))
        return self._snapshot

    def stop(self) -> None:
        """Release both subscriptions and invalidate any in-flight load."""
        self._generation += 1
        if self._reconciler is not None:
            self._reconciler.stop()
            self._reconciler = None

    def on_new_answer(self, answer: Answer) -> None:
        raise NotImplementedError

    def on_answer_update(self, answer_id: str, changes: Mapping[str, Any]) -> None:
        raise NotImplementedError

    async def _fetch(self, question_id: str) -> tuple[SnapshotT, list[Answer]]:
        raise NotImplementedError

    def _commit(self, snapshot: SnapshotT) -> None:
        self._snapshot = snapshot
        if self._on_change is not None:
            self._on_change(snapshot)
