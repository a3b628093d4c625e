"""Latest-answer-per-student feed with optimistic moderation for essays."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, fields, replace
import logging
from typing import Any

from poll_app.constants.poll_constants import ANSWERS_TABLE
from poll_app.core.answer_records import DurableRecord, normalize_answer
from poll_app.core.errors import LoadError, MalformedEvent, PersistError, StoreError
from poll_app.core.models import Answer, FeedEntry, FeedSnapshot
from poll_app.core.services.live_aggregate import LiveAggregate

logger = logging.getLogger(__name__)

_ANSWER_FIELDS = frozenset(f.name for f in fields(Answer))


def _sort_key(entry: FeedEntry) -> tuple:
    return (entry.is_latest, entry.answer.created_at, entry.sequence)


def order_entries(entries: Iterable[FeedEntry]) -> list[FeedEntry]:
    """Latest entries first, then newest first; arrival order breaks ties."""
    return sorted(entries, key=_sort_key, reverse=True)


def build_feed(answers: Sequence[Answer], start_sequence: int = 0) -> list[FeedEntry]:
    """Flag the newest answer of every student and order the whole feed.

    ``answers`` are numbered in the given order, so among equal timestamps the
    later one wins the latest flag.
    """
    entries = [
        FeedEntry(answer=answer, is_latest=False, sequence=start_sequence + index)
        for index, answer in enumerate(answers)
        if answer.text is not None
    ]
    newest: dict[str, FeedEntry] = {}
    for entry in entries:
        current = newest.get(entry.answer.student_id)
        if current is None or (entry.answer.created_at, entry.sequence) > (
            current.answer.created_at,
            current.sequence,
        ):
            newest[entry.answer.student_id] = entry
    latest_ids = {id(entry) for entry in newest.values()}
    return order_entries(replace(e, is_latest=id(e) in latest_ids) for e in entries)


def apply_new_answer(entries: Sequence[FeedEntry], answer: Answer, sequence: int) -> list[FeedEntry]:
    """Add ``answer`` as its student's latest and demote their older answers."""
    updated = [
        replace(entry, is_latest=False)
        if entry.is_latest and entry.answer.student_id == answer.student_id
        else entry
        for entry in entries
    ]
    updated.append(FeedEntry(answer=answer, is_latest=True, sequence=sequence))
    return order_entries(updated)


def apply_update(
    entries: Sequence[FeedEntry],
    answer_id: str,
    changes: Mapping[str, Any],
) -> list[FeedEntry]:
    """Merge ``changes`` into the entry with ``answer_id``; unknown ids are dropped."""
    merge = {k: v for k, v in changes.items() if k in _ANSWER_FIELDS}
    updated: list[FeedEntry] = []
    found = False
    for entry in entries:
        if entry.answer.id == answer_id and not found:
            found = True
            entry = replace(entry, answer=replace(entry.answer, **merge))
        updated.append(entry)
    if not found:
        logger.debug("Update for unknown answer %s dropped", answer_id)
        return list(entries)
    return order_entries(updated)


@dataclass(frozen=True, slots=True)
class PendingToggle:
    """First phase of a hide/show toggle awaiting the store's verdict."""

    answer_id: str
    previous_hidden: bool
    tentative_hidden: bool


def begin_hidden_toggle(
    entries: Sequence[FeedEntry],
    answer_id: str,
    current_hidden: bool,
) -> tuple[list[FeedEntry], PendingToggle]:
    pending = PendingToggle(answer_id, current_hidden, not current_hidden)
    return apply_update(entries, answer_id, {"is_hidden": pending.tentative_hidden}), pending


def commit_or_revert(
    entries: Sequence[FeedEntry],
    pending: PendingToggle,
    succeeded: bool,
) -> list[FeedEntry]:
    if succeeded:
        return list(entries)
    return apply_update(entries, pending.answer_id, {"is_hidden": pending.previous_hidden})


class EssayFeedEngine(LiveAggregate[FeedSnapshot]):
    """Keeps the essay feed of one question consistent with live events."""

    def latest_only(self) -> list[FeedEntry]:
        return self._snapshot.latest_only() if self._snapshot else []

    def all_answers(self) -> list[FeedEntry]:
        return self._snapshot.all_answers() if self._snapshot else []

    def apply_new_answer(self, answer: Answer) -> FeedSnapshot | None:
        if self._snapshot is None:
            logger.debug("Feed not loaded; answer %s dropped", answer.id)
            return None
        if answer.text is None:
            logger.debug("Ignoring answer %s without text", answer.id)
            return self._snapshot
        entries = apply_new_answer(self._snapshot.entries, answer, self._take_sequence())
        self._commit(FeedSnapshot(question_id=self._snapshot.question_id, entries=entries))
        return self._snapshot

    def apply_update(self, answer_id: str, changes: Mapping[str, Any]) -> FeedSnapshot | None:
        if self._snapshot is None:
            return None
        entries = apply_update(self._snapshot.entries, answer_id, changes)
        self._commit(FeedSnapshot(question_id=self._snapshot.question_id, entries=entries))
        return self._snapshot

    async def toggle_hidden(self, answer_id: str, current_hidden: bool) -> bool:
        """Flip ``is_hidden`` locally, persist it, and roll back on failure.

        Returns the persisted flag. Raises :class:`PersistError` after the
        rollback when the store rejects the update.
        """
        generation = self._generation
        if self._snapshot is not None:
            entries, pending = begin_hidden_toggle(self._snapshot.entries, answer_id, current_hidden)
            self._commit(FeedSnapshot(question_id=self._snapshot.question_id, entries=entries))
        else:
            pending = PendingToggle(answer_id, current_hidden, not current_hidden)

        try:
            await self._store.update(ANSWERS_TABLE, answer_id, {"is_hidden": pending.tentative_hidden})
        except StoreError as exc:
            logger.error("Could not persist hidden flag of answer %s: %s", answer_id, exc)
            self._settle_toggle(pending, generation, succeeded=False)
            raise PersistError(f"Could not update answer {answer_id}: {exc}") from exc

        self._settle_toggle(pending, generation, succeeded=True)
        return pending.tentative_hidden

    def _settle_toggle(self, pending: PendingToggle, generation: int, *, succeeded: bool) -> None:
        # A stopped or restarted view must not receive the old feed.
        if generation != self._generation or not self.is_running or self._snapshot is None:
            logger.debug("View changed while persisting answer %s; result not applied", pending.answer_id)
            return
        entries = commit_or_revert(self._snapshot.entries, pending, succeeded=succeeded)
        self._commit(FeedSnapshot(question_id=self._snapshot.question_id, entries=entries))

    def on_new_answer(self, answer: Answer) -> None:
        self.apply_new_answer(answer)

    def on_answer_update(self, answer_id: str, changes: Mapping[str, Any]) -> None:
        self.apply_update(answer_id, changes)

    async def _fetch(self, question_id: str) -> tuple[FeedSnapshot, list[Answer]]:
        try:
            rows = await self._store.select(
                ANSWERS_TABLE,
                {"question_id": question_id},
                order_by="created_at",
                not_null=("text",),
            )
        except StoreError as exc:
            raise LoadError(f"Could not load answers for question {question_id}: {exc}") from exc

        answers = []
        for row in rows:
            try:
                answers.append(normalize_answer(DurableRecord(row)))
            except MalformedEvent as exc:
                logger.warning("Skipping malformed answer row %s: %s", row.get("id"), exc)
        return FeedSnapshot(question_id=question_id, entries=build_feed(answers)), answers

    def _take_sequence(self) -> int:
        entries = self._snapshot.entries if self._snapshot else ()
        return max((entry.sequence for entry in entries), default=-1) + 1
