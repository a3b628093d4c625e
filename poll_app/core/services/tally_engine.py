"""Running per-option tallies for multiple-choice questions."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging
import math
from typing import Any

from poll_app.constants.poll_constants import ANSWERS_TABLE
from poll_app.core.answer_records import DurableRecord, normalize_answer
from poll_app.core.errors import LoadError, MalformedEvent, StoreError
from poll_app.core.models import Answer, OptionTally, QuestionOption, TallySnapshot
from poll_app.core.services.live_aggregate import LiveAggregate
from poll_app.core.services.session_service import option_from_row

logger = logging.getLogger(__name__)


def percentage(count: int, total: int) -> int:
    """Whole percentage rounded half up; 0 when nothing was answered."""
    if total <= 0:
        return 0
    return math.floor(count / total * 100 + 0.5)


def build_tally(
    question_id: str,
    options: Sequence[QuestionOption],
    answers: Iterable[Answer],
) -> TallySnapshot:
    """Count persisted answer rows per option."""
    counts = {option.id: 0 for option in options}
    total = 0
    for answer in answers:
        if answer.option_id is None:
            continue
        total += 1
        if answer.option_id in counts:
            counts[answer.option_id] += 1
    return TallySnapshot(
        question_id=question_id,
        total_answers=total,
        options=[
            OptionTally(
                option_id=option.id,
                text=option.text,
                count=counts[option.id],
                percentage=percentage(counts[option.id], total),
            )
            for option in options
        ],
    )


def apply_increment(tally: TallySnapshot, answer: Answer) -> TallySnapshot:
    """Return a new tally with one more submission counted.

    Each selected option known to the tally gains one; the total gains one
    per submission. Options missing from the tally (the question was edited
    concurrently) are ignored, and a submission with no known option leaves
    the tally unchanged. Duplicate deliveries are counted again.
    """
    selected = set(answer.option_ids)
    known = {o.option_id for o in tally.options}
    if not selected & known:
        logger.debug("Ignoring answer %s for unknown options %s", answer.id, sorted(selected))
        return tally

    total = tally.total_answers + 1
    options = []
    for option in tally.options:
        count = option.count + (1 if option.option_id in selected else 0)
        options.append(
            OptionTally(
                option_id=option.option_id,
                text=option.text,
                count=count,
                percentage=percentage(count, total),
            )
        )
    return TallySnapshot(question_id=tally.question_id, total_answers=total, options=options)


class McqTallyEngine(LiveAggregate[TallySnapshot]):
    """Keeps the option tally of one question consistent with live events."""

    def apply_increment(self, answer: Answer) -> TallySnapshot | None:
        if self._snapshot is None:
            logger.debug("Tally not loaded; increment for %s dropped", answer.id)
            return None
        updated = apply_increment(self._snapshot, answer)
        if updated is not self._snapshot:
            self._commit(updated)
        return self._snapshot

    def on_new_answer(self, answer: Answer) -> None:
        self.apply_increment(answer)

    def on_answer_update(self, answer_id: str, changes: Mapping[str, Any]) -> None:
        # Moderation and id reconciliation do not affect counts.
        logger.debug("Tally ignores update of answer %s", answer_id)

    async def _fetch(self, question_id: str) -> tuple[TallySnapshot, list[Answer]]:
        try:
            option_rows = await self._store.select(
                "options", {"question_id": question_id}, order_by="position"
            )
            answer_rows = await self._store.select(
                ANSWERS_TABLE,
                {"question_id": question_id},
                order_by="created_at",
                not_null=("option_id",),
            )
        except StoreError as exc:
            raise LoadError(f"Could not load answers for question {question_id}: {exc}") from exc

        try:
            options = [option_from_row(row) for row in option_rows]
        except (KeyError, TypeError, ValueError) as exc:
            raise LoadError(f"Invalid option row for question {question_id}: {exc!r}") from exc
        answers = []
        for row in answer_rows:
            try:
                answers.append(normalize_answer(DurableRecord(row)))
            except MalformedEvent as exc:
                logger.warning("Skipping malformed answer row %s: %s", row.get("id"), exc)
        return build_tally(question_id, options, answers), answers
