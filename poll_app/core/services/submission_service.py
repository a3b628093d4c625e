"""Student submissions: durable insert followed by a low-latency broadcast."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any

from poll_app.constants.poll_constants import ANSWERS_TABLE, BROADCAST_NEW_ANSWER_EVENT
from poll_app.core.answer_records import DurableRecord, normalize_answer
from poll_app.core.backend import BroadcastHub, PollStore
from poll_app.core.errors import (
    InvalidSubmissionError,
    PersistError,
    QuestionClosedError,
    StoreError,
)
from poll_app.core.models import Answer, Question, QuestionType
from poll_app.core.services.event_reconciler import broadcast_channel_for

logger = logging.getLogger(__name__)


class SubmissionService:
    """Records answers for the active question of a session."""

    def __init__(self, store: PollStore, broadcasts: BroadcastHub) -> None:
        self._store = store
        self._broadcasts = broadcasts

    async def submit_mcq(
        self,
        question: Question,
        student_id: str,
        option_ids: Sequence[str],
    ) -> list[Answer]:
        """Insert one row per selected option, then announce the submission."""
        self._require_open(question, QuestionType.MCQ)
        selected = list(dict.fromkeys(option_ids))
        if not selected:
            raise InvalidSubmissionError("Select at least one option.")
        if not question.allow_multiple and len(selected) != 1:
            raise InvalidSubmissionError("This question accepts exactly one option.")
        valid_ids = {option.id for option in question.options}
        unknown = [option_id for option_id in selected if option_id not in valid_ids]
        if unknown:
            raise InvalidSubmissionError(f"Unknown option(s): {', '.join(unknown)}")

        rows = await self._insert(
            [
                {"question_id": question.id, "student_id": student_id, "option_id": option_id}
                for option_id in selected
            ]
        )
        await self._announce(
            question.id,
            {
                "question_id": question.id,
                "student_id": student_id,
                "option_id": selected[0],
                "options": selected,
                "created_at": rows[0]["created_at"],
            },
        )
        return [normalize_answer(DurableRecord(row)) for row in rows]

    async def submit_essay(self, question: Question, student_id: str, text: str) -> Answer:
        self._require_open(question, QuestionType.ESSAY)
        cleaned = (text or "").strip()
        if not cleaned:
            raise InvalidSubmissionError("Answer text must not be empty.")

        rows = await self._insert([{"question_id": question.id, "student_id": student_id, "text": cleaned}])
        await self._announce(
            question.id,
            {
                "question_id": question.id,
                "student_id": student_id,
                "text": cleaned,
                "created_at": rows[0]["created_at"],
            },
        )
        return normalize_answer(DurableRecord(rows[0]))

    @staticmethod
    def _require_open(question: Question, expected: QuestionType) -> None:
        if not question.is_active:
            raise QuestionClosedError("This question is not accepting answers.")
        if question.type is not expected:
            raise InvalidSubmissionError(f"Question expects a {question.type.value} answer.")

    async def _insert(self, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        try:
            return await self._store.insert_many(ANSWERS_TABLE, rows)
        except StoreError as exc:
            logger.error("Submission rejected by store: %s", exc)
            raise PersistError("Your answer could not be saved. Please try again.") from exc

    async def _announce(self, question_id: str, payload: dict[str, Any]) -> None:
        try:
            await self._broadcasts.send(
                broadcast_channel_for(question_id), BROADCAST_NEW_ANSWER_EVENT, payload
            )
        except Exception:
            logger.warning("Broadcast for question %s failed; durable feed will catch up", question_id, exc_info=True)
