"""Service for managing sessions, questions and their options."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import random
from typing import Any

from poll_app.constants.poll_constants import (
    MAX_MCQ_OPTIONS,
    MIN_MCQ_OPTIONS,
    SESSION_CODE_LENGTH,
    SESSION_CODE_MAX_ATTEMPTS,
)
from poll_app.core.answer_records import parse_timestamp
from poll_app.core.backend import PollStore
from poll_app.core.errors import (
    InvalidSessionCodeError,
    InvalidSubmissionError,
    PersistError,
    QuestionNotFoundError,
    SessionNotFoundError,
    StoreError,
)
from poll_app.core.models import PollSession, Question, QuestionOption, QuestionType

logger = logging.getLogger(__name__)


def session_from_row(row: Mapping[str, Any]) -> PollSession:
    return PollSession(
        id=row["id"],
        code=row["code"],
        is_active=bool(row["is_active"]),
        teacher_id=row.get("teacher_id"),
        created_at=parse_timestamp(row["created_at"]),
    )


def question_from_row(row: Mapping[str, Any], options: Sequence[QuestionOption] = ()) -> Question:
    return Question(
        id=row["id"],
        session_id=row["session_id"],
        type=QuestionType(row["type"]),
        text=row["text"],
        is_active=bool(row["is_active"]),
        allow_multiple=bool(row.get("allow_multiple", False)),
        created_at=parse_timestamp(row["created_at"]),
        options=list(options),
    )


def option_from_row(row: Mapping[str, Any]) -> QuestionOption:
    return QuestionOption(
        id=row["id"],
        question_id=row["question_id"],
        text=row["text"],
        position=int(row["position"]),
    )


def generate_session_code(rng: random.Random | None = None) -> str:
    """Random six-digit code without a leading zero."""
    rng = rng or random.SystemRandom()
    low = 10 ** (SESSION_CODE_LENGTH - 1)
    return str(rng.randint(low, 10 * low - 1))


def validate_session_code(code: str) -> str:
    cleaned = (code or "").strip()
    if len(cleaned) != SESSION_CODE_LENGTH or not cleaned.isdigit():
        raise InvalidSessionCodeError(f"Please enter a valid {SESSION_CODE_LENGTH}-digit code.")
    return cleaned


class SessionService:
    """Teacher and student operations over sessions and questions."""

    def __init__(self, store: PollStore, rng: random.Random | None = None) -> None:
        self._store = store
        self._rng = rng or random.SystemRandom()

    # --- Sessions ---

    async def create_session(self, teacher_id: str | None) -> PollSession:
        for _ in range(SESSION_CODE_MAX_ATTEMPTS):
            code = generate_session_code(self._rng)
            if await self._store.select("sessions", {"code": code}):
                continue
            try:
                row = await self._store.insert(
                    "sessions", {"code": code, "is_active": True, "teacher_id": teacher_id}
                )
            except StoreError as exc:
                logger.warning("Session code %s rejected by store: %s", code, exc)
                continue
            logger.info("Created session %s with code %s", row["id"], code)
            return session_from_row(row)
        raise PersistError("Could not allocate a unique session code.")

    async def end_session(self, session_id: str) -> PollSession:
        for question in await self.list_questions(session_id):
            if question.is_active:
                await self.deactivate_question(question.id)
        row = await self._update("sessions", session_id, {"is_active": False})
        return session_from_row(row)

    async def reopen_session(self, session_id: str) -> PollSession:
        """Accept joins again; questions stay closed until activated."""
        await self.get_session(session_id)
        row = await self._update("sessions", session_id, {"is_active": True})
        logger.info("Reopened session %s", session_id)
        return session_from_row(row)

    async def get_session(self, session_id: str) -> PollSession:
        rows = await self._store.select("sessions", {"id": session_id})
        if not rows:
            raise SessionNotFoundError(f"Unknown session {session_id}.")
        return session_from_row(rows[0])

    async def list_sessions(self, teacher_id: str | None) -> list[PollSession]:
        rows = await self._store.select(
            "sessions", {"teacher_id": teacher_id}, order_by="created_at", descending=True
        )
        return [session_from_row(row) for row in rows]

    async def join_session(self, code: str) -> PollSession:
        cleaned = validate_session_code(code)
        rows = await self._store.select("sessions", {"code": cleaned, "is_active": True})
        if not rows:
            raise SessionNotFoundError("Invalid or inactive session code.")
        return session_from_row(rows[0])

    # --- Questions ---

    async def create_question(
        self,
        session_id: str,
        question_type: QuestionType,
        text: str,
        options: Sequence[str] = (),
        allow_multiple: bool = False,
    ) -> Question:
        cleaned_text = text.strip()
        if not cleaned_text:
            raise InvalidSubmissionError("Question text must not be empty.")
        cleaned_options = [option.strip() for option in options]
        if question_type is QuestionType.MCQ:
            if not MIN_MCQ_OPTIONS <= len(cleaned_options) <= MAX_MCQ_OPTIONS:
                raise InvalidSubmissionError(
                    f"A multiple-choice question needs {MIN_MCQ_OPTIONS} to {MAX_MCQ_OPTIONS} options."
                )
            if any(not option for option in cleaned_options):
                raise InvalidSubmissionError("Option text cannot be empty.")
        else:
            cleaned_options = []
            allow_multiple = False

        try:
            row = await self._store.insert(
                "questions",
                {
                    "session_id": session_id,
                    "type": question_type.value,
                    "text": cleaned_text,
                    "is_active": False,
                    "allow_multiple": allow_multiple,
                },
            )
            option_rows = []
            if cleaned_options:
                option_rows = await self._store.insert_many(
                    "options",
                    [
                        {"question_id": row["id"], "text": option, "position": position}
                        for position, option in enumerate(cleaned_options)
                    ],
                )
        except StoreError as exc:
            raise PersistError(f"Could not save question: {exc}") from exc
        return question_from_row(row, [option_from_row(r) for r in option_rows])

    async def list_questions(self, session_id: str) -> list[Question]:
        rows = await self._store.select("questions", {"session_id": session_id}, order_by="created_at")
        return [question_from_row(row) for row in rows]

    async def get_question(self, question_id: str) -> Question:
        rows = await self._store.select("questions", {"id": question_id})
        if not rows:
            raise QuestionNotFoundError(f"Question {question_id} does not exist.")
        return await self._with_options(rows[0])

    async def get_active_question(self, session_id: str) -> Question | None:
        rows = await self._store.select("questions", {"session_id": session_id, "is_active": True})
        if not rows:
            return None
        return await self._with_options(rows[0])

    async def activate_question(self, question_id: str) -> Question:
        """Make ``question_id`` the only active question of its session."""
        question = await self.get_question(question_id)
        for other in await self.list_questions(question.session_id):
            if other.is_active and other.id != question_id:
                await self._update("questions", other.id, {"is_active": False})
        row = await self._update("questions", question_id, {"is_active": True})
        return question_from_row(row, question.options)

    async def deactivate_question(self, question_id: str) -> Question:
        row = await self._update("questions", question_id, {"is_active": False})
        return question_from_row(row)

    async def _with_options(self, row: Mapping[str, Any]) -> Question:
        options: list[QuestionOption] = []
        if row["type"] == QuestionType.MCQ.value:
            option_rows = await self._store.select(
                "options", {"question_id": row["id"]}, order_by="position"
            )
            options = [option_from_row(r) for r in option_rows]
        return question_from_row(row, options)

    async def _update(self, table: str, row_id: str, patch: Mapping[str, Any]) -> dict[str, Any]:
        try:
            return await self._store.update(table, row_id, patch)
        except StoreError as exc:
            raise PersistError(f"Could not update {table} {row_id}: {exc}") from exc
