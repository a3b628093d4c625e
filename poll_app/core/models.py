"""Domain models for the polling application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class QuestionType(str, Enum):
    """Kind of prompt posted by the teacher."""

    MCQ = "mcq"
    ESSAY = "essay"


@dataclass(slots=True)
class PollSession:
    """Teacher-owned live polling event identified by a six-digit code."""

    id: str
    code: str
    is_active: bool
    teacher_id: str | None
    created_at: datetime


@dataclass(slots=True)
class QuestionOption:
    """Selectable option of a multiple-choice question."""

    id: str
    question_id: str
    text: str
    position: int


@dataclass(slots=True)
class Question:
    """One MCQ or essay prompt belonging to a session."""

    id: str
    session_id: str
    type: QuestionType
    text: str
    is_active: bool
    allow_multiple: bool
    created_at: datetime
    options: list[QuestionOption] = field(default_factory=list)

    @property
    def is_mcq(self) -> bool:
        return self.type is QuestionType.MCQ


@dataclass(slots=True)
class Answer:
    """Canonical shape of one student submission, whatever its origin."""

    id: str
    question_id: str
    student_id: str
    created_at: datetime
    option_id: str | None = None
    text: str | None = None
    is_hidden: bool = False
    selected_option_ids: tuple[str, ...] = ()
    is_provisional: bool = False

    @property
    def option_ids(self) -> tuple[str, ...]:
        """All options this submission selected (one per durable row)."""
        if self.selected_option_ids:
            return self.selected_option_ids
        if self.option_id is not None:
            return (self.option_id,)
        return ()


@dataclass(slots=True)
class OptionTally:
    """Count and percentage of answers referencing one option."""

    option_id: str
    text: str
    count: int = 0
    percentage: int = 0


@dataclass(slots=True)
class TallySnapshot:
    """Aggregate of a multiple-choice question at one point in time."""

    question_id: str
    total_answers: int
    options: list[OptionTally]

    def count_for(self, option_id: str) -> int:
        return next((o.count for o in self.options if o.option_id == option_id), 0)

    def percentage_for(self, option_id: str) -> int:
        return next((o.percentage for o in self.options if o.option_id == option_id), 0)


@dataclass(slots=True)
class FeedEntry:
    """Essay answer together with its derived latest-per-student flag."""

    answer: Answer
    is_latest: bool
    sequence: int


@dataclass(slots=True)
class FeedSnapshot:
    """Ordered essay feed of a question at one point in time."""

    question_id: str
    entries: list[FeedEntry]

    @property
    def total_answers(self) -> int:
        return len(self.entries)

    def latest_only(self) -> list[FeedEntry]:
        return [entry for entry in self.entries if entry.is_latest]

    def all_answers(self) -> list[FeedEntry]:
        return list(self.entries)


class ResultsStatus(Enum):
    """Lifecycle state of the teacher's results view."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(slots=True)
class ResultsView:
    """Snapshot handed to the rendering layer."""

    status: ResultsStatus
    question: Question | None = None
    tally: TallySnapshot | None = None
    feed: FeedSnapshot | None = None
    error: str | None = None
    notice: str | None = None
