"""Normalization of answer records arriving from different origins.

A submission reaches the teacher's view in one of two shapes:

    DurableRecord    a row of the ``answers`` table, either returned by a full
                     load or carried by a durable change notification.
    BroadcastRecord  the payload of an ephemeral ``new-answer`` broadcast sent
                     by the student right after the insert. It has no store id
                     and its timestamp is the sender's clock.

Both are converted to the canonical :class:`Answer` before any engine sees
them, so the engines never inspect raw payloads.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from poll_app.constants.poll_constants import PROVISIONAL_ID_PREFIX
from poll_app.core.errors import MalformedEvent
from poll_app.core.models import Answer

_MUTABLE_FIELDS = ("is_hidden", "text", "option_id", "created_at")


@dataclass(frozen=True, slots=True)
class DurableRecord:
    """Persisted answer row (full load or change notification)."""

    row: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class BroadcastRecord:
    """Ephemeral broadcast payload as received from the channel."""

    payload: Mapping[str, Any]
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


AnswerSource = DurableRecord | BroadcastRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        raw = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise MalformedEvent(f"Invalid timestamp: {value!r}") from exc
    else:
        raise MalformedEvent(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def normalize_answer(source: AnswerSource) -> Answer:
    """Convert a durable row or a broadcast payload into an :class:`Answer`."""
    if isinstance(source, DurableRecord):
        return _from_durable(source.row)
    if isinstance(source, BroadcastRecord):
        return _from_broadcast(source.payload, source.received_at)
    raise MalformedEvent(f"Unsupported answer source: {type(source).__name__}")


def answer_changes_from_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Extract the mutable answer fields carried by a durable update row."""
    changes: dict[str, Any] = {}
    for name in _MUTABLE_FIELDS:
        if name not in row:
            continue
        value = row[name]
        if name == "created_at":
            value = parse_timestamp(value)
        elif name == "is_hidden":
            value = bool(value)
        changes[name] = value
    return changes


def _from_durable(row: Mapping[str, Any]) -> Answer:
    answer_id = _required_str(row, "id")
    question_id = _required_str(row, "question_id")
    student_id = _required_str(row, "student_id")
    option_id = _optional_str(row, "option_id")
    text = _optional_str(row, "text")
    _check_exclusive_kind(option_id is not None, text is not None)
    return Answer(
        id=answer_id,
        question_id=question_id,
        student_id=student_id,
        created_at=parse_timestamp(row.get("created_at")),
        option_id=option_id,
        text=text,
        is_hidden=bool(row.get("is_hidden", False)),
    )


def _from_broadcast(payload: Mapping[str, Any], received_at: datetime) -> Answer:
    question_id = _required_str(payload, "question_id")
    student_id = _required_str(payload, "student_id")
    text = _optional_str(payload, "text")

    raw_options = payload.get("options") or ()
    if not isinstance(raw_options, (list, tuple)) or not all(isinstance(o, str) for o in raw_options):
        raise MalformedEvent("Broadcast 'options' must be a list of option ids.")
    selected = tuple(dict.fromkeys(raw_options))
    option_id = _optional_str(payload, "option_id") or (selected[0] if selected else None)
    if option_id is not None and not selected:
        selected = (option_id,)
    _check_exclusive_kind(option_id is not None, text is not None)

    created_raw = payload.get("created_at")
    try:
        created_at = parse_timestamp(created_raw) if created_raw else received_at
    except MalformedEvent:
        created_at = received_at

    return Answer(
        id=f"{PROVISIONAL_ID_PREFIX}{uuid4().hex}",
        question_id=question_id,
        student_id=student_id,
        created_at=parse_timestamp(created_at),
        option_id=option_id,
        text=text,
        selected_option_ids=selected,
        is_provisional=True,
    )


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedEvent(f"Missing required field '{key}'.")
    return value


def _optional_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise MalformedEvent(f"Field '{key}' must be a string, got {type(value).__name__}.")
    return value


def _check_exclusive_kind(has_option: bool, has_text: bool) -> None:
    if has_option == has_text:
        raise MalformedEvent("An answer must carry exactly one of option_id or text.")
