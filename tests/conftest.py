"""Shared fixtures for the polling test-suite."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import pytest

from poll_app.core.errors import StoreError
from poll_app.core.models import QuestionType
from poll_app.core.services.memory_backend import InMemoryBackend
from poll_app.core.services.session_service import SessionService
from poll_app.core.services.submission_service import SubmissionService


async def _drain(rounds: int = 20) -> None:
    """Let queued subscription callbacks run on the current loop."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class GatedStore:
    """Store wrapper whose selects block until ``gate`` is set."""

    def __init__(self, backend: InMemoryBackend) -> None:
        self._backend = backend
        self.gate = asyncio.Event()

    async def select(self, *args: Any, **kwargs: Any) -> list[dict[str, Any]]:
        await self.gate.wait()
        return await self._backend.select(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._backend, name)


class FlakyStore:
    """Store wrapper that can be told to reject selects or updates."""

    def __init__(self, backend: InMemoryBackend) -> None:
        self._backend = backend
        self.fail_select = False
        self.fail_update = False

    async def select(self, *args: Any, **kwargs: Any) -> list[dict[str, Any]]:
        if self.fail_select:
            raise StoreError("store unavailable")
        return await self._backend.select(*args, **kwargs)

    async def update(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        if self.fail_update:
            raise StoreError("permission denied")
        return await self._backend.update(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._backend, name)


@pytest.fixture
def drain():
    return _drain


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def sessions(backend: InMemoryBackend) -> SessionService:
    return SessionService(backend, rng=random.Random(7))


@pytest.fixture
def submissions(backend: InMemoryBackend) -> SubmissionService:
    return SubmissionService(backend, backend.broadcasts)


@pytest.fixture
def gated_store(backend: InMemoryBackend) -> GatedStore:
    return GatedStore(backend)


@pytest.fixture
def flaky_store(backend: InMemoryBackend) -> FlakyStore:
    return FlakyStore(backend)


@pytest.fixture
def make_question(sessions: SessionService):
    """Create and activate a question in a fresh session."""

    async def factory(
        question_type: QuestionType = QuestionType.MCQ,
        options: tuple[str, ...] = ("Red", "Green", "Blue"),
        allow_multiple: bool = False,
    ):
        session = await sessions.create_session("teacher-1")
        question = await sessions.create_question(
            session.id, question_type, "Favourite colour?", options, allow_multiple
        )
        return await sessions.activate_question(question.id)

    return factory
