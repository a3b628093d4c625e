"""Exception hierarchy shared by the polling services."""

from __future__ import annotations


class PollError(Exception):
    """Base class for all polling errors."""


class StoreError(PollError):
    """Raised by a backend when a select, insert or update fails."""


class LoadError(PollError):
    """Raised when the initial fetch of a results view fails."""


class PersistError(PollError):
    """Raised when an insert or update could not be persisted."""


class MalformedEvent(PollError):
    """Raised when an event payload lacks required fields."""


class InvalidSessionCodeError(PollError, ValueError):
    """Raised when a join code is not six digits."""


class SessionNotFoundError(PollError):
    """Raised when no active session matches a join code."""


class QuestionNotFoundError(PollError):
    """Raised when a question id is unknown to the store."""


class QuestionClosedError(PollError):
    """Raised when a student answers a question that is not active."""


class InvalidSubmissionError(PollError, ValueError):
    """Raised when a submission or a question definition is rejected."""
