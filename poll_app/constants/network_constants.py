"""Network configuration constants for the polling application."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
STUDENT_COOKIE_NAME: str = "pollqt_student_id"
STUDENT_COOKIE_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30
