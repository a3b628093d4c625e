"""Poll-related constants shared across UI, server and core layers."""

SESSION_CODE_LENGTH: int = 6
SESSION_CODE_MAX_ATTEMPTS: int = 20
MIN_MCQ_OPTIONS: int = 2
MAX_MCQ_OPTIONS: int = 6

ANSWERS_TABLE: str = "answers"
BROADCAST_CHANNEL_TEMPLATE: str = "question-{question_id}"
BROADCAST_NEW_ANSWER_EVENT: str = "new-answer"
PROVISIONAL_ID_PREFIX: str = "provisional-"

# Window in which a broadcast answer and a durable row from the same student
# with the same content are treated as one submission by DeduplicatingSink.
DEDUPE_WINDOW_SECONDS: float = 10.0

# Simulated latency of durable change notifications in the in-memory backend.
CHANGE_NOTIFICATION_DELAY_SECONDS: float = 0.0
