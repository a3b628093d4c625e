"""Qt UI constants used across widgets."""

WINDOW_TITLE: str = "PollQt Teacher Console"
STUDENT_URL_PLACEHOLDER: str = "http://<teacher-ip>:8000/"
RESULTS_REFRESH_INTERVAL_MS: int = 500
DEFAULT_TEACHER_ID: str = "local-teacher"

BUTTON_NEW_SESSION: str = "New Session"
BUTTON_END_SESSION: str = "End Session"
BUTTON_NEW_QUESTION: str = "New Question"
BUTTON_ACTIVATE: str = "Activate"
BUTTON_DEACTIVATE: str = "Deactivate"
BUTTON_TOGGLE_HIDDEN: str = "Hide / Show"
BUTTON_RETRY: str = "Retry"

FILTER_LATEST_ONLY: str = "Latest answers only"
FILTER_ALL: str = "All answers"

PLACEHOLDER_QUESTION: str = "Enter the question text (supports Markdown)."
NO_SESSION_MESSAGE: str = "Start a session first."
NO_ACTIVE_QUESTION_MESSAGE: str = "Activate a question to see live results."
WAITING_FOR_ANSWERS_MESSAGE: str = "Waiting for student answers..."
LOADING_RESULTS_MESSAGE: str = "Loading answers..."
TOTAL_ANSWERS_TEMPLATE: str = "Total answers: {count}"
SESSION_CODE_TEMPLATE: str = "Session code: {code}"
BUTTON_ABOUT: str = "About PollQt"
BUTTON_HELP: str = "Help"
BUTTON_SETTINGS: str = "Settings"

STUDENT_URL_TEMPLATE: str = "Students connect to: {url}"
NO_SESSION_CODE_LABEL: str = "No session running"
RESULTS_ERROR_TEMPLATE: str = "Could not load answers: {error}"
HIDDEN_ANSWER_SUFFIX: str = " (hidden)"
NOTICE_DISPLAY_MS: int = 4000

BUTTON_SESSIONS: str = "Sessions"
BUTTON_OPEN_SESSION: str = "Open"
BUTTON_REOPEN_SESSION: str = "Reopen"
BUTTON_CLOSE_SESSION: str = "End"
BUTTON_CLOSE: str = "Close"
SESSION_LIST_ITEM_TEMPLATE: str = "{code}   {created}   {status}"
NO_PAST_SESSIONS_MESSAGE: str = "No sessions yet."
