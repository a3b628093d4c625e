"""Static metadata describing PollQt."""

APP_NAME = "PollQt"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "PollQt is a live classroom polling console built with Qt and FastAPI. "
    "Create a session, post multiple-choice or essay questions and watch "
    "student answers arrive in real time."
)

HELP_TEXT = (
    "1. Press 'New Session' to get a six-digit join code.\n"
    "2. Add questions with 'New Question'. Multiple-choice questions need two to six options.\n"
    "3. Select a question and press 'Activate' - students see it immediately.\n"
    "4. Multiple-choice results show live counts and percentages. Essay results show the "
    "latest answer of every student first; older answers are dimmed.\n"
    "5. Select an essay answer and press 'Hide / Show' to dim it for moderation."
)
