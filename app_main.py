"""Application entry point for the PollQt teacher console."""

from __future__ import annotations

import socket
import sys

from PySide6.QtWidgets import QApplication

from poll_app.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from poll_app.constants.poll_constants import CHANGE_NOTIFICATION_DELAY_SECONDS
from poll_app.constants.ui_constants import DEFAULT_TEACHER_ID
from poll_app.core.event_loop import BackgroundLoop
from poll_app.core.poll_manager import PollManager
from poll_app.core.services.memory_backend import InMemoryBackend
from poll_app.core.services.session_service import SessionService
from poll_app.core.services.submission_service import SubmissionService
from poll_app.server.api_server import start_api_server
from poll_app.ui.teacher_main_window import TeacherMainWindow
from poll_app.utils.logging_config import configure_logging


def _determine_student_url(port: int) -> str:
    """Best-effort determination of the local IP for student-facing URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def main() -> None:
    """Initialize logging, start the API server, and launch the Qt UI."""
    logger = configure_logging()
    logger.info("Starting PollQt...")

    backend = InMemoryBackend(notification_delay=CHANGE_NOTIFICATION_DELAY_SECONDS)
    loop = BackgroundLoop()
    loop.start()
    poll_manager = PollManager(backend, backend, backend.broadcasts, loop, DEFAULT_TEACHER_ID)

    start_api_server(
        SessionService(backend),
        SubmissionService(backend, backend.broadcasts),
        host=DEFAULT_HOST,
        port=DEFAULT_PORT,
    )
    student_url = _determine_student_url(DEFAULT_PORT)
    logger.info("Student page available at %s", student_url)

    app = QApplication(sys.argv)
    window = TeacherMainWindow(poll_manager=poll_manager, student_url=student_url)
    window.show()
    exit_code = app.exec()
    poll_manager.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
