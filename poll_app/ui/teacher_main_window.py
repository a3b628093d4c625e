"""Qt main window for running a polling session."""

from __future__ import annotations

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import (
    QHBoxLayout,
    QMainWindow,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from poll_app.constants.about import (
    APP_ABOUT_TEXT,
    APP_LICENSE,
    APP_NAME,
    APP_VERSION,
    HELP_TEXT,
)
from poll_app.constants.ui_constants import (
    BUTTON_ABOUT,
    BUTTON_END_SESSION,
    BUTTON_HELP,
    BUTTON_NEW_SESSION,
    BUTTON_SESSIONS,
    BUTTON_SETTINGS,
    NO_SESSION_MESSAGE,
    RESULTS_REFRESH_INTERVAL_MS,
    STUDENT_URL_PLACEHOLDER,
    WINDOW_TITLE,
)
from poll_app.core.errors import PollError
from poll_app.core.models import Question
from poll_app.core.poll_manager import PollManager
from poll_app.ui.components.question_dialog import QuestionDialog
from poll_app.ui.components.results_panel import ResultsPanel
from poll_app.ui.components.session_list_dialog import SessionListDialog
from poll_app.ui.components.session_panel import SessionPanel
from poll_app.ui.dialog_helpers import confirm_end_session, show_error, show_info, show_warning
from poll_app.ui.settings_dialog import SettingsDialog
from poll_app.styling.styles import Styles


class TeacherMainWindow(QMainWindow):
    """Main Qt window combining the session panel and the live results."""

    def __init__(self, poll_manager: PollManager, student_url: str | None = None) -> None:
        super().__init__()
        self.setWindowTitle(WINDOW_TITLE)

        self.poll_manager = poll_manager
        self.student_url = student_url or STUDENT_URL_PLACEHOLDER

        self._ui_font_size: int = 10
        self._results_font_size: int = 14
        self._latest_only: bool = True
        self._deduplicate: bool = False

        self._build_ui()
        self._configure_refresh_timer()
        self._apply_styles()

    def _build_ui(self) -> None:
        central_widget = QWidget(self)
        self.setCentralWidget(central_widget)

        root_layout = QVBoxLayout()
        central_widget.setLayout(root_layout)

        self._build_top_buttons(root_layout)

        content_row = QHBoxLayout()
        self.session_panel = SessionPanel(
            self.student_url,
            on_new_question=self._handle_new_question,
            on_activate=self._handle_activate_question,
            on_deactivate=self._handle_deactivate_question,
            parent=self,
        )
        content_row.addWidget(self.session_panel, stretch=1)

        self.results_panel = ResultsPanel(self.poll_manager, parent=self)
        content_row.addWidget(self.results_panel, stretch=2)
        root_layout.addLayout(content_row, stretch=1)

    def _build_top_buttons(self, layout: QVBoxLayout) -> None:
        button_row = QHBoxLayout()

        self.session_button = QPushButton(BUTTON_NEW_SESSION, self)
        self.session_button.clicked.connect(self._handle_session_button)
        button_row.addWidget(self.session_button)

        self.sessions_button = QPushButton(BUTTON_SESSIONS, self)
        self.sessions_button.clicked.connect(self._handle_sessions)
        button_row.addWidget(self.sessions_button)

        button_row.addStretch()

        self.about_button = QPushButton(BUTTON_ABOUT, self)
        self.about_button.clicked.connect(self._handle_about)
        button_row.addWidget(self.about_button)

        self.help_button = QPushButton(BUTTON_HELP, self)
        self.help_button.clicked.connect(self._handle_help)
        button_row.addWidget(self.help_button)

        self.settings_button = QPushButton(BUTTON_SETTINGS, self)
        self.settings_button.clicked.connect(self._handle_settings)
        button_row.addWidget(self.settings_button)

        layout.addLayout(button_row)

    def _configure_refresh_timer(self) -> None:
        self.refresh_timer = QTimer(self)
        self.refresh_timer.setInterval(RESULTS_REFRESH_INTERVAL_MS)
        self.refresh_timer.timeout.connect(self._refresh_state)
        self.refresh_timer.start()

    def _refresh_state(self) -> None:
        self.results_panel.update_view()

    def _handle_session_button(self) -> None:
        session = self.poll_manager.get_current_session()
        if session is None:
            self._start_session()
        elif confirm_end_session(self, session.code):
            self._end_session()

    def _start_session(self) -> None:
        try:
            session = self.poll_manager.start_session()
        except PollError as exc:
            show_error(self, "Session not started", str(exc))
            return
        self.session_panel.set_session(session)
        self.session_button.setText(BUTTON_END_SESSION)

    def _end_session(self) -> None:
        try:
            self.poll_manager.end_session()
        except PollError as exc:
            show_error(self, "Session not ended", str(exc))
            return
        self.session_panel.set_session(None)
        self.session_button.setText(BUTTON_NEW_SESSION)

    def _handle_sessions(self) -> None:
        dialog = SessionListDialog(self.poll_manager, self)
        accepted = dialog.exec()
        selected = dialog.selected_session()
        if accepted and selected is not None:
            try:
                self.poll_manager.resume_session(selected.id)
            except PollError as exc:
                show_error(self, "Session not opened", str(exc))
        self._sync_session_controls()

    def _sync_session_controls(self) -> None:
        session = self.poll_manager.get_current_session()
        self.session_panel.set_session(session)
        self.session_button.setText(BUTTON_NEW_SESSION if session is None else BUTTON_END_SESSION)
        if session is not None:
            self._reload_questions()

    def _handle_new_question(self) -> None:
        if not self.poll_manager.has_session():
            show_warning(self, "No session", NO_SESSION_MESSAGE)
            return
        dialog = QuestionDialog(self)
        if not dialog.exec():
            return
        try:
            self.poll_manager.create_question(
                dialog.get_question_type(),
                dialog.get_question_text(),
                dialog.get_options(),
                dialog.get_allow_multiple(),
            )
        except PollError as exc:
            show_error(self, "Question rejected", str(exc))
            return
        self._reload_questions()

    def _handle_activate_question(self, question: Question) -> None:
        try:
            self.poll_manager.activate_question(question.id)
        except PollError as exc:
            show_error(self, "Activation failed", str(exc))
            return
        self._reload_questions()

    def _handle_deactivate_question(self, question: Question) -> None:
        try:
            self.poll_manager.deactivate_question(question.id)
        except PollError as exc:
            show_error(self, "Deactivation failed", str(exc))
            return
        self._reload_questions()

    def _reload_questions(self) -> None:
        self.session_panel.set_questions(self.poll_manager.list_questions())

    def _handle_about(self) -> None:
        details = (
            f"{APP_NAME} v{APP_VERSION}\n"
            f"License: {APP_LICENSE}\n\n"
            f"{APP_ABOUT_TEXT}"
        )
        show_info(self, f"About {APP_NAME}", details)

    def _handle_help(self) -> None:
        show_info(self, f"{APP_NAME} Help", HELP_TEXT)

    def _handle_settings(self) -> None:
        dialog = SettingsDialog(
            self,
            self._ui_font_size,
            self._results_font_size,
            self._latest_only,
            self._deduplicate,
        )
        if dialog.exec():
            self._ui_font_size = dialog.get_ui_font_size()
            self._results_font_size = dialog.get_results_font_size()
            self._latest_only = dialog.get_latest_only()
            self._deduplicate = dialog.get_deduplicate()

            self.poll_manager.set_deduplicate(self._deduplicate)
            self._apply_styles()

    def _apply_styles(self) -> None:
        self.setStyleSheet(Styles.get_main_window_style())

        ui_style = f"font-size: {self._ui_font_size}pt;"
        for button in (
            self.session_button,
            self.sessions_button,
            self.about_button,
            self.help_button,
            self.settings_button,
        ):
            button.setStyleSheet(ui_style)

        self.session_panel.apply_font_size(self._ui_font_size)
        self.results_panel.apply_font_size(self._results_font_size)
        self.results_panel.set_latest_only(self._latest_only)

    def closeEvent(self, event) -> None:  # noqa: N802 - Qt override
        self.refresh_timer.stop()
        self.poll_manager.close()
        super().closeEvent(event)
