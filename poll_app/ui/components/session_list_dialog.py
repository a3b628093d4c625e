"""Dialog listing the teacher's sessions, newest first."""

from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QDialog,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from poll_app.constants.ui_constants import (
    BUTTON_CLOSE,
    BUTTON_CLOSE_SESSION,
    BUTTON_OPEN_SESSION,
    BUTTON_REOPEN_SESSION,
    NO_PAST_SESSIONS_MESSAGE,
    SESSION_LIST_ITEM_TEMPLATE,
)
from poll_app.core.errors import PollError
from poll_app.core.models import PollSession
from poll_app.core.poll_manager import PollManager
from poll_app.ui.dialog_helpers import show_error


class SessionListDialog(QDialog):
    """Lets the teacher reopen, end or switch to an earlier session.

    Accepting the dialog means "open the selected session"; read it with
    :meth:`selected_session`.
    """

    def __init__(self, poll_manager: PollManager, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Sessions")
        self.setModal(True)
        self.setMinimumWidth(420)

        self.poll_manager = poll_manager
        self._sessions: list[PollSession] = []

        self._build_ui()
        self.reload()

    def _build_ui(self) -> None:
        layout = QVBoxLayout()
        self.setLayout(layout)

        self.empty_label = QLabel(NO_PAST_SESSIONS_MESSAGE, self)
        layout.addWidget(self.empty_label)

        self.session_list = QListWidget(self)
        self.session_list.setAlternatingRowColors(True)
        self.session_list.currentRowChanged.connect(lambda _: self._update_buttons())
        self.session_list.itemDoubleClicked.connect(lambda _: self._handle_open())
        layout.addWidget(self.session_list, stretch=1)

        button_row = QHBoxLayout()
        self.open_button = QPushButton(BUTTON_OPEN_SESSION, self)
        self.open_button.clicked.connect(self._handle_open)
        button_row.addWidget(self.open_button)

        self.toggle_button = QPushButton(BUTTON_CLOSE_SESSION, self)
        self.toggle_button.clicked.connect(self._handle_toggle_active)
        button_row.addWidget(self.toggle_button)

        button_row.addStretch()
        self.close_button = QPushButton(BUTTON_CLOSE, self)
        self.close_button.clicked.connect(self.reject)  # type: ignore[arg-type]
        button_row.addWidget(self.close_button)
        layout.addLayout(button_row)

    def reload(self) -> None:
        selected = self.selected_session()
        try:
            self._sessions = self.poll_manager.list_sessions()
        except PollError as exc:
            show_error(self, "Sessions unavailable", str(exc))
            self._sessions = []

        current = self.poll_manager.get_current_session()
        self.session_list.clear()
        for session in self._sessions:
            status = "active" if session.is_active else "ended"
            if current is not None and session.id == current.id:
                status += ", current"
            text = SESSION_LIST_ITEM_TEMPLATE.format(
                code=session.code,
                created=session.created_at.astimezone().strftime("%Y-%m-%d %H:%M"),
                status=status,
            )
            item = QListWidgetItem(text, self.session_list)
            item.setData(Qt.UserRole, session.id)
            if selected is not None and session.id == selected.id:
                self.session_list.setCurrentItem(item)

        self.empty_label.setVisible(not self._sessions)
        self._update_buttons()

    def selected_session(self) -> PollSession | None:
        row = self.session_list.currentRow()
        if 0 <= row < len(self._sessions):
            return self._sessions[row]
        return None

    def _handle_open(self) -> None:
        if self.selected_session() is not None:
            self.accept()

    def _handle_toggle_active(self) -> None:
        session = self.selected_session()
        if session is None:
            return
        try:
            self.poll_manager.set_session_active(session.id, not session.is_active)
        except PollError as exc:
            show_error(self, "Session not updated", str(exc))
        self.reload()

    def _update_buttons(self) -> None:
        session = self.selected_session()
        self.open_button.setEnabled(session is not None)
        self.toggle_button.setEnabled(session is not None)
        if session is not None:
            self.toggle_button.setText(BUTTON_CLOSE_SESSION if session.is_active else BUTTON_REOPEN_SESSION)
