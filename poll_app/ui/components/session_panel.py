"""Component showing the join code and the question list of a session."""

from __future__ import annotations

from collections.abc import Callable

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from poll_app.constants.ui_constants import (
    BUTTON_ACTIVATE,
    BUTTON_DEACTIVATE,
    BUTTON_NEW_QUESTION,
    NO_SESSION_CODE_LABEL,
    SESSION_CODE_TEMPLATE,
    STUDENT_URL_TEMPLATE,
)
from poll_app.core.models import PollSession, Question
from poll_app.styling.styles import Styles


class SessionPanel(QWidget):
    """UI component listing the questions of the running session."""

    def __init__(
        self,
        student_url: str,
        on_new_question: Callable[[], None],
        on_activate: Callable[[Question], None],
        on_deactivate: Callable[[Question], None],
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.student_url = student_url
        self.on_new_question = on_new_question
        self.on_activate = on_activate
        self.on_deactivate = on_deactivate
        self._questions: list[Question] = []

        self._build_ui()
        self.set_session(None)

    def _build_ui(self) -> None:
        layout = QVBoxLayout()
        self.setLayout(layout)

        self.code_label = QLabel(NO_SESSION_CODE_LABEL, self)
        self.code_label.setStyleSheet(Styles.get_large_label_style())
        self.code_label.setTextInteractionFlags(Qt.TextSelectableByMouse)
        layout.addWidget(self.code_label)

        self.network_label = QLabel(STUDENT_URL_TEMPLATE.format(url=self.student_url), self)
        self.network_label.setWordWrap(True)
        layout.addWidget(self.network_label)

        self.question_list = QListWidget(self)
        self.question_list.setAlternatingRowColors(True)
        self.question_list.currentRowChanged.connect(lambda _: self._update_buttons())
        layout.addWidget(self.question_list, stretch=1)

        button_row = QHBoxLayout()
        self.new_question_button = QPushButton(BUTTON_NEW_QUESTION, self)
        self.new_question_button.clicked.connect(lambda: self.on_new_question())
        button_row.addWidget(self.new_question_button)

        self.activate_button = QPushButton(BUTTON_ACTIVATE, self)
        self.activate_button.clicked.connect(self._handle_activate)
        button_row.addWidget(self.activate_button)

        self.deactivate_button = QPushButton(BUTTON_DEACTIVATE, self)
        self.deactivate_button.clicked.connect(self._handle_deactivate)
        button_row.addWidget(self.deactivate_button)
        layout.addLayout(button_row)

    def set_session(self, session: PollSession | None) -> None:
        if session is None:
            self.code_label.setText(NO_SESSION_CODE_LABEL)
        else:
            self.code_label.setText(SESSION_CODE_TEMPLATE.format(code=session.code))
        self.new_question_button.setEnabled(session is not None)
        self.set_questions([])

    def set_questions(self, questions: list[Question]) -> None:
        selected = self.selected_question()
        self._questions = list(questions)
        self.question_list.clear()
        for index, question in enumerate(self._questions, start=1):
            kind = "MCQ" if question.is_mcq else "Essay"
            marker = "● " if question.is_active else ""
            first_line = question.text.splitlines()[0] if question.text else ""
            item = QListWidgetItem(f"{marker}{index}. [{kind}] {first_line}", self.question_list)
            if selected is not None and question.id == selected.id:
                self.question_list.setCurrentItem(item)
        self._update_buttons()

    def selected_question(self) -> Question | None:
        row = self.question_list.currentRow()
        if 0 <= row < len(self._questions):
            return self._questions[row]
        return None

    def apply_font_size(self, font_size: int) -> None:
        self.question_list.setStyleSheet(f"font-size: {font_size}pt;")
        for button in (self.new_question_button, self.activate_button, self.deactivate_button):
            button.setStyleSheet(f"font-size: {font_size}pt;")

    def _handle_activate(self) -> None:
        question = self.selected_question()
        if question is not None:
            self.on_activate(question)

    def _handle_deactivate(self) -> None:
        question = self.selected_question()
        if question is not None:
            self.on_deactivate(question)

    def _update_buttons(self) -> None:
        question = self.selected_question()
        self.activate_button.setEnabled(question is not None and not question.is_active)
        self.deactivate_button.setEnabled(question is not None and question.is_active)
