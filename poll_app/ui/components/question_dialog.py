"""Dialog for composing a new multiple-choice or essay question."""

from __future__ import annotations

from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDialog,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QPlainTextEdit,
    QPushButton,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from poll_app.constants.poll_constants import MAX_MCQ_OPTIONS, MIN_MCQ_OPTIONS
from poll_app.constants.ui_constants import PLACEHOLDER_QUESTION
from poll_app.core.markdown_renderer import renderer
from poll_app.core.models import QuestionType
from poll_app.ui.dialog_helpers import show_warning


class QuestionDialog(QDialog):
    """Collects question text, type and options; validation happens on accept."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("New Question")
        self.setModal(True)
        self.setMinimumWidth(520)
        self._build_ui()
        self._handle_type_changed()

    def _build_ui(self) -> None:
        layout = QVBoxLayout()
        self.setLayout(layout)

        type_row = QHBoxLayout()
        type_row.addWidget(QLabel("Question type:", self))
        self.type_combo = QComboBox(self)
        self.type_combo.addItem("Multiple choice", userData=QuestionType.MCQ)
        self.type_combo.addItem("Essay", userData=QuestionType.ESSAY)
        self.type_combo.currentIndexChanged.connect(self._handle_type_changed)
        type_row.addWidget(self.type_combo)
        type_row.addStretch()
        layout.addLayout(type_row)

        self.question_input = QPlainTextEdit(self)
        self.question_input.setPlaceholderText(PLACEHOLDER_QUESTION)
        self.question_input.textChanged.connect(self._refresh_preview)
        layout.addWidget(self.question_input)

        self.option_inputs: list[QLineEdit] = []
        for index in range(MAX_MCQ_OPTIONS):
            option_input = QLineEdit(self)
            label = chr(ord("A") + index)
            suffix = "" if index < MIN_MCQ_OPTIONS else " (optional)"
            option_input.setPlaceholderText(f"Option {label}{suffix}")
            option_input.textChanged.connect(self._refresh_preview)
            layout.addWidget(option_input)
            self.option_inputs.append(option_input)

        self.allow_multiple_checkbox = QCheckBox("Allow students to select several options", self)
        layout.addWidget(self.allow_multiple_checkbox)

        self.preview_view = QTextBrowser(self)
        layout.addWidget(self.preview_view)

        button_row = QHBoxLayout()
        button_row.addStretch()
        self.cancel_button = QPushButton("Cancel", self)
        self.cancel_button.clicked.connect(self.reject)  # type: ignore[arg-type]
        button_row.addWidget(self.cancel_button)
        self.save_button = QPushButton("Save", self)
        self.save_button.setDefault(True)
        self.save_button.clicked.connect(self._handle_save)
        button_row.addWidget(self.save_button)
        layout.addLayout(button_row)

    def _handle_type_changed(self) -> None:
        is_mcq = self.get_question_type() is QuestionType.MCQ
        for option_input in self.option_inputs:
            option_input.setVisible(is_mcq)
        self.allow_multiple_checkbox.setVisible(is_mcq)
        self._refresh_preview()

    def _refresh_preview(self) -> None:
        html = renderer.render_fragment(self.question_input.toPlainText())
        if self.get_question_type() is QuestionType.MCQ:
            items = "".join(
                f"<li>{renderer.render_inline(option)}</li>" for option in self.get_options()
            )
            html += f"<ol type=\"A\">{items}</ol>"
        self.preview_view.setHtml(html)

    def _handle_save(self) -> None:
        if not self.get_question_text():
            show_warning(self, "Missing text", "Please enter the question text.")
            return
        if self.get_question_type() is QuestionType.MCQ:
            filled = [option_input.text().strip() for option_input in self.option_inputs]
            while filled and not filled[-1]:
                filled.pop()
            if len(filled) < MIN_MCQ_OPTIONS or any(not option for option in filled):
                show_warning(
                    self,
                    "Missing options",
                    f"Fill in at least {MIN_MCQ_OPTIONS} options without gaps.",
                )
                return
        self.accept()

    def get_question_type(self) -> QuestionType:
        return self.type_combo.currentData()

    def get_question_text(self) -> str:
        return self.question_input.toPlainText().strip()

    def get_options(self) -> list[str]:
        return [option_input.text().strip() for option_input in self.option_inputs if option_input.text().strip()]

    def get_allow_multiple(self) -> bool:
        return self.get_question_type() is QuestionType.MCQ and self.allow_multiple_checkbox.isChecked()
