"""Component rendering the live results of the active question."""

from __future__ import annotations

from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QBrush, QColor
from PySide6.QtWidgets import (
    QComboBox,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QProgressBar,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from poll_app.constants.ui_constants import (
    BUTTON_RETRY,
    BUTTON_TOGGLE_HIDDEN,
    FILTER_ALL,
    FILTER_LATEST_ONLY,
    HIDDEN_ANSWER_SUFFIX,
    LOADING_RESULTS_MESSAGE,
    NO_ACTIVE_QUESTION_MESSAGE,
    NOTICE_DISPLAY_MS,
    RESULTS_ERROR_TEMPLATE,
    TOTAL_ANSWERS_TEMPLATE,
    WAITING_FOR_ANSWERS_MESSAGE,
)
from poll_app.core.markdown_renderer import renderer
from poll_app.core.models import FeedEntry, FeedSnapshot, ResultsStatus, ResultsView, TallySnapshot
from poll_app.core.poll_manager import PollManager
from poll_app.styling.color_palette import ColorPalette, Theme
from poll_app.styling.styles import Styles

_ANSWER_ID_ROLE = Qt.UserRole
_HIDDEN_ROLE = Qt.UserRole + 1


class ResultsPanel(QWidget):
    """UI component showing tally bars for MCQ and the answer feed for essays."""

    def __init__(self, poll_manager: PollManager, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.poll_manager = poll_manager
        self._last_view: ResultsView | None = None
        self._latest_only: bool = True
        self._results_font_size: int = 14

        self._build_ui()
        self._render(ResultsView(status=ResultsStatus.IDLE))

    def _build_ui(self) -> None:
        layout = QVBoxLayout()
        self.setLayout(layout)

        self.question_view = QLabel(self)
        self.question_view.setWordWrap(True)
        self.question_view.setTextFormat(Qt.RichText)
        layout.addWidget(self.question_view)

        status_row = QHBoxLayout()
        self.status_label = QLabel(self)
        self.status_label.setWordWrap(True)
        status_row.addWidget(self.status_label, stretch=1)
        self.retry_button = QPushButton(BUTTON_RETRY, self)
        self.retry_button.clicked.connect(self._handle_retry)
        status_row.addWidget(self.retry_button)
        layout.addLayout(status_row)

        self.notice_label = QLabel(self)
        self.notice_label.setStyleSheet(Styles.get_notice_style())
        self.notice_label.setVisible(False)
        layout.addWidget(self.notice_label)
        self.notice_timer = QTimer(self)
        self.notice_timer.setSingleShot(True)
        self.notice_timer.timeout.connect(lambda: self.notice_label.setVisible(False))

        # Multiple-choice bars
        self.bars_container = QWidget(self)
        self.bars_layout = QVBoxLayout()
        self.bars_container.setLayout(self.bars_layout)
        layout.addWidget(self.bars_container)

        # Essay feed
        filter_row = QHBoxLayout()
        self.filter_combo = QComboBox(self)
        self.filter_combo.addItem(FILTER_LATEST_ONLY, userData=True)
        self.filter_combo.addItem(FILTER_ALL, userData=False)
        self.filter_combo.currentIndexChanged.connect(self._handle_filter_changed)
        filter_row.addWidget(self.filter_combo)
        filter_row.addStretch()
        self.toggle_hidden_button = QPushButton(BUTTON_TOGGLE_HIDDEN, self)
        self.toggle_hidden_button.clicked.connect(self._handle_toggle_hidden)
        filter_row.addWidget(self.toggle_hidden_button)
        self.feed_controls = QWidget(self)
        self.feed_controls.setLayout(filter_row)
        layout.addWidget(self.feed_controls)

        self.feed_list = QListWidget(self)
        self.feed_list.setWordWrap(True)
        self.feed_list.setAlternatingRowColors(True)
        layout.addWidget(self.feed_list, stretch=1)

        self.total_label = QLabel(self)
        layout.addWidget(self.total_label)

    def update_view(self) -> None:
        """Pull the latest published results; called from the refresh timer."""
        view = self.poll_manager.get_results_view()
        if view.notice:
            self._show_notice(view.notice)
            self.poll_manager.clear_notice()
            view.notice = None
        if view == self._last_view:
            return
        self._render(view)

    def set_latest_only(self, latest_only: bool) -> None:
        self.filter_combo.setCurrentIndex(0 if latest_only else 1)

    def apply_font_size(self, font_size: int) -> None:
        self._results_font_size = font_size
        self.question_view.setStyleSheet(f"font-size: {font_size}pt;")
        self.feed_list.setStyleSheet(f"font-size: {font_size}pt;")
        self.bars_container.setStyleSheet(f"QLabel {{ font-size: {font_size}pt; }}")
        self._last_view = None

    def _render(self, view: ResultsView) -> None:
        self._last_view = view
        question = view.question
        self.question_view.setText(renderer.render_fragment(question.text) if question else "")
        self.retry_button.setVisible(view.status is ResultsStatus.ERROR)

        is_mcq = question is not None and question.is_mcq
        showing_essay = question is not None and not is_mcq
        self.bars_container.setVisible(is_mcq)
        self.feed_controls.setVisible(showing_essay)
        self.feed_list.setVisible(showing_essay)

        if view.status is ResultsStatus.IDLE or question is None:
            self.status_label.setText(NO_ACTIVE_QUESTION_MESSAGE)
            self.total_label.clear()
            self._clear_bars()
            self.feed_list.clear()
            return
        if view.status is ResultsStatus.LOADING:
            self.status_label.setText(LOADING_RESULTS_MESSAGE)
            return
        if view.status is ResultsStatus.ERROR:
            self.status_label.setText(RESULTS_ERROR_TEMPLATE.format(error=view.error or "unknown error"))
            return

        if is_mcq and view.tally is not None:
            self._render_tally(view.tally)
        elif view.feed is not None:
            self._render_feed(view.feed)

    def _render_tally(self, tally: TallySnapshot) -> None:
        self.status_label.setText(WAITING_FOR_ANSWERS_MESSAGE if tally.total_answers == 0 else "")
        self.total_label.setText(TOTAL_ANSWERS_TEMPLATE.format(count=tally.total_answers))
        self._clear_bars()
        for index, option in enumerate(tally.options):
            label = QLabel(
                f"{chr(ord('A') + index)}. {option.text}  {option.count} ({option.percentage}%)",
                self.bars_container,
            )
            bar = QProgressBar(self.bars_container)
            bar.setRange(0, 100)
            bar.setValue(option.percentage)
            bar.setTextVisible(False)
            bar.setStyleSheet(Styles.get_result_bar_style())
            self.bars_layout.addWidget(label)
            self.bars_layout.addWidget(bar)

    def _render_feed(self, feed: FeedSnapshot) -> None:
        entries = feed.latest_only() if self._latest_only else feed.all_answers()
        self.status_label.setText(WAITING_FOR_ANSWERS_MESSAGE if not entries else "")
        self.total_label.setText(TOTAL_ANSWERS_TEMPLATE.format(count=feed.total_answers))

        selected_id = self._selected_answer_id()
        self.feed_list.clear()
        for entry in entries:
            item = self._build_feed_item(entry)
            self.feed_list.addItem(item)
            if entry.answer.id == selected_id:
                self.feed_list.setCurrentItem(item)

    @staticmethod
    def _build_feed_item(entry: FeedEntry) -> QListWidgetItem:
        answer = entry.answer
        timestamp = answer.created_at.astimezone().strftime("%H:%M:%S")
        text = f"[{timestamp}] {answer.student_id[:6]}: {answer.text}"
        if answer.is_hidden:
            text += HIDDEN_ANSWER_SUFFIX
        item = QListWidgetItem(text)
        item.setData(_ANSWER_ID_ROLE, answer.id)
        item.setData(_HIDDEN_ROLE, answer.is_hidden)
        if answer.is_hidden:
            item.setForeground(QBrush(QColor(ColorPalette.FEED_HIDDEN_ANSWER.get(Theme.LIGHT))))
        elif not entry.is_latest:
            item.setForeground(QBrush(QColor(ColorPalette.FEED_OLDER_ANSWER.get(Theme.LIGHT))))
        return item

    def _clear_bars(self) -> None:
        while self.bars_layout.count():
            widget = self.bars_layout.takeAt(0).widget()
            if widget is not None:
                widget.deleteLater()

    def _selected_answer_id(self) -> str | None:
        item = self.feed_list.currentItem()
        return item.data(_ANSWER_ID_ROLE) if item is not None else None

    def _show_notice(self, message: str) -> None:
        self.notice_label.setText(message)
        self.notice_label.setVisible(True)
        self.notice_timer.start(NOTICE_DISPLAY_MS)

    def _handle_filter_changed(self) -> None:
        self._latest_only = bool(self.filter_combo.currentData())
        if self._last_view is not None:
            self._render(self._last_view)

    def _handle_toggle_hidden(self) -> None:
        item = self.feed_list.currentItem()
        if item is None:
            return
        # Failures surface through the view notice after the rollback.
        self.poll_manager.toggle_answer_hidden(item.data(_ANSWER_ID_ROLE), bool(item.data(_HIDDEN_ROLE)))

    def _handle_retry(self) -> None:
        self.poll_manager.retry_results()
