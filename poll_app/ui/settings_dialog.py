"""Settings dialog for configuring PollQt preferences."""

from __future__ import annotations

from PySide6.QtWidgets import (
    QDialog,
    QVBoxLayout,
    QHBoxLayout,
    QLabel,
    QSpinBox,
    QPushButton,
    QGroupBox,
    QCheckBox,
)


class SettingsDialog(QDialog):
    """Dialog for configuring application settings."""

    def __init__(
        self,
        parent=None,
        ui_font_size: int = 10,
        results_font_size: int = 14,
        latest_only: bool = True,
        deduplicate: bool = False,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("Settings")
        self.setModal(True)
        self.setMinimumWidth(400)

        self._ui_font_size = ui_font_size
        self._results_font_size = results_font_size
        self._latest_only = latest_only
        self._deduplicate = deduplicate

        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout()
        self.setLayout(layout)

        font_group = QGroupBox("Font Sizes")
        font_layout = QVBoxLayout()
        font_group.setLayout(font_layout)

        ui_font_row = QHBoxLayout()
        ui_font_label = QLabel("UI Font Size (buttons, lists):")
        ui_font_label.setToolTip("Font size for buttons, the question list and controls")
        self.ui_font_spinbox = QSpinBox()
        self.ui_font_spinbox.setRange(8, 24)
        self.ui_font_spinbox.setValue(self._ui_font_size)
        self.ui_font_spinbox.setSuffix(" pt")
        ui_font_row.addWidget(ui_font_label)
        ui_font_row.addStretch()
        ui_font_row.addWidget(self.ui_font_spinbox)
        font_layout.addLayout(ui_font_row)

        results_font_row = QHBoxLayout()
        results_font_label = QLabel("Results Font Size (bars, answers):")
        results_font_label.setToolTip("Font size for the projected results view")
        self.results_font_spinbox = QSpinBox()
        self.results_font_spinbox.setRange(10, 32)
        self.results_font_spinbox.setValue(self._results_font_size)
        self.results_font_spinbox.setSuffix(" pt")
        results_font_row.addWidget(results_font_label)
        results_font_row.addStretch()
        results_font_row.addWidget(self.results_font_spinbox)
        font_layout.addLayout(results_font_row)

        layout.addWidget(font_group)

        results_group = QGroupBox("Results")
        results_layout = QVBoxLayout()
        results_group.setLayout(results_layout)

        self.latest_only_checkbox = QCheckBox("Show only each student's latest essay answer by default")
        self.latest_only_checkbox.setChecked(self._latest_only)
        results_layout.addWidget(self.latest_only_checkbox)

        self.deduplicate_checkbox = QCheckBox("Merge instant and saved copies of the same answer")
        self.deduplicate_checkbox.setToolTip(
            "Each answer reaches the console twice: once instantly and once when it is saved. "
            "When enabled, the two copies are counted once. Applies to the next activated question."
        )
        self.deduplicate_checkbox.setChecked(self._deduplicate)
        results_layout.addWidget(self.deduplicate_checkbox)

        layout.addWidget(results_group)

        button_row = QHBoxLayout()
        button_row.addStretch()

        self.cancel_button = QPushButton("Cancel")
        self.cancel_button.clicked.connect(self.reject)  # type: ignore[arg-type]
        button_row.addWidget(self.cancel_button)

        self.apply_button = QPushButton("Apply")
        self.apply_button.clicked.connect(self.accept)  # type: ignore[arg-type]
        self.apply_button.setDefault(True)
        button_row.addWidget(self.apply_button)

        layout.addLayout(button_row)

    def get_ui_font_size(self) -> int:
        return self.ui_font_spinbox.value()

    def get_results_font_size(self) -> int:
        return self.results_font_spinbox.value()

    def get_latest_only(self) -> bool:
        """Get whether the essay feed starts filtered to latest answers."""
        return self.latest_only_checkbox.isChecked()

    def get_deduplicate(self) -> bool:
        return self.deduplicate_checkbox.isChecked()
