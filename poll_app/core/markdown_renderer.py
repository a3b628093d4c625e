"""Markdown rendering shared by the Qt console and the student page.

Question text is authored in Markdown. Raw HTML in the source is escaped
rather than passed through, since the same fragment is injected into the
student page and into Qt rich-text widgets.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

_EMPTY_FRAGMENT = "<p><em>No content provided.</em></p>"


@dataclass(slots=True)
class MarkdownRenderer:
    """Converts Markdown source into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str | None) -> str:
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return _EMPTY_FRAGMENT
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str | None) -> str:
        """Render a single line (option labels, feed previews) without a wrapping paragraph."""
        return self._markdown.renderInline((markdown_text or "").strip())


# MarkdownIt is safe for concurrent read-only renders, so the API threads and
# the Qt thread share this instance.
renderer = MarkdownRenderer()
