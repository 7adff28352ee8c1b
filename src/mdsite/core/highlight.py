"""Syntax highlighting of fenced code via pygments"""

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound


class UnsupportedLanguageError(LookupError):
    """No lexer is registered for the requested language tag."""

    def __init__(self, language: str):
        super().__init__(f"syntax highlighting is not supported for `{language}`")
        self.language = language


class Highlighter:
    """Renders source to class-annotated HTML spans, one line marker per line."""

    def __init__(self, line_marker: str = "<a-lf></a-lf>"):
        self.line_marker = line_marker
        self.formatter = HtmlFormatter(nowrap=True)

    def highlight(self, language: str, source: str) -> str:
        try:
            lexer = get_lexer_by_name(language, stripnl=False)
        except ClassNotFound as e:
            raise UnsupportedLanguageError(language) from e
        html = pygments_highlight(source, lexer, self.formatter).rstrip("\n")
        return self.mark_lines(html)

    def mark_lines(self, html: str) -> str:
        """Prefix every line with the line marker consumed by the templates for line numbers."""
        return self.line_marker + html.replace("\n", "\n" + self.line_marker)
