"""Shared markdown-it token utilities"""

from markdown_it.token import Token


INLINE_MATH = {"math_inline"}
DISPLAY_MATH = {"math_inline_double", "math_block", "math_block_label"}


def html_token(content: str, block: bool = False) -> Token:
    """Raw markup token; html_block at block level, html_inline inside an inline run."""
    if block:
        return Token("html_block", "", 0, content=content, block=True)
    return Token("html_inline", "", 0, content=content)


def text_token(content: str) -> Token:
    return Token("text", "", 0, content=content)


def plain_text(token: Token) -> str | None:
    """Accumulable text of a token: text as-is, inline math wrapped in $, else None."""
    if token.type == "text":
        return token.content
    if token.type in INLINE_MATH:
        return f"${token.content}$"
    return None
