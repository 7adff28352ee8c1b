"""Flat token stream over markdown-it output, with lookahead buffering.

markdown-it produces block tokens whose inline content hangs off
`children`, and it collapses fences, images and front matter into single
tokens. The stages below want one forward-only stream in which every
nested region is delimited by an explicit open/close pair, so `flatten`
expands the parser output into that shape and `fold` rebuilds markdown-it
tokens for the HTML renderer once the stages are done.
"""

import logging
from collections import deque
from typing import Iterable, Iterator, Optional

from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml
from markdown_it.token import Token

from mdsite.core.utils.tokens import DISPLAY_MATH, INLINE_MATH, plain_text, text_token


logger = logging.getLogger(__name__)


def _open(type_: str, source: Token, **kwargs) -> Token:
    return Token(type_, source.tag, 1, map=source.map, block=source.block, **kwargs)


def _close(type_: str, source: Token) -> Token:
    return Token(type_, source.tag, -1, block=source.block)


def _flatten_inline(children: Iterable[Token]) -> Iterator[Token]:
    for child in children:
        if child.type == "image":
            yield _open("image_open", child, attrs=dict(child.attrs), content=child.content)
            yield from _flatten_inline(child.children or [])
            yield _close("image_close", child)
        else:
            yield child


def flatten(tokens: Iterable[Token]) -> Iterator[Token]:
    """Yield a flat stream with explicit open/close pairs for inline runs, images, fences and front matter."""
    for tok in tokens:
        if tok.type == "inline":
            yield _open("inline_open", tok, content=tok.content)
            yield from _flatten_inline(tok.children or [])
            yield _close("inline_close", tok)
        elif tok.type == "fence":
            yield _open("fence_open", tok, info=tok.info, markup=tok.markup)
            yield text_token(tok.content)
            yield _close("fence_close", tok)
        elif tok.type == "front_matter":
            yield _open("front_matter_open", tok, markup=tok.markup)
            yield text_token(tok.content)
            yield _close("front_matter_close", tok)
        else:
            yield tok


def _rebuild_inline(opening: Token, items: list[Token]) -> Token:
    return Token("inline", "", 0, map=opening.map, content=opening.content, children=items, block=True)


def _math_as_text(tok: Token) -> Token:
    if tok.type in INLINE_MATH:
        return text_token(f"${tok.content}$")
    if tok.type in DISPLAY_MATH:
        return text_token(f"$${tok.content}$$")
    return tok


def _rebuild_image(opening: Token, items: list[Token]) -> Token:
    # alt text is rendered as plain text, so math keeps its TeX source
    items = [_math_as_text(t) for t in items]
    return Token(
        "image", "img", 0,
        attrs=dict(opening.attrs),
        content="".join(t.content for t in items if t.type == "text"),
        children=items,
    )


def _rebuild_fence(opening: Token, items: list[Token]) -> Token:
    if all(t.type == "text" for t in items):
        return Token(
            "fence", "code", 0, map=opening.map, info=opening.info, markup=opening.markup,
            content="".join(t.content for t in items), block=True,
        )
    lang = opening.info.strip().split(maxsplit=1)[0] if opening.info.strip() else ""
    cls = f' class="language-{escapeHtml(lang)}"' if lang else ""
    body = "".join(t.content if t.type.startswith("html") else escapeHtml(t.content) for t in items)
    return Token("html_block", "", 0, content=f"<pre><code{cls}>{body}</code></pre>\n", block=True)


def _rebuild_front_matter(opening: Token, items: list[Token]) -> Token:
    body = "".join(escapeHtml(t.content) for t in items)
    return Token("html_block", "", 0, content=f"<pre>{body}</pre>\n", block=True)


REBUILDERS = {
    "inline":       _rebuild_inline,
    "image":        _rebuild_image,
    "fence":        _rebuild_fence,
    "front_matter": _rebuild_front_matter,
}


def fold(stream: Iterable[Token]) -> list[Token]:
    """Re-nest a flat stream into markdown-it block tokens. Inverse of flatten."""
    root: list[Token] = []
    stack: list[tuple[Token, list[Token]]] = []

    for tok in stream:
        kind, _, edge = tok.type.rpartition("_")
        if kind in REBUILDERS and edge == "open":
            stack.append((tok, []))
            continue
        if kind in REBUILDERS and edge == "close":
            if not stack or not stack[-1][0].type.startswith(kind + "_"):
                logger.error("unbalanced `%s` in token stream, dropping it", tok.type)
                continue
            opening, items = stack.pop()
            tok = REBUILDERS[kind](opening, items)
        (stack[-1][1] if stack else root).append(tok)

    # unterminated regions keep their content
    while stack:
        _, items = stack.pop()
        (stack[-1][1] if stack else root).extend(items)
    return root


def render_html(md: MarkdownIt, stream: Iterable[Token], env: Optional[dict] = None) -> str:
    """Fold a flat token stream into an HTML string."""
    return md.renderer.render(fold(stream), md.options, env if env is not None else {})


class BufferedStream:
    """Pull-based token stream with a replay queue in front of the upstream.

    Tokens queued in `buffer` are emitted before anything new is pulled, so
    a subclass can look ahead across a nested block and then either rewrite
    the buffered tokens or leave them to be replayed untouched.
    """

    def __init__(self, upstream: Iterable[Token]):
        self.upstream = iter(upstream)
        self.buffer: deque[Token] = deque()

    def __iter__(self) -> "BufferedStream":
        return self

    def __next__(self) -> Token:
        if self.buffer:
            return self.buffer.popleft()
        return self.process(next(self.upstream))

    def process(self, token: Token) -> Token:
        """Hook for subclasses: handle a freshly pulled token."""
        return token

    def accumulate_until(self, end_type: str, desc: str) -> str | None:
        """Pull into the buffer up to and including a token of end_type.

        Returns the concatenated text and inline math, or None when the
        upstream ends first or a token that is neither text nor math turns
        up. The pulled tokens stay buffered either way.
        """
        text = []
        while True:
            tok = next(self.upstream, None)
            if tok is None:
                return None
            self.buffer.append(tok)
            if tok.type == end_type:
                return "".join(text)
            content = plain_text(tok)
            if content is None:
                logger.error("could not parse %s, found `%s`", desc, tok.type)
                return None
            text.append(content)
