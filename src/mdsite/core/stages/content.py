"""Metadata, code and image stage.

Every handler follows the same pattern: buffer the whole nested block with
`accumulate_until`, decide once, then either rewrite the buffer or leave it
to be replayed untouched. The three share one stage because they all need
the post context (its directory and metadata slot).
"""

import logging
from typing import Callable, Optional

from markdown_it.common.utils import escapeHtml
from markdown_it.token import Token

from mdsite.core.context import PostContext
from mdsite.core.highlight import Highlighter, UnsupportedLanguageError
from mdsite.core.stages.images import is_relative_url, load_svg, transcode_webp
from mdsite.core.stages.metadata import parse_metadata
from mdsite.core.stream import BufferedStream
from mdsite.core.utils.tokens import html_token


logger = logging.getLogger(__name__)


class ContentStage(BufferedStream):
    """Extracts metadata, highlights fenced code and embeds local images."""

    def __init__(self, upstream, post: PostContext, highlighter: Optional[Highlighter] = None):
        super().__init__(upstream)
        self.post = post
        self.highlighter = highlighter or Highlighter(post.settings.line_marker)
        self.handlers: dict[str, Callable[[Token], Token]] = {
            "front_matter_open": self.handle_metadata,
            "fence_open":        self.handle_code,
            "image_open":        self.handle_image,
        }

    def process(self, token: Token) -> Token:
        handler = self.handlers.get(token.type)
        return handler(token) if handler else token

    def handle_metadata(self, token: Token) -> Token:
        source = self.accumulate_until("front_matter_close", "metadata")
        if source is None:
            return token
        meta = parse_metadata(source, self.post)
        if meta is None:
            return token

        self.post.meta = meta
        self.buffer.clear()
        return next(self)

    def handle_code(self, token: Token) -> Token:
        info = token.info.strip()
        if not info:
            return token
        language = info.split(maxsplit=1)[0]

        source = self.accumulate_until("fence_close", "code block")
        if source is None:
            return token
        try:
            html = self.highlighter.highlight(language, source.rstrip())
        except UnsupportedLanguageError as e:
            logger.warning("%s", e)
            return token

        closing = self.buffer[-1]
        self.buffer.clear()
        self.buffer.extend([html_token(html, block=True), closing])
        return token

    def handle_image(self, token: Token) -> Token:
        alt = self.accumulate_until("image_close", "image")
        if alt is None:
            return token

        url = token.attrGet("src") or ""
        if not is_relative_url(url):
            return token
        if self.post.dir is None:
            logger.error("cannot resolve relative image `%s`: post is not a directory", url)
            return token
        path = self.post.resolve_file(url)
        if path is None:
            logger.error("could not resolve relative file `%s`", url)
            return token

        if path.suffix.lower() == ".svg":
            markup = load_svg(path, alt, self.post.settings.svg_precision)
        else:
            markup = self.raster_markup(path, alt)
        if markup is None:
            return token
        return self.figure(markup)

    def raster_markup(self, path, alt: str) -> Optional[str]:
        data = transcode_webp(path)
        if data is None:
            return None
        url = "/" + self.post.assets.store(data, "webp")
        return f'<img src="{escapeHtml(url)}" alt="{escapeHtml(alt)}">'

    def figure(self, markup: str) -> Token:
        """Replace the buffered image with a figure; the alt tokens become the caption."""
        self.buffer.pop()
        self.buffer.appendleft(html_token("<figcaption>"))
        self.buffer.appendleft(html_token(markup))
        self.buffer.append(html_token("</figcaption></figure>"))
        return html_token("<figure>")
