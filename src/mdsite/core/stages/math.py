"""Math stage: inline and display TeX to MathML"""

import logging
from typing import Iterable, Iterator

from latex2mathml.converter import convert
from markdown_it.common.utils import escapeHtml
from markdown_it.token import Token

from mdsite.core.utils.tokens import DISPLAY_MATH, INLINE_MATH, html_token


logger = logging.getLogger(__name__)


def render_mathml(source: str, display: bool) -> str:
    return convert(source, display="block" if display else "inline")


def math_stage(upstream: Iterable[Token], fallback: str = "drop") -> Iterator[Token]:
    """Replace math tokens with MathML markup; everything else passes through.

    A formula that fails to render is dropped, or with fallback="source"
    emitted as its escaped TeX source. Math in the alt text of an image that
    was not embedded is left alone.
    """
    image_depth = 0
    for tok in upstream:
        if tok.type == "image_open":
            image_depth += 1
        elif tok.type == "image_close":
            image_depth = max(image_depth - 1, 0)
        if image_depth or (tok.type not in INLINE_MATH and tok.type not in DISPLAY_MATH):
            yield tok
            continue

        display = tok.type in DISPLAY_MATH
        end = "\n" if tok.block else ""
        try:
            markup = render_mathml(tok.content, display)
        except Exception as e:  # latex2mathml reports bad input through assorted exception types
            logger.error("cannot render math block: %s", e)
            if fallback == "source":
                delim = "$$" if display else "$"
                yield html_token(f"{delim}{escapeHtml(tok.content)}{delim}{end}", block=tok.block)
            continue
        yield html_token(markup + end, block=tok.block)
