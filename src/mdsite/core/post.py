"""Document builder: one markdown source -> one rendered Post"""

import logging
from typing import Optional

from markdown_it import MarkdownIt

from mdsite.core.context import PostContext
from mdsite.core.highlight import Highlighter
from mdsite.core.models import Post
from mdsite.core.parse import make_parser
from mdsite.core.stages.content import ContentStage
from mdsite.core.stages.math import math_stage
from mdsite.core.stream import flatten, render_html


logger = logging.getLogger(__name__)


def build_post(
    post: PostContext,
    md: Optional[MarkdownIt] = None,
    highlighter: Optional[Highlighter] = None,
    ) -> Optional[Post]:
    """Read, parse and render a post. Returns None only when the source cannot be read."""
    logger.info("processing post `%s`", post.file)
    try:
        contents = post.file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("cannot read post: %s", e)
        return None

    md = md or make_parser(post.settings.parser_config)
    env: dict = {}
    tokens = md.parse(contents, env)
    stream = ContentStage(flatten(tokens), post, highlighter)
    source = render_html(md, math_stage(stream, post.settings.math_fallback), env)

    meta = post.meta if post.meta is not None else post.default_metadata()
    return Post(
        id=post.name,
        age=int(meta.date.timestamp()),
        source=source,
        meta=meta,
    )
