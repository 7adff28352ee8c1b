"""markdown-it parser construction and post discovery"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from markdown_it import MarkdownIt
from mdit_py_plugins.dollarmath import dollarmath_plugin
from mdit_py_plugins.footnote import footnote_plugin
from mdit_py_plugins.front_matter import front_matter_plugin


logger = logging.getLogger(__name__)


@dataclass
class PostSource:
    """Location of one post: the markdown file and, for index.md posts, its directory."""
    file: Path
    dir:  Optional[Path] = None


def make_parser(preset: str = "gfm-like") -> MarkdownIt:
    """Build a MarkdownIt instance with metadata, math, footnote and smart punctuation support."""
    md = MarkdownIt(preset, options_update={"linkify": False, "html": True, "typographer": True})
    md.enable(["replacements", "smartquotes"])
    md.use(front_matter_plugin)
    md.use(dollarmath_plugin, allow_space=False, allow_digits=False, double_inline=True)
    md.use(footnote_plugin)
    return md


def discover_posts(posts_dir: Path) -> list[PostSource]:
    """Return posts under posts_dir: <name>.md files and <name>/index.md directories."""
    try:
        entries = sorted(posts_dir.iterdir())
    except OSError as e:
        logger.error("cannot read posts directory: %s", e)
        logger.warning("continuing with no posts")
        return []

    posts = []
    for entry in entries:
        if entry.is_dir():
            index = entry / "index.md"
            if index.is_file():
                posts.append(PostSource(file=index, dir=entry))
            else:
                logger.error("unknown post type for `%s`", index)
        elif entry.is_file() and entry.suffix == ".md":
            posts.append(PostSource(file=entry))
        else:
            logger.error("unknown post type for `%s`", entry)
    return posts
