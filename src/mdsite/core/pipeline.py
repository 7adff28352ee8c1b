"""Build orchestration: posts -> pages, assets and static files"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from mdsite.config import Settings
from mdsite.core.assets import AssetStore
from mdsite.core.context import PostContext
from mdsite.core.export import build_pages, copy_static, make_environment
from mdsite.core.highlight import Highlighter
from mdsite.core.models import Post
from mdsite.core.parse import discover_posts, make_parser
from mdsite.core.post import build_post


logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    posts:  list[Post] = field(default_factory=list)
    pages:  list[str] = field(default_factory=list)
    assets: list[Path] = field(default_factory=list)
    static: list[Path] = field(default_factory=list)


def build_posts(in_dir: Path, assets: AssetStore, settings: Settings) -> list[Post]:
    """Render every post under in_dir/posts, one at a time, into the shared asset store."""
    md = make_parser(settings.parser_config)
    highlighter = Highlighter(settings.line_marker)
    posts = []
    for source in discover_posts(in_dir / "posts"):
        ctx = PostContext(file=source.file, dir=source.dir, assets=assets, settings=settings)
        post = build_post(ctx, md, highlighter)
        if post is not None:
            posts.append(post)
    return posts


def run_build(in_dir: Path, out_dir: Path, settings: Settings) -> BuildResult:
    """Full site build. Per-item failures are logged; nothing here raises for bad content."""
    assets = AssetStore(settings.asset_dir)
    result = BuildResult()
    result.posts = build_posts(in_dir, assets, settings)

    templates_dir = in_dir / "templates"
    if templates_dir.is_dir():
        env = make_environment(templates_dir, settings)
        result.pages = build_pages(env, result.posts, out_dir)
    else:
        logger.error("cannot read templates directory `%s`", templates_dir)

    result.assets = assets.write(out_dir)
    result.static = copy_static(in_dir, out_dir)
    return result
