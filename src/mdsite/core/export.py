"""Export: template rendering, page writing and static file copying"""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, TemplateError, pass_context
from jinja2.runtime import Context
from markupsafe import Markup

from mdsite.config import Settings
from mdsite.core.models import Post


logger = logging.getLogger(__name__)


def format_datetime(dt: datetime, fmt: str) -> Markup:
    """Render a <time> element with an RFC 3339 timestamp and a human-readable label."""
    return Markup('<time datetime="{}">{}</time>').format(dt.isoformat(), dt.strftime(fmt))


def make_environment(templates_dir: Path, settings: Settings) -> Environment:
    """Jinja2 environment over templates_dir with the site filters registered."""
    env = Environment(loader=FileSystemLoader(str(templates_dir)), autoescape=False)

    @pass_context
    def _format_datetime(ctx: Context, value: Any) -> Markup:
        fmt = ctx.get("FORMAT_DATETIME") or settings.datetime_format
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return format_datetime(value, str(fmt))

    env.filters["format_datetime"] = _format_datetime
    env.filters["urlencode"] = lambda s: quote(str(s), safe="")
    return env


def write_output(out_dir: Path, rel: str, content: bytes) -> bool:
    """Write content to out_dir/rel, creating parents. Errors are logged, not raised."""
    target = out_dir / rel
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
    except OSError as e:
        logger.error("could not write output `%s`: %s", target, e)
        return False
    return True


def build_page(env: Environment, name: str, rel: str, out_dir: Path, **context: Any) -> bool:
    """Render template `name`.html with context into out_dir/rel."""
    logger.info("rendering page `%s` with template `%s`", rel, name)
    try:
        source = env.get_template(f"{name}.html").render(**context)
    except TemplateError as e:
        logger.error("could not render template `%s`: %s", name, e)
        return False
    return write_output(out_dir, rel, source.encode("utf-8"))


def build_pages(env: Environment, posts: list[Post], out_dir: Path) -> list[str]:
    """Write the index, one page per post and one page per tag. Returns written paths."""
    written = []
    if build_page(env, "index", "index.html", out_dir, posts=posts):
        written.append("index.html")

    tags: dict[str, None] = {}
    for post in posts:
        rel = f"posts/{post.id}.html"
        if build_page(env, "post", rel, out_dir, post=post):
            written.append(rel)
        tags.update(dict.fromkeys(post.meta.tags))

    for tag in tags:
        rel = f"tags/{tag}.html"
        if build_page(env, "tag", rel, out_dir, posts=posts, tag=tag):
            written.append(rel)
    return written


def copy_static(in_dir: Path, out_dir: Path) -> list[Path]:
    """Copy in_dir/static recursively to out_dir/static, logging each file."""
    src_root = in_dir / "static"
    if not src_root.is_dir():
        return []
    dest_root = out_dir / "static"

    copied = []
    for src in sorted(p for p in src_root.rglob("*") if p.is_file()):
        logger.info("copying static asset `%s`", src)
        target = dest_root / src.relative_to(src_root)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, target)
        except OSError as e:
            logger.error("could not copy static asset: %s", e)
            continue
        copied.append(target)
    return copied

