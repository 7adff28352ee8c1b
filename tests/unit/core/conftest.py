"""Shared fixtures for core unit tests"""

import pytest

from mdsite.core.assets import AssetStore
from mdsite.core.context import PostContext
from mdsite.core.parse import make_parser
from mdsite.core.post import build_post


@pytest.fixture(name="parser")
def parser_fixture():
    return make_parser()


@pytest.fixture(name="assets")
def assets_fixture():
    return AssetStore()


@pytest.fixture(name="make_post")
def make_post_fixture(tmp_path, assets):
    """Factory writing a post to disk: `<name>.md`, or `<name>/index.md` when directory=True."""
    def _make(text: str, name: str = "post", directory: bool = False) -> PostContext:
        if directory:
            post_dir = tmp_path / name
            post_dir.mkdir()
            path = post_dir / "index.md"
        else:
            post_dir = None
            path = tmp_path / f"{name}.md"
        path.write_text(text)
        return PostContext(file=path, dir=post_dir, assets=assets)
    return _make


@pytest.fixture(name="render")
def render_fixture(make_post, parser):
    """Build a post from markdown text and return its rendered HTML body."""
    def _render(text: str, **kwargs) -> str:
        return build_post(make_post(text, **kwargs), parser).source
    return _render
