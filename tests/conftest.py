"""Root test configuration: sample site layout shared by integration tests"""

import logging
from pathlib import Path

import pytest
from PIL import Image


TEMPLATES = {
    "index.html": (
        "{% for post in posts %}"
        '<a href="posts/{{ post.id }}.html">{{ post.meta.title }}</a>\n'
        "{% endfor %}"
    ),
    "post.html": (
        "<h1>{{ post.meta.title }}</h1>\n"
        "{{ post.meta.date | format_datetime }}\n"
        "<article>{{ post.source }}</article>\n"
        "{% for tag in post.meta.tags %}"
        '<a href="/tags/{{ tag | urlencode }}.html">{{ tag }}</a>'
        "{% endfor %}"
    ),
    "tag.html": (
        "<h1>{{ tag }}</h1>\n"
        "{% for post in posts if tag in post.meta.tags %}{{ post.id }}\n{% endfor %}"
    ),
}

GRADIENT_SVG = """\
<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10">
  <defs>
    <linearGradient id="a"><stop offset="0" stop-color="{color}"/></linearGradient>
  </defs>
  <rect width="10" height="10" fill="url(#a)"/>
</svg>
"""


def write_png(path: Path, color=(200, 30, 30), size=(4, 4)) -> Path:
    Image.new("RGB", size, color).save(path, format="PNG")
    return path


def write_gradient_svg(path: Path, color: str) -> Path:
    path.write_text(GRADIENT_SVG.format(color=color))
    return path


@pytest.fixture(autouse=True)
def reset_logging_fixture():
    """Undo setup_logging() after each test so CLI runs do not leak levels or handlers."""
    yield
    logger = logging.getLogger("mdsite")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture(name="site_dir")
def site_dir_fixture(tmp_path) -> Path:
    """Input directory with templates, a static file and three posts."""
    root = tmp_path / "site"
    (root / "templates").mkdir(parents=True)
    for name, source in TEMPLATES.items():
        (root / "templates" / name).write_text(source)

    (root / "static" / "css").mkdir(parents=True)
    (root / "static" / "css" / "site.css").write_text("body { margin: 0; }\n")

    posts = root / "posts"
    posts.mkdir()
    (posts / "hello.md").write_text(
        "---\ntitle: Hello\ndate: 2024-03-01T12:30:00+02:00\ntags: [x, y]\n---\n\n"
        "# Hello\n\nSome $e^x$ math.\n"
    )

    first = posts / "first"
    first.mkdir()
    write_png(first / "pic.png")
    write_gradient_svg(first / "one.svg", "red")
    write_gradient_svg(first / "two.svg", "blue")
    (first / "index.md").write_text(
        "---\ntitle: First\ndate: 2024-01-02\ntags: [x]\n---\n\n"
        "![A picture](pic.png)\n\n![One](one.svg)\n\n![Two](two.svg)\n"
    )

    second = posts / "second"
    second.mkdir()
    write_png(second / "copy.png")
    (second / "index.md").write_text(
        "---\ntitle: Second\ndate: 2024-01-03\n---\n\n![Same picture](copy.png)\n"
    )

    (tmp_path / "out").mkdir()
    return root
