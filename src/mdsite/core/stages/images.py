"""Local image loading: SVG inlining and lossless WebP transcoding"""

import io
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from PIL import Image

from mdsite.core.svg import inline_svg


logger = logging.getLogger(__name__)


def is_relative_url(url: str) -> Optional[bool]:
    """True for scheme-less references, False for absolute URLs, None if the URL is malformed."""
    try:
        parts = urlsplit(url)
    except ValueError as e:
        logger.error("cannot parse image url `%s`: %s", url, e)
        return None
    return not parts.scheme


def load_svg(path: Path, alt: str, precision: int = 3) -> Optional[str]:
    """Read an SVG file and return inlinable markup, None if the file cannot be read."""
    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("could not read image file `%s`: %s", path, e)
        return None
    markup = inline_svg(source, alt, precision, name=str(path))
    logger.info("inlined svg image `%s`", path)
    return markup


def transcode_webp(path: Path) -> Optional[bytes]:
    """Decode a raster image and re-encode it as lossless WebP. None on any codec failure."""
    try:
        with Image.open(path) as im:
            im.load()
            logger.info("transcoding image file `%s`", path)
            buffer = io.BytesIO()
            im.save(buffer, format="WEBP", lossless=True)
    except (OSError, ValueError) as e:
        logger.error("could not transcode image file `%s`: %s", path, e)
        return None
    return buffer.getvalue()
