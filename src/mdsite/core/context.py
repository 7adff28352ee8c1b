"""Per-post state shared between the document builder and the stages"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import unquote

from mdsite.config import Settings
from mdsite.core.assets import AssetStore
from mdsite.core.models import PostMeta


logger = logging.getLogger(__name__)


@dataclass
class PostContext:
    """Identity of the post being built plus the state its stages may write.

    `meta` is written by the metadata stage only; `assets` is the build-wide
    store and outlives the post.
    """
    file:     Path
    assets:   AssetStore
    dir:      Optional[Path] = None
    settings: Settings = field(default_factory=Settings)
    meta:     Optional[PostMeta] = None

    @property
    def name(self) -> str:
        """Post identifier: directory name for index.md posts, else the file stem."""
        if self.dir is not None:
            return self.dir.name or "unnamed-post"
        name = self.file.name
        return (name[:-len(".md")] if name.endswith(".md") else name) or "unnamed-post"

    def resolve_file(self, path: str) -> Optional[Path]:
        """Resolve a relative reference against the post directory; None if not an existing file."""
        if self.dir is None:
            return None
        candidate = self.dir / unquote(path)
        return candidate if candidate.is_file() else None

    def default_title(self) -> str:
        logger.warning("post does not have a title, using file/directory name")
        return self.name

    def default_date(self) -> datetime:
        logger.warning("post does not have a date, using the file creation time")
        try:
            st = self.file.stat()
        except OSError as e:
            logger.error("could not get file creation time: %s", e)
            return datetime.fromtimestamp(0, timezone.utc)
        created = getattr(st, "st_birthtime", st.st_ctime)
        return datetime.fromtimestamp(created).astimezone()

    def default_metadata(self) -> PostMeta:
        meta = PostMeta(title=self.default_title(), date=self.default_date())
        logger.warning("post does not have metadata, using defaults:%s", meta.describe())
        return meta
