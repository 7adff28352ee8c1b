"""Content-addressed asset store shared by every post in a build"""

import logging
from pathlib import Path
from typing import Iterator

from mdsite.core.utils.hashing import short_digest


logger = logging.getLogger(__name__)


class AssetStore:
    """Deduplicating byte-blob store keyed by content hash.

    The first write for a hash fixes the stored bytes and extension; later
    writes of the same content return the same path and change nothing.
    """

    def __init__(self, prefix: str = "assets"):
        self.prefix = prefix.strip("/")
        self._assets: dict[str, tuple[bytes, str]] = {}

    def asset_path(self, digest: str, ext: str) -> str:
        """Return the site-relative path for an asset, e.g. assets/<hash>.webp."""
        return f"{self.prefix}/{digest}.{ext}"

    def store(self, data: bytes, ext: str) -> str:
        """Insert data if absent and return its deterministic site-relative path."""
        digest = short_digest(data)
        if digest not in self._assets:
            self._assets[digest] = (data, ext)
        return self.asset_path(digest, self._assets[digest][1])

    def __len__(self) -> int:
        return len(self._assets)

    def __iter__(self) -> Iterator[tuple[str, bytes]]:
        for digest, (data, ext) in self._assets.items():
            yield self.asset_path(digest, ext), data

    def write(self, out_dir: Path) -> list[Path]:
        """Flush every asset under out_dir. Write errors are logged and skipped."""
        written = []
        for rel, data in self:
            target = out_dir / rel
            logger.info("writing asset `%s`", rel)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            except OSError as e:
                logger.error("could not write asset `%s`: %s", target, e)
                continue
            written.append(target)
        return written
