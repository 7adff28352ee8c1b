"""SHA-256 content hashing for asset addressing, SVG id prefixes and ETags"""

import hashlib


def short_digest(data: bytes, width: int = 16) -> str:
    """Return the first `width` hex digits of the SHA-256 of data (16 = 64 bits)."""
    return hashlib.sha256(data).hexdigest()[:width]
