"""Front matter parsing into PostMeta"""

import logging
from typing import Optional

import yaml
from pydantic import ValidationError

from mdsite.core.context import PostContext
from mdsite.core.models import PostMeta, PostMetaIncomplete


logger = logging.getLogger(__name__)


def parse_metadata(source: str, post: PostContext) -> Optional[PostMeta]:
    """Parse a YAML metadata block, filling missing title/date from the post's defaults.

    Returns None on a YAML error, a non-mapping document or a schema error.
    """
    try:
        data = yaml.safe_load(source) or {}
    except yaml.YAMLError as e:
        logger.error("could not parse metadata: %s", e)
        return None
    if not isinstance(data, dict):
        logger.error("could not parse metadata: expected a mapping, got %s", type(data).__name__)
        return None

    try:
        raw = PostMetaIncomplete.model_validate(data)
    except ValidationError as e:
        logger.error("could not parse metadata: %s", e)
        return None

    meta = PostMeta(
        title=raw.title if raw.title is not None else post.default_title(),
        date=raw.date if raw.date is not None else post.default_date(),
        tags=raw.tags or [],
        ghcomment=raw.ghcomment(),
    )
    logger.info("got post metadata:%s", meta.describe())
    return meta
