"""Post and metadata models shared by the pipeline and the templates"""

from datetime import date, datetime, time, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def _aware(value: Any) -> Any:
    """Promote date-only values to midnight and offset-less values to UTC."""
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class GhComment(BaseModel):
    """Reference to an external comment thread."""
    id:      int = Field(ge=0)
    authors: list[str]


class PostMeta(BaseModel):
    title:     str
    date:      datetime
    tags:      list[str] = Field(default_factory=list)
    ghcomment: Optional[GhComment] = None

    def describe(self) -> str:
        return (
            f"\n    title = {self.title!r},\n    date = {self.date.isoformat()},"
            f"\n    tags = {self.tags!r}\n    ghcomment = {self.ghcomment!r}"
        )


class PostMetaIncomplete(BaseModel):
    """Metadata block as written by the author; every field optional, unknown keys ignored."""
    title:            Optional[str] = None
    date:             Optional[datetime] = None
    tags:             Optional[list[str]] = None
    ghcommentid:      Optional[int] = Field(default=None, ge=0)
    ghcommentauthors: Optional[list[str]] = None

    @field_validator("date", mode="before")
    @classmethod
    def _date_to_datetime(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return _aware(value)

    @field_validator("date", mode="after")
    @classmethod
    def _ensure_offset(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _aware(value)

    def ghcomment(self) -> Optional[GhComment]:
        """Comment reference, present only when both id and authors are given."""
        if self.ghcommentid is None or self.ghcommentauthors is None:
            return None
        return GhComment(id=self.ghcommentid, authors=self.ghcommentauthors)


class Post(BaseModel):
    """A rendered post as handed to the templates."""
    id:     str
    age:    int                     # seconds since the epoch, from meta.date
    source: str                     # rendered HTML body
    meta:   PostMeta
