from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ted_catalog.errors import StoreInconsistency


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ----- Parsed from the talk page -----

class StreamDescriptor(BaseModel):
    hls_url: Optional[str] = None
    mp4_url: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.hls_url or self.mp4_url)


class TalkMetadata(BaseModel):
    thumbnail: Optional[str] = None
    duration: Optional[str] = None      # ISO-8601, e.g. PT12M34S
    published_at: Optional[str] = None
    presenter: Optional[str] = None


class LanguageBundle(BaseModel):
    video_id: Optional[int] = None
    language_code: str
    title: str
    author: str = ""
    description: str = ""
    transcript: str = ""


# ----- Stored records -----

class Talk(BaseModel):
    video_id: Optional[int] = None
    talk_id: str
    stream: StreamDescriptor = Field(default_factory=StreamDescriptor)
    thumbnail: Optional[str] = None
    duration: Optional[str] = None
    published_at: Optional[str] = None
    timing: Dict[str, Any] = Field(default_factory=dict)


class CatalogEntry(BaseModel):
    user_id: str
    video_id: int
    is_favorite: bool = False
    created_at: datetime = Field(default_factory=utcnow)


# ----- Returned to the HTTP layer -----

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VideoSummary(CamelModel):
    video_id: int
    title: str
    author: str = ""
    thumbnail: Optional[str] = None
    duration: Optional[str] = None


class CatalogRow(VideoSummary):
    is_favorite: bool = False


class SkippedRow(CamelModel):
    video_id: int
    code: str = StoreInconsistency.code


class CatalogPage(CamelModel):
    items: List[CatalogRow] = Field(default_factory=list, alias="list")
    total_count: int = 0
    total_page: int = 0
    current_page: int = 1
    skipped: List[SkippedRow] = Field(default_factory=list)
