from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FeedArticle(BaseModel):
    """One parsed RSS entry, before deduplication and classification."""
    title: str
    content: str = ""
    link: str
    image_url: Optional[str] = None
    source_feed: str
    source: str
    published_at: Optional[datetime] = None


class LabeledDocument(BaseModel):
    """A training document with its known classification."""
    title: str
    content: str = ""
    classification: str


class ArticleResponse(BaseModel):
    """Shape returned by the /articles endpoint."""
    id: int
    title: str
    content: str
    link: str
    classification: str
    image_url: Optional[str] = None
    source: str
    published_at: Optional[datetime] = None
    summary: Optional[str] = None
    expires_at: datetime

    # Allows Pydantic to read data directly from SQLAlchemy model instances
    model_config = ConfigDict(from_attributes=True)


class ClassifyRequest(BaseModel):
    title: str
    content: str = ""


class ClassifyResponse(BaseModel):
    classification: Optional[str] = None
    scores: dict[str, float]


class CorrectionRequest(BaseModel):
    title: str
    content: str = ""
    classification: str


class StopwordIn(BaseModel):
    word: str = Field(min_length=1)
    classification: str


class CommandResponse(BaseModel):
    status: str = "ok"
    message: str
    affected: int
    details: dict[str, int] = Field(default_factory=dict)


class BrainStats(BaseModel):
    total_documents: int
    vocabulary_size: int
    class_counts: dict[str, int]
    class_weights: dict[str, float]
    unique_words: dict[str, int]


class ProcessStats(BaseModel):
    fetched: int = 0
    classified: int = 0
    stored: int = 0
    skipped: int = 0
