from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from newsfeed.config import ARTICLE_TTL_HOURS
from newsfeed.database import Base


def utcnow() -> datetime:
    """Naive UTC now. All timestamps are stored as naive UTC so SQLite comparisons line up."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def default_expiry() -> datetime:
    return utcnow() + timedelta(hours=ARTICLE_TTL_HOURS)


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False, default="")  # HTML already stripped
    link = Column(String, nullable=False, unique=True)  # primary dedup key
    classification = Column(String, nullable=False, index=True)
    image_url = Column(String, nullable=True)
    source_feed = Column(String, nullable=False)       # feed URL the article came from
    source = Column(String, nullable=False, index=True)  # display name, e.g. "NBC"
    published_at = Column(DateTime, nullable=True)     # UTC timestamp from the feed, if any
    summary = Column(Text, nullable=True)              # LLM summary shared by the classification
    expires_at = Column(DateTime, nullable=False, index=True, default=default_expiry)

    # --- Metadata ---
    created_at = Column(DateTime, nullable=False, index=True, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    stopwords = relationship(
        "Stopword",
        back_populates="article",
        cascade="all, delete-orphan",
    )


class Stopword(Base):
    """A discriminative keyword for one classification, fed back into the classifier."""
    __tablename__ = "stopwords"
    __table_args__ = (UniqueConstraint("word", "classification", name="uq_stopwords_word_classification"),)

    id = Column(Integer, primary_key=True)
    word = Column(String, nullable=False, index=True)
    classification = Column(String, nullable=False, index=True)
    source_article_id = Column(Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    article = relationship("Article", back_populates="stopwords")
