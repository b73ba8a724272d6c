import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from newsfeed.classifier import NaiveBayesClassifier
from newsfeed.config import ARTICLE_TTL_HOURS, SUMMARY_ARTICLE_LIMIT
from newsfeed.fetcher import fetch_feeds
from newsfeed.models import Article, Stopword, utcnow
from newsfeed.schemas import FeedArticle, ProcessStats

logger = logging.getLogger(__name__)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to naive UTC, the form stored in the database."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _newest_first(article: FeedArticle) -> tuple[bool, datetime]:
    # Undated entries sort last
    published_at = to_naive_utc(article.published_at)
    return published_at is not None, published_at or datetime.min


class ArticleProcessor:
    """
    Runs the ingestion pipeline: fetch → dedup → classify → store → train.

    db: active SQLAlchemy session
    classifier: the NaiveBayesClassifier that labels and learns from new articles
    fetch: callable returning FeedArticles for a list of feed URLs (fetch_feeds by default)
    """

    def __init__(self, db: Session, classifier: NaiveBayesClassifier, fetch=fetch_feeds):
        self.db = db
        self.classifier = classifier
        self.fetch = fetch

    # -----------------------------------------------------------------------
    # Ingestion
    # -----------------------------------------------------------------------

    def process_feeds(self, feeds: Iterable[str]) -> ProcessStats:
        """
        Fetch every feed and store the newly classified articles.

        Articles are grouped by source and each group is sorted newest first,
        undated entries last, whatever feed they came from. Once a source
        yields an article that is older than, or identical to, what is already
        stored, the rest of that source is skipped without further lookups.
        """
        stats = ProcessStats()
        articles = self.fetch(list(feeds))
        stats.fetched = len(articles)

        by_source: dict[str, list[FeedArticle]] = {}
        for article in articles:
            by_source.setdefault(article.source or "Unknown", []).append(article)

        for source, source_articles in by_source.items():
            source_articles.sort(key=_newest_first, reverse=True)
            self._process_source(source, source_articles, stats)

        logger.info(
            f"Feed processing complete: fetched={stats.fetched} classified={stats.classified} "
            f"stored={stats.stored} skipped={stats.skipped}"
        )
        return stats

    def _latest_published(self, source: str) -> Optional[datetime]:
        return (
            self.db.query(func.max(Article.published_at))
            .filter(Article.source == source, Article.published_at.isnot(None))
            .scalar()
        )

    def _process_source(self, source: str, articles: list[FeedArticle], stats: ProcessStats) -> None:
        latest_existing = self._latest_published(source)
        stop_processing = False

        for article in articles:
            if stop_processing:
                stats.skipped += 1
                continue

            try:
                published_at = to_naive_utc(article.published_at)

                # Older than anything stored for this source: nothing further down is new either
                if published_at and latest_existing and published_at < latest_existing:
                    stats.skipped += 1
                    stop_processing = True
                    continue

                if self.db.query(Article.id).filter(Article.link == article.link).first():
                    stats.skipped += 1
                    if published_at and latest_existing and published_at <= latest_existing:
                        stop_processing = True
                    continue

                if published_at and self.db.query(Article.id).filter(
                    Article.source == source, Article.published_at == published_at
                ).first():
                    stats.skipped += 1
                    if latest_existing and published_at <= latest_existing:
                        stop_processing = True
                    continue

                classification = self.classifier.classify(article.title, article.content)
                if not classification:
                    stats.skipped += 1
                    continue
                stats.classified += 1

                now = utcnow()
                self.db.add(Article(
                    title=article.title,
                    content=article.content,
                    link=article.link,
                    classification=classification,
                    image_url=article.image_url,
                    source_feed=article.source_feed,
                    source=source,
                    published_at=published_at,
                    expires_at=now + timedelta(hours=ARTICLE_TTL_HOURS),
                    created_at=now,
                ))
                # Stored only once the classifier has learned from it
                self.db.flush()
                self.classifier.train(article.title, article.content, classification)
                self.db.commit()
                stats.stored += 1
                logger.info(f"[{source}] [{classification}] '{article.title[:60]}'")

            except Exception as e:
                self.db.rollback()
                logger.error(f"[{source}] Error processing article '{article.title[:60]}': {e}")
                stats.skipped += 1

    # -----------------------------------------------------------------------
    # Summaries and keywords
    # -----------------------------------------------------------------------

    def generate_summary_for_classification(self, classification: str, summarizer) -> bool:
        """
        Summarize the most recent active articles of one classification and
        store the keywords extracted from them.

        The summary, when the service returns one, is written to every article
        in the batch. Keywords already known for the classification are not
        stored twice.

        Returns:
            True if the batch ran, False if there were no articles or it failed
        """
        try:
            articles = (
                self.db.query(Article)
                .filter(Article.classification == classification, Article.expires_at > utcnow())
                .order_by(Article.created_at.desc(), Article.id.desc())
                .limit(SUMMARY_ARTICLE_LIMIT)
                .all()
            )
            if not articles:
                logger.info(f"No articles found for classification: {classification}")
                return False

            article_data = [{"title": a.title, "content": a.content} for a in articles]

            summary = summarizer.generate_summary(article_data, classification)
            if summary:
                for article in articles:
                    article.summary = summary
                self.db.commit()
            else:
                logger.warning(f"[{classification}] No summary returned, keeping existing summaries")

            added = 0
            for word in summarizer.extract_keywords(article_data, classification):
                exists = (
                    self.db.query(Stopword.id)
                    .filter(Stopword.word == word, Stopword.classification == classification)
                    .first()
                )
                if exists:
                    continue
                self.db.add(Stopword(word=word, classification=classification, source_article_id=articles[0].id))
                self.db.flush()
                added += 1
            self.db.commit()

            logger.info(f"[{classification}] Summarized {len(articles)} articles, stored {added} new keywords")
            return True

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error generating summary for {classification}: {e}")
            return False
