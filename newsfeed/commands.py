"""
Operational commands: the batch jobs a scheduler runs against the store.

Each command returns a CommandResult on completion and raises
ConfigurationError or PreconditionError when it cannot run. The CLI maps those
to exit codes and the API maps them to HTTP status codes.
"""
import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from newsfeed.classifier import NaiveBayesClassifier
from newsfeed.config import CLASSIFICATIONS, INITIAL_TRAINING_PATH, get_rss_feeds
from newsfeed.exceptions import ConfigurationError
from newsfeed.fetcher import fetch_feeds
from newsfeed.models import Article, Stopword, utcnow
from newsfeed.processor import ArticleProcessor
from newsfeed.schemas import LabeledDocument

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    message: str
    affected: int
    details: dict[str, int] = field(default_factory=dict)


def validate_classification(classification: str) -> str:
    if classification not in CLASSIFICATIONS:
        raise ConfigurationError(f"Invalid classification: {classification}")
    return classification


def fetch_articles(db: Session, classifier: NaiveBayesClassifier, feeds: Optional[Iterable[str]] = None, fetch=None) -> CommandResult:
    """Fetch and process every configured RSS feed."""
    feeds = list(get_rss_feeds() if feeds is None else feeds)
    if not feeds:
        raise ConfigurationError("No RSS feeds configured. Set NEWSFEED_RSS_FEEDS or edit newsfeed/config.py")

    processor = ArticleProcessor(db, classifier, fetch=fetch or fetch_feeds)
    stats = processor.process_feeds(feeds)
    return CommandResult(
        message=(
            f"Processing complete! Fetched: {stats.fetched}, Classified: {stats.classified}, "
            f"Stored: {stats.stored}, Skipped: {stats.skipped}"
        ),
        affected=stats.stored,
        details=stats.model_dump(),
    )


def generate_summaries(db: Session, classifier: NaiveBayesClassifier, summarizer, classification: Optional[str] = None) -> CommandResult:
    """Generate summaries and keywords for every classification, or just one."""
    classifications = [validate_classification(classification)] if classification else list(CLASSIFICATIONS)

    processor = ArticleProcessor(db, classifier)
    details = {}
    for label in classifications:
        logger.info(f"Processing {label}...")
        success = processor.generate_summary_for_classification(label, summarizer)
        details[label] = int(success)
        if success:
            logger.info(f"Summary generated for {label}")
        else:
            logger.warning(f"Failed to generate summary for {label}")

    succeeded = sum(details.values())
    return CommandResult(
        message=f"Summary generation complete! ({succeeded}/{len(classifications)} successful)",
        affected=succeeded,
        details=details,
    )


def rebalance_classifier(db: Session, classifier: NaiveBayesClassifier, rng=None) -> CommandResult:
    """
    Retrain the classifier on stored articles, downsampled to the smallest class.

    Raises:
        PreconditionError: if any classification has no stored articles
    """
    distribution = {c: 0 for c in CLASSIFICATIONS}
    documents = []
    for title, content, label in db.query(Article.title, Article.content, Article.classification).all():
        if label in distribution:
            distribution[label] += 1
            documents.append(LabeledDocument(title=title, content=content or "", classification=label))

    logger.info("Current class distribution: " + ", ".join(f"{c}: {n}" for c, n in distribution.items()))

    min_size = classifier.retrain_with_balanced_data(documents, rng=rng)
    return CommandResult(
        message=f"Classifier rebalanced successfully! Each class now has {min_size} training samples.",
        affected=min_size * len(CLASSIFICATIONS),
        details=dict(classifier.brain.class_counts),
    )


def update_classifier(db: Session, classifier: NaiveBayesClassifier) -> CommandResult:
    """Feed every stored keyword into the classifier."""
    pairs = [(word, label) for word, label in db.query(Stopword.word, Stopword.classification).all()]
    if not pairs:
        logger.warning("No stopwords found in database.")
        return CommandResult(message="No stopwords found in database.", affected=0)

    applied = classifier.update_from_stopwords(pairs)
    return CommandResult(message=f"Updated classifier with {applied} stopwords.", affected=applied)


def import_initial_training(classifier: NaiveBayesClassifier, file: Optional[str] = None) -> CommandResult:
    """
    Replace the classifier brain with an initial-training corpus.

    The file is also copied to the configured initial-training location so a
    later rebuild of a deleted brain starts from the same corpus.
    """
    path = Path(file or INITIAL_TRAINING_PATH)
    if not path.exists():
        raise ConfigurationError(f"Training file not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        brain = classifier.import_initial_training(data)
    except (ValueError, TypeError, AttributeError) as e:
        raise ConfigurationError(f"Training file is not a valid initial-training document: {path} ({e})") from e

    target = classifier.store.initial_training_path
    if target and target.resolve() != path.resolve():
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(path, target)

    details = {c: brain.class_counts.get(c, 0) for c in CLASSIFICATIONS}
    for label in CLASSIFICATIONS:
        logger.info(f"  {label}: {details[label]} documents, {len(brain.word_counts.get(label, {}))} unique words")
    return CommandResult(
        message=f"Training data imported successfully! Total documents: {brain.total_documents}, vocabulary size: {len(brain.vocabulary)}",
        affected=brain.total_documents,
        details=details,
    )


def cleanup_articles(db: Session) -> CommandResult:
    """Delete articles whose expiry has passed, along with the keywords that point at them."""
    expired = db.query(Article).filter(Article.expires_at <= utcnow()).all()
    for article in expired:
        db.delete(article)
    db.commit()
    return CommandResult(message=f"Deleted {len(expired)} expired articles.", affected=len(expired))


def add_stopwords(db: Session, pairs: Iterable[tuple[str, str]]) -> CommandResult:
    """Store administrator-supplied keywords, skipping pairs that already exist."""
    pairs = list(pairs)
    for _, label in pairs:
        validate_classification(label)

    added = 0
    for word, label in pairs:
        word = word.strip().lower()
        if not word:
            continue
        exists = db.query(Stopword.id).filter(Stopword.word == word, Stopword.classification == label).first()
        if exists:
            continue
        db.add(Stopword(word=word, classification=label))
        db.flush()
        added += 1
    db.commit()
    return CommandResult(message=f"Stored {added} new stopwords.", affected=added)
