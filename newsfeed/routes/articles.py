import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from newsfeed import commands
from newsfeed.classifier import classifier
from newsfeed.database import get_db
from newsfeed.models import Article, utcnow
from newsfeed.routes.errors import command_errors
from newsfeed.schemas import ArticleResponse, CommandResponse, StopwordIn
from newsfeed.summarizer import DeepSeekService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_summarizer():
    """FastAPI dependency providing the summarization service."""
    with command_errors():
        return DeepSeekService()


def _response(result: commands.CommandResult) -> CommandResponse:
    return CommandResponse(message=result.message, affected=result.affected, details=result.details)


@router.post("/fetch", response_model=CommandResponse)
def trigger_fetch(db: Session = Depends(get_db)):
    """Fetch, classify and store articles from every configured RSS feed. Blocks until complete."""
    with command_errors():
        result = commands.fetch_articles(db, classifier)
    logger.info(f"[/fetch] {result.message}")
    return _response(result)


@router.post("/summaries", response_model=CommandResponse)
def trigger_summaries(
    classification: Optional[str] = None,
    db: Session = Depends(get_db),
    summarizer=Depends(get_summarizer),
):
    """Generate summaries and keywords, for one classification or all of them."""
    with command_errors():
        result = commands.generate_summaries(db, classifier, summarizer, classification)
    logger.info(f"[/summaries] {result.message}")
    return _response(result)


@router.post("/cleanup", response_model=CommandResponse)
def trigger_cleanup(db: Session = Depends(get_db)):
    """Delete expired articles."""
    result = commands.cleanup_articles(db)
    logger.info(f"[/cleanup] {result.message}")
    return _response(result)


@router.post("/stopwords", response_model=CommandResponse)
def add_stopwords(stopwords: list[StopwordIn], db: Session = Depends(get_db)):
    """Store administrator-supplied keywords for later classifier updates."""
    with command_errors():
        result = commands.add_stopwords(db, [(s.word, s.classification) for s in stopwords])
    logger.info(f"[/stopwords] {result.message}")
    return _response(result)


@router.get("/articles", response_model=list[ArticleResponse])
def list_articles(classification: Optional[str] = None, db: Session = Depends(get_db)):
    """
    Return active (unexpired) articles, newest first.
    Optionally restricted to one classification.
    """
    query = db.query(Article).filter(Article.expires_at > utcnow())
    if classification:
        with command_errors():
            commands.validate_classification(classification)
        query = query.filter(Article.classification == classification)
    articles = query.order_by(Article.created_at.desc(), Article.id.desc()).all()
    logger.info(f"[/articles] Returning {len(articles)} articles")
    return articles
