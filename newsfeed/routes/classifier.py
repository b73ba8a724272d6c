import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from newsfeed import commands
from newsfeed.classifier import classifier
from newsfeed.config import CLASSIFICATIONS
from newsfeed.database import get_db
from newsfeed.routes.errors import command_errors
from newsfeed.schemas import (
    BrainStats,
    ClassifyRequest,
    ClassifyResponse,
    CommandResponse,
    CorrectionRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/classify", response_model=ClassifyResponse)
def classify(request: ClassifyRequest):
    """Diagnostic: the label the classifier would assign plus the full probability distribution."""
    return ClassifyResponse(
        classification=classifier.classify(request.title, request.content),
        scores=classifier.confidence_scores(request.title, request.content),
    )


@router.post("/classifier/corrections", response_model=CommandResponse)
def correct(request: CorrectionRequest):
    """Teach the classifier the right label for an article it got wrong."""
    with command_errors():
        commands.validate_classification(request.classification)
    predicted = classifier.learn_from_correction(request.title, request.content, request.classification)
    logger.info(f"[/classifier/corrections] predicted={predicted} corrected={request.classification}")
    return CommandResponse(
        message=f"Learned {request.classification} (previously predicted: {predicted or 'none'})",
        affected=1,
    )


@router.post("/classifier/rebalance", response_model=CommandResponse)
def rebalance(db: Session = Depends(get_db)):
    """Retrain on a class-balanced sample of stored articles."""
    with command_errors():
        result = commands.rebalance_classifier(db, classifier)
    logger.info(f"[/classifier/rebalance] {result.message}")
    return CommandResponse(message=result.message, affected=result.affected, details=result.details)


@router.post("/classifier/update", response_model=CommandResponse)
def update(db: Session = Depends(get_db)):
    """Feed stored keywords into the classifier."""
    result = commands.update_classifier(db, classifier)
    logger.info(f"[/classifier/update] {result.message}")
    return CommandResponse(message=result.message, affected=result.affected)


@router.get("/classifier/stats", response_model=BrainStats)
def stats():
    """Current size of the classifier brain."""
    with classifier.store.reading() as brain:
        return BrainStats(
            total_documents=brain.total_documents,
            vocabulary_size=len(brain.vocabulary),
            class_counts={c: brain.class_counts.get(c, 0) for c in CLASSIFICATIONS},
            class_weights=classifier.class_weights,
            unique_words={c: len(brain.word_counts.get(c, {})) for c in CLASSIFICATIONS},
        )
