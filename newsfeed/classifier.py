import logging
import math
import random
from collections import Counter
from typing import Iterable, Optional

from newsfeed.brain import Brain, ModelStore, brain_from_initial_training
from newsfeed.config import (
    BRAIN_PATH,
    CLASSIFICATIONS,
    CONFIDENCE_MARGIN,
    CONFIDENCE_THRESHOLD,
    DEGENERATE_SCORE,
    INITIAL_TRAINING_PATH,
    SCORE_EPSILON,
    VOCABULARY_MIN_FREQUENCY,
)
from newsfeed.exceptions import PreconditionError
from newsfeed.schemas import LabeledDocument
from newsfeed.tokenizer import tokenize, tokenize_all

logger = logging.getLogger(__name__)


def compute_class_weights(class_counts: dict[str, int]) -> dict[str, float]:
    """
    Inverse-frequency weight per class: max_count / count.

    Empty classes get 1.0, and every class gets 1.0 when nothing has been
    trained yet. The weights only scale the prior term of the score.
    """
    max_count = max((class_counts.get(c, 0) for c in CLASSIFICATIONS), default=0)
    if max_count <= 0:
        return {c: 1.0 for c in CLASSIFICATIONS}

    weights = {}
    for classification in CLASSIFICATIONS:
        count = class_counts.get(classification, 0)
        weights[classification] = max_count / count if count > 0 else 1.0
    return weights


def softmax(scores: dict[str, float]) -> dict[str, float]:
    """Turn log-scores into probabilities. Shifted by the max score so exp() cannot underflow to all zeros."""
    if not scores:
        return {}
    top = max(scores.values())
    exps = {label: math.exp(score - top) for label, score in scores.items()}
    total = sum(exps.values())
    if total <= 0:
        return {label: 0.0 for label in scores}
    return {label: value / total for label, value in exps.items()}


class NaiveBayesClassifier:
    """
    TF-IDF weighted Naive Bayes over the five fixed classifications.

    All state lives in a ModelStore. Classification is a pure read; every
    training path mutates the brain inside a store transaction, refreshes the
    class weights and writes the brain back before returning.
    """

    def __init__(
        self,
        store: Optional[ModelStore] = None,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        margin: float = CONFIDENCE_MARGIN,
        min_vocabulary_frequency: int = VOCABULARY_MIN_FREQUENCY,
    ):
        self.store = store or ModelStore(BRAIN_PATH, INITIAL_TRAINING_PATH)
        self.confidence_threshold = confidence_threshold
        self.margin = margin
        self.min_vocabulary_frequency = min_vocabulary_frequency
        self._class_weights: Optional[dict[str, float]] = None  # computed on first use

    @property
    def brain(self) -> Brain:
        return self.store.brain

    @property
    def class_weights(self) -> dict[str, float]:
        if self._class_weights is None:
            self.refresh_class_weights()
        return self._class_weights

    def refresh_class_weights(self) -> dict[str, float]:
        self._class_weights = compute_class_weights(self.brain.class_counts)
        return self._class_weights

    # -----------------------------------------------------------------------
    # Scoring
    # -----------------------------------------------------------------------

    def _score(self, brain: Brain, words: list[str], classification: str, doc_frequency: dict[str, int]) -> float:
        """Log-score of `words` under one class: weighted prior plus TF-IDF likelihood."""
        class_word_counts = brain.word_counts.get(classification)
        if class_word_counts is None:
            return DEGENERATE_SCORE

        class_total_words = sum(class_word_counts.values())
        vocabulary_size = len(brain.vocabulary)
        if class_total_words == 0 and vocabulary_size == 0:
            return DEGENERATE_SCORE

        class_count = brain.class_counts.get(classification, 0)
        total_docs = brain.total_documents
        prior = math.log((class_count + 1) / (total_docs + len(CLASSIFICATIONS)))
        prior *= self.class_weights.get(classification, 1.0)

        denominator = (class_total_words + vocabulary_size) or 1
        likelihood = 0.0
        for word in words:
            tf = (class_word_counts.get(word, 0) + 1) / denominator
            idf = math.log((total_docs + 1) / (doc_frequency[word] + 1)) + 1
            likelihood += math.log(tf * idf + SCORE_EPSILON)

        return prior + likelihood

    def _probabilities(self, words: list[str]) -> dict[str, float]:
        with self.store.reading() as brain:
            # Document frequency here counts classes, not documents
            doc_frequency = {
                word: sum(1 for c in CLASSIFICATIONS if brain.word_counts.get(c, {}).get(word, 0) > 0)
                for word in words
            }
            scores = {c: self._score(brain, words, c, doc_frequency) for c in CLASSIFICATIONS}
        return softmax(scores)

    def confidence_scores(self, title: str, content: str) -> dict[str, float]:
        """Probability of every classification, highest first, with no thresholding."""
        words = tokenize(f"{title} {content}")
        if not words:
            return {c: 0.0 for c in CLASSIFICATIONS}
        probabilities = self._probabilities(words)
        return dict(sorted(probabilities.items(), key=lambda item: item[1], reverse=True))

    def classify(self, title: str, content: str) -> Optional[str]:
        """
        Classify an article into one of the classifications.

        Returns:
            the winning label, or None when the text has no tokens, the top
            probability does not exceed the confidence threshold, or the top
            two classes are closer than the margin
        """
        words = tokenize(f"{title} {content}")
        if not words:
            return None

        ranked = sorted(self._probabilities(words).items(), key=lambda item: item[1], reverse=True)
        top_label, top_probability = ranked[0]
        runner_up = ranked[1][1] if len(ranked) > 1 else 0.0

        if top_probability > self.confidence_threshold and (top_probability - runner_up) >= self.margin:
            return top_label
        return None

    # -----------------------------------------------------------------------
    # Training
    # -----------------------------------------------------------------------

    def _accumulate(self, brain: Brain, title: str, content: str, classification: str) -> None:
        """Add one labeled document to the counts. Caller holds the transaction."""
        frequencies = Counter(tokenize_all(f"{title} {content}"))

        brain.class_counts[classification] = brain.class_counts.get(classification, 0) + 1
        brain.total_documents += 1

        class_word_counts = brain.word_counts.setdefault(classification, {})
        for word, count in frequencies.items():
            brain.vocabulary_frequency[word] = brain.vocabulary_frequency.get(word, 0) + count
            class_word_counts[word] = class_word_counts.get(word, 0) + count
            if brain.vocabulary_frequency[word] >= self.min_vocabulary_frequency:
                brain.vocabulary.add(word)

    def train(self, title: str, content: str, classification: str) -> None:
        """Online update from a single labeled document. Unknown labels are ignored."""
        if classification not in CLASSIFICATIONS:
            logger.warning(f"Ignoring training document with unknown classification '{classification}'")
            return

        with self.store.transaction() as brain:
            self._accumulate(brain, title, content, classification)
            self.refresh_class_weights()

    def retrain_with_balanced_data(self, documents: Iterable[LabeledDocument], rng: Optional[random.Random] = None) -> int:
        """
        Rebuild the brain from a class-balanced sample of `documents`.

        Documents are grouped by classification, every class is downsampled at
        random to the size of the smallest class, and the brain is retrained
        from scratch on exactly that subset.

        Returns:
            the number of documents trained per class

        Raises:
            PreconditionError: if any classification has no documents; the brain is left untouched
        """
        rng = rng or random.Random()

        grouped: dict[str, list[LabeledDocument]] = {c: [] for c in CLASSIFICATIONS}
        for document in documents:
            if document.classification in grouped:
                grouped[document.classification].append(document)

        empty = [c for c, items in grouped.items() if not items]
        if empty:
            raise PreconditionError(f"Cannot rebalance: no documents for {', '.join(empty)}")

        min_size = min(len(items) for items in grouped.values())

        with self.store.transaction() as brain:
            fresh = Brain()
            for classification, items in grouped.items():
                for document in rng.sample(items, min_size):
                    self._accumulate(fresh, document.title, document.content, classification)
            brain.vocabulary = fresh.vocabulary
            brain.vocabulary_frequency = fresh.vocabulary_frequency
            brain.class_counts = fresh.class_counts
            brain.word_counts = fresh.word_counts
            brain.total_documents = fresh.total_documents
            self.refresh_class_weights()

        logger.info(f"Retrained classifier with balanced data. Each class has {min_size} samples.")
        return min_size

    def learn_from_correction(self, title: str, content: str, correct_classification: str) -> Optional[str]:
        """
        Train on a corrected label and weaken the label the classifier predicted.

        The forget step is approximate: only the document counts of the wrongly
        predicted class are decremented, and only while it still has documents;
        its word counts stay.

        Returns:
            the label that was predicted before the correction, if any
        """
        if correct_classification not in CLASSIFICATIONS:
            logger.warning(f"Ignoring correction to unknown classification '{correct_classification}'")
            return None

        with self.store.transaction() as brain:
            predicted = self.classify(title, content)
            self._accumulate(brain, title, content, correct_classification)

            if predicted and predicted != correct_classification:
                # A class with no documents has nothing to give back
                if brain.class_counts.get(predicted, 0) > 0:
                    brain.class_counts[predicted] -= 1
                    brain.total_documents = max(0, brain.total_documents - 1)
                logger.info(f"Correction: '{title[:60]}' moved from {predicted} to {correct_classification}")

            self.refresh_class_weights()

        return predicted

    def update_from_stopwords(self, stopwords: Iterable[tuple[str, str]]) -> int:
        """
        Inject (word, classification) keywords straight into the brain.

        Each known pair adds the word to the vocabulary and bumps its class
        word count by one. No tokenization and no document counting.

        Returns:
            the number of pairs applied
        """
        applied = 0
        with self.store.transaction() as brain:
            for word, classification in stopwords:
                if classification not in CLASSIFICATIONS:
                    continue
                word = word.lower()
                brain.vocabulary.add(word)
                class_word_counts = brain.word_counts.setdefault(classification, {})
                class_word_counts[word] = class_word_counts.get(word, 0) + 1
                applied += 1
            self.refresh_class_weights()
        return applied

    def import_initial_training(self, data: dict) -> Brain:
        """
        Replace the brain with an initial-training corpus.

        Raises:
            ValueError: if `data` is not an initial-training document
        """
        brain = self.store.replace(brain_from_initial_training(data))
        self.refresh_class_weights()
        logger.info(f"Imported initial training data: {brain.total_documents} documents, {len(brain.vocabulary)} words")
        return brain


# Shared singleton, imported by the CLI and the API routes
classifier = NaiveBayesClassifier()
