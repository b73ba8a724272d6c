import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Optional

from newsfeed.config import CLASSIFICATIONS

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


@dataclass
class Brain:
    """The classifier's whole learned state."""
    vocabulary: set[str] = field(default_factory=set)
    vocabulary_frequency: dict[str, int] = field(default_factory=dict)
    class_counts: dict[str, int] = field(default_factory=lambda: {c: 0 for c in CLASSIFICATIONS})
    word_counts: dict[str, dict[str, int]] = field(default_factory=lambda: {c: {} for c in CLASSIFICATIONS})
    total_documents: int = 0
    stop_words: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "vocabulary": sorted(self.vocabulary),
            "vocabulary_frequency": self.vocabulary_frequency,
            "class_counts": self.class_counts,
            "word_counts": self.word_counts,
            "total_documents": self.total_documents,
        }
        if self.stop_words is not None:
            data["stop_words"] = self.stop_words
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Brain":
        """Build a Brain from a document already in the current schema (see migrate_brain)."""
        return cls(
            vocabulary=set(data["vocabulary"]),
            vocabulary_frequency={w: int(n) for w, n in data["vocabulary_frequency"].items()},
            class_counts={c: int(n) for c, n in data["class_counts"].items()},
            word_counts={
                c: {w: int(n) for w, n in counts.items()}
                for c, counts in data["word_counts"].items()
            },
            total_documents=int(data["total_documents"]),
            stop_words=data.get("stop_words"),
        )


# ---------------------------------------------------------------------------
# Schema migration
# ---------------------------------------------------------------------------

def _vocabulary_from_word_counts(word_counts: dict[str, Any]) -> list[str]:
    words: set[str] = set()
    for counts in word_counts.values():
        if isinstance(counts, dict):
            words.update(counts.keys())
    return sorted(words)


def migrate_brain(raw: Any) -> tuple[dict[str, Any], bool]:
    """
    Upgrade a persisted brain document to the current schema.

    Legacy documents carry `vocabulary_size` instead of `vocabulary` and/or
    `category_counts` instead of `class_counts`. The vocabulary is rebuilt from
    the per-class word counts. Missing structures are filled in with empty
    values. Running this on its own output changes nothing.

    Returns:
        (document, changed): the upgraded document and whether it differs from the input

    Raises:
        ValueError: if the document is structurally unrecoverable
    """
    if not isinstance(raw, dict):
        raise ValueError(f"brain document must be an object, got {type(raw).__name__}")

    data = dict(raw)
    changed = False

    word_counts = data.get("word_counts", {})
    if not isinstance(word_counts, dict):
        raise ValueError("word_counts must be an object")

    if "vocabulary" not in data:
        data["vocabulary"] = _vocabulary_from_word_counts(word_counts)
        changed = True
    if "vocabulary_size" in data:
        del data["vocabulary_size"]
        changed = True
    if not isinstance(data["vocabulary"], list):
        raise ValueError("vocabulary must be a list")

    if "category_counts" in data:
        if "class_counts" not in data:
            data["class_counts"] = data["category_counts"]
        del data["category_counts"]
        changed = True

    class_counts = data.get("class_counts", {})
    if not isinstance(class_counts, dict):
        raise ValueError("class_counts must be an object")
    for classification in CLASSIFICATIONS:
        if classification not in class_counts:
            class_counts = {**class_counts, classification: 0}
            changed = True
        if classification not in word_counts or not isinstance(word_counts[classification], dict):
            word_counts = {**word_counts, classification: {}}
            changed = True
    data["class_counts"] = class_counts
    data["word_counts"] = word_counts

    if not isinstance(data.get("vocabulary_frequency"), dict):
        data["vocabulary_frequency"] = {}
        changed = True
    if "total_documents" not in data:
        data["total_documents"] = sum(int(n) for n in class_counts.values())
        changed = True
    if data.get("schema_version") != SCHEMA_VERSION:
        data["schema_version"] = SCHEMA_VERSION
        changed = True

    return data, changed


def brain_from_initial_training(data: Any) -> Brain:
    """
    Convert an initial-training document into a Brain.

    The document carries `total_documents`, `category_counts`, `word_counts`
    and optionally `stop_words`.

    Raises:
        ValueError: if the document is not an object
    """
    if not isinstance(data, dict) or not data:
        raise ValueError("initial training document must be a non-empty object")

    category_counts = data.get("category_counts") or {}
    word_counts = data.get("word_counts") or {}

    brain = Brain(
        class_counts={c: int(category_counts.get(c, 0)) for c in CLASSIFICATIONS},
        word_counts={c: {w: int(n) for w, n in (word_counts.get(c) or {}).items()} for c in CLASSIFICATIONS},
    )
    for counts in brain.word_counts.values():
        brain.vocabulary.update(counts.keys())
    brain.total_documents = int(data.get("total_documents", sum(brain.class_counts.values())))

    stop_words = data.get("stop_words")
    if isinstance(stop_words, list):
        brain.stop_words = [str(w).lower() for w in stop_words]
    return brain


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ModelStore:
    """
    Owns the on-disk brain and the single in-memory Brain instance.

    The brain is loaded on first access. Every read-modify-write must go
    through transaction(), which holds the store lock and writes the brain back
    before releasing it.
    """

    def __init__(self, path, initial_training_path=None):
        self.path = Path(path)
        self.initial_training_path = Path(initial_training_path) if initial_training_path else None
        self._brain: Optional[Brain] = None
        self._lock = threading.RLock()

    @property
    def brain(self) -> Brain:
        with self._lock:
            if self._brain is None:
                self._brain = self.load()
            return self._brain

    @contextmanager
    def transaction(self) -> Iterator[Brain]:
        """Yield the brain under the store lock and save it when the block exits cleanly."""
        with self._lock:
            brain = self.brain
            yield brain
            self.save()

    @contextmanager
    def reading(self) -> Iterator[Brain]:
        """Yield the brain under the store lock without saving."""
        with self._lock:
            yield self.brain

    def load(self) -> Brain:
        """
        Load the brain from disk, healing it if needed.

        Precedence: existing brain file (migrated to the current schema),
        then the initial training file, then an empty brain. Whatever is
        loaded is persisted in the current schema when it differs from disk.
        """
        with self._lock:
            if self.path.exists():
                self._brain = self._load_existing()
            elif self.initial_training_path and self.initial_training_path.exists():
                self._brain = self._load_initial_training()
            else:
                logger.info(f"[brain] No brain at {self.path}, starting empty")
                self._brain = Brain()
                self.save()
            return self._brain

    def _load_existing(self) -> Brain:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            data, changed = migrate_brain(raw)
            brain = Brain.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"[brain] Unreadable brain at {self.path}, resetting to empty: {e}")
            self._brain = Brain()
            self.save()
            return self._brain

        self._brain = brain
        if changed:
            logger.info(f"[brain] Migrated {self.path} to schema version {SCHEMA_VERSION}")
            self.save()
        return brain

    def _load_initial_training(self) -> Brain:
        try:
            data = json.loads(self.initial_training_path.read_text(encoding="utf-8"))
            self._brain = brain_from_initial_training(data)
            logger.info(f"[brain] Loaded initial training data from {self.initial_training_path}")
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[brain] Failed to parse initial training data: {e}")
            self._brain = Brain()
        self.save()
        return self._brain

    def replace(self, brain: Brain) -> Brain:
        """Swap in a whole new brain and persist it."""
        with self._lock:
            self._brain = brain
            self.save()
            return brain

    def save(self) -> None:
        """Write the brain with a single rename so readers never see a partial file."""
        with self._lock:
            if self._brain is None:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(self._brain.to_dict(), f, indent=4)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
