import re

# Minimal stopword list. Short discriminative words (hiv, lgbtq, ice) are kept on purpose.
STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to",
    "for", "of", "with", "by", "as", "is", "was", "are", "were",
    "be", "been", "have", "has", "had", "do", "does", "did",
})

_TAG_RE = re.compile(r"<[^>]+>")
_NON_TOKEN_RE = re.compile(r"[^a-z0-9\s\-]")


def strip_html(text: str) -> str:
    """Remove HTML tags from a string, returning clean plain text."""
    return _TAG_RE.sub("", text or "").strip()


def tokenize_all(text: str) -> list[str]:
    """
    Normalize text into lowercase tokens, keeping repeats.

    Markup is stripped, anything outside [a-z0-9 whitespace -] becomes a space,
    and stopwords are dropped.
    """
    text = strip_html(text).lower()
    text = _NON_TOKEN_RE.sub(" ", text)
    return [word for word in text.split() if len(word) >= 1 and word not in STOPWORDS]


def tokenize(text: str) -> list[str]:
    """Unique tokens of `text` in order of first appearance."""
    return list(dict.fromkeys(tokenize_all(text)))
