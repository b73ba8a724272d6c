import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ---------------------------------------------------------------------------
# Classifications: the fixed label set every article and keyword belongs to
# ---------------------------------------------------------------------------

CLASSIFICATIONS: list[str] = [
    "Climate Change",
    "Economic Justice",
    "Reproductive Rights",
    "LGBTQIA+",
    "Immigration",
]

# ---------------------------------------------------------------------------
# Classifier thresholds
# ---------------------------------------------------------------------------

CONFIDENCE_THRESHOLD = 0.3   # top probability must be strictly above this
CONFIDENCE_MARGIN = 0.1      # minimum gap between top-1 and top-2 probabilities
VOCABULARY_MIN_FREQUENCY = 2  # global occurrences before a token joins the vocabulary
SCORE_EPSILON = 1e-6         # keeps log() away from zero
DEGENERATE_SCORE = -1000.0   # score for a class that has nothing to score against

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./newsfeed.db")
BRAIN_PATH = os.getenv("NEWSFEED_BRAIN_PATH", "storage/classifier_brain.json")
INITIAL_TRAINING_PATH = os.getenv("NEWSFEED_INITIAL_TRAINING_PATH", "storage/initial_training.json")

ARTICLE_TTL_HOURS = 48      # articles expire this long after they are stored
SUMMARY_ARTICLE_LIMIT = 20  # most recent articles fed to one summary request

# ---------------------------------------------------------------------------
# RSS feeds. NEWSFEED_RSS_FEEDS (comma-separated) replaces the default list
# ---------------------------------------------------------------------------

DEFAULT_RSS_FEEDS: list[str] = [
    "https://feeds.nbcnews.com/nbcnews/public/news",
    "https://abcnews.go.com/abcnews/topstories",
    "https://www.cbsnews.com/latest/rss/main",
    "https://www.vox.com/rss/index.xml",
    "https://feedx.net/rss/ap.xml",
]

# Explicit display names; unmapped feeds fall back to the domain table in fetcher.py
FEED_SOURCES: dict[str, str] = {
    "https://feeds.nbcnews.com/nbcnews/public/news": "NBC",
    "https://abcnews.go.com/abcnews/topstories": "ABC",
    "https://www.cbsnews.com/latest/rss/main": "CBS",
    "https://www.vox.com/rss/index.xml": "Vox",
    "https://feedx.net/rss/ap.xml": "Associated Press",
}

FEED_TIMEOUT_SECONDS = 30


def get_rss_feeds() -> list[str]:
    """Return the configured feed URLs, reading NEWSFEED_RSS_FEEDS at call time."""
    raw = os.getenv("NEWSFEED_RSS_FEEDS")
    if raw is None:
        return list(DEFAULT_RSS_FEEDS)
    return [url.strip() for url in raw.split(",") if url.strip()]


# ---------------------------------------------------------------------------
# Summarization service (DeepSeek, OpenAI-compatible API)
# ---------------------------------------------------------------------------

DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY")
DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1")
DEEPSEEK_MODEL = os.getenv("DEEPSEEK_MODEL", "deepseek-chat")

SUMMARY_TIMEOUT_SECONDS = 120
KEYWORD_TIMEOUT_SECONDS = 60
