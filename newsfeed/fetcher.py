import calendar
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse

import feedparser
import requests

from newsfeed.config import FEED_SOURCES, FEED_TIMEOUT_SECONDS
from newsfeed.exceptions import FeedFetchError
from newsfeed.schemas import FeedArticle
from newsfeed.tokenizer import strip_html

logger = logging.getLogger(__name__)

USER_AGENT = "newsfeed/1.0"

# First label of the feed host → display name, used when a feed has no explicit mapping
DOMAIN_NAMES: dict[str, str] = {
    "nbcnews": "NBC",
    "abcnews": "ABC",
    "cbsnews": "CBS",
    "vox": "Vox",
    "feedx": "Associated Press",  # feedx.net hosts AP feeds
    "cnn": "CNN",
    "bbc": "BBC",
    "reuters": "Reuters",
    "ap": "AP",
    "theguardian": "The Guardian",
    "nytimes": "NY Times",
    "washingtonpost": "Washington Post",
    "theatlantic": "The Atlantic",
}

_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_date(entry) -> Optional[datetime]:
    """
    Extract a UTC datetime from a feedparser entry.
    Returns None if the entry carries no usable date.
    """
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    return None


def extract_image_url(entry) -> Optional[str]:
    """Image from an image/* enclosure, then media:content / media:thumbnail, then the first <img> in the description."""
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/"):
            url = enclosure.get("href") or enclosure.get("url")
            if url:
                return url

    for key in ("media_content", "media_thumbnail"):
        for media in entry.get(key) or []:
            if media.get("url"):
                return media["url"]

    match = _IMG_SRC_RE.search(entry.get("summary") or entry.get("description") or "")
    if match:
        return match.group(1)
    return None


def resolve_source_name(feed_url: str, feed_sources: Optional[dict[str, str]] = None) -> str:
    """
    Map a feed URL to a short publisher name.

    Checks the explicit URL table first, then the known domain table, then
    falls back to the capitalized first label of the host.
    """
    feed_sources = FEED_SOURCES if feed_sources is None else feed_sources
    if feed_url in feed_sources:
        return feed_sources[feed_url]

    host = urlparse(feed_url).hostname or ""
    host = re.sub(r"^www\.", "", host)
    main_domain = host.split(".")[0] if host else ""

    if main_domain in DOMAIN_NAMES:
        return DOMAIN_NAMES[main_domain]
    return main_domain.capitalize() if main_domain else "Unknown"


# ---------------------------------------------------------------------------
# RSS source: fetch and parse one configured feed
# ---------------------------------------------------------------------------

class RSSSource:
    """
    One RSS feed. Handles the HTTP fetch, parsing, HTML stripping, date and
    image extraction, and error logging.
    """

    def __init__(self, feed_url: str, source_name: Optional[str] = None, timeout: float = FEED_TIMEOUT_SECONDS):
        self.feed_url = feed_url
        self.source_name = source_name or resolve_source_name(feed_url)
        self.timeout = timeout

    def fetch_entries(self) -> list:
        """
        Download and parse the feed.

        Raises:
            FeedFetchError: on network errors, non-success status or an unparseable body
        """
        try:
            response = requests.get(self.feed_url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
        except requests.RequestException as e:
            raise FeedFetchError(f"Failed to fetch feed: {self.feed_url} ({e})") from e

        if not response.ok:
            raise FeedFetchError(f"Failed to fetch feed: {self.feed_url} (status {response.status_code})")

        feed = feedparser.parse(response.content)
        if getattr(feed, "bozo", 0) and not feed.entries:
            exc = getattr(feed, "bozo_exception", None)
            raise FeedFetchError(f"Failed to parse XML from feed: {self.feed_url} ({exc})")
        return list(feed.entries)

    def parse_entry(self, entry) -> Optional[FeedArticle]:
        link = (entry.get("link") or "").strip()
        if not link:
            logger.warning(f"[{self.source_name}] Skipping entry with no link")
            return None

        # RSS body may be in 'summary' or nested inside 'content'
        raw_body = (
            entry.get("summary")
            or entry.get("description")
            or (entry.get("content") or [{}])[0].get("value")
            or ""
        )

        return FeedArticle(
            title=(entry.get("title") or "").strip(),
            content=strip_html(raw_body),
            link=link,
            image_url=extract_image_url(entry),
            source_feed=self.feed_url,
            source=self.source_name,
            published_at=parse_date(entry),
        )

    def fetch(self) -> list[FeedArticle]:
        """Fetch the feed newest-first. Errors are logged and yield an empty list so other feeds are unaffected."""
        try:
            entries = self.fetch_entries()
        except FeedFetchError as e:
            logger.warning(f"[{self.source_name}] {e}")
            return []

        articles = []
        for entry in entries:
            try:
                article = self.parse_entry(entry)
            except Exception as e:
                logger.error(f"[{self.source_name}] Error parsing RSS item: {e}")
                continue
            if article:
                articles.append(article)

        # Newest first, undated last, so ingestion can stop early on already-stored items
        articles.sort(
            key=lambda a: a.published_at.timestamp() if a.published_at else 0,
            reverse=True,
        )
        logger.info(f"[{self.source_name}] Fetched {len(articles)} articles")
        return articles


def fetch_feeds(feed_urls: Iterable[str]) -> list[FeedArticle]:
    """Fetch every feed and concatenate the results, each feed sorted newest-first."""
    articles: list[FeedArticle] = []
    for url in feed_urls:
        articles.extend(RSSSource(url).fetch())
    return articles
