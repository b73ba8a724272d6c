import json
import logging
from typing import Any, Iterable, Optional

from openai import OpenAI, OpenAIError

from newsfeed.config import (
    DEEPSEEK_API_KEY,
    DEEPSEEK_BASE_URL,
    DEEPSEEK_MODEL,
    KEYWORD_TIMEOUT_SECONDS,
    SUMMARY_TIMEOUT_SECONDS,
)
from newsfeed.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert news analyst. Provide annotated summaries of recent developments, "
    "highlighting key points and trends."
)
KEYWORD_SYSTEM_PROMPT = (
    "You are a text analysis expert. Extract relevant keywords and terms that would help classify "
    "articles. Return only a JSON array of words/phrases, one per line, no explanations."
)

SUMMARY_CONTENT_CHARS = 1000
KEYWORD_CONTENT_CHARS = 500


def parse_keyword_response(text: str) -> list[str]:
    """
    Parse a keyword-extraction reply into unique lowercase terms.

    The model is asked for a JSON array but sometimes answers with one term
    per line, bullets, or a fenced code block. Both shapes are accepted.
    """
    text = (text or "").strip()
    if text.startswith("```"):
        text = "\n".join(line for line in text.splitlines() if not line.strip().startswith("```")).strip()

    keywords: list[str] = []
    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None

    if isinstance(parsed, list):
        keywords = [str(item).strip().lower() for item in parsed]
    else:
        for line in text.splitlines():
            line = line.strip().lstrip("-*•").strip()
            line = line.strip("[],\"'").strip()
            if len(line) > 2:
                keywords.append(line.lower())

    return list(dict.fromkeys(k for k in keywords if k))


def _article_fields(article: Any) -> dict[str, str]:
    if isinstance(article, dict):
        return {"title": article.get("title") or "", "content": article.get("content") or ""}
    return {"title": getattr(article, "title", "") or "", "content": getattr(article, "content", "") or ""}


class DeepSeekService:
    """
    Client for the DeepSeek chat API (OpenAI-compatible).

    Both calls degrade instead of raising: a failed summary is None and a
    failed keyword extraction is an empty list.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: str = DEEPSEEK_BASE_URL, model: str = DEEPSEEK_MODEL, client=None):
        key = api_key or DEEPSEEK_API_KEY
        if client is None:
            if not key:
                raise ConfigurationError("DEEPSEEK_API_KEY not set.")
            client = OpenAI(api_key=key, base_url=base_url)
        self._client = client
        self._model = model

    def _complete(self, system: str, user: str, *, temperature: float, max_tokens: int, timeout: float) -> Optional[str]:
        resp = self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        return resp.choices[0].message.content if resp and resp.choices else None

    def generate_summary(self, articles: Iterable[Any], classification: str) -> Optional[str]:
        """Annotated summary of recent developments in `classification`, or None on failure."""
        articles = [_article_fields(a) for a in articles]
        if not articles:
            return None

        prompt = f"Please provide an annotated summary of recent developments in {classification} based on the following articles:\n\n"
        for index, article in enumerate(articles, start=1):
            prompt += f"Article {index}:\nTitle: {article['title']}\nContent: {article['content'][:SUMMARY_CONTENT_CHARS]}\n\n"
        prompt += (
            "Provide a comprehensive summary with key points, trends, and notable developments. "
            "Use annotations to highlight important information."
        )

        try:
            content = self._complete(SUMMARY_SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=2000, timeout=SUMMARY_TIMEOUT_SECONDS)
        except OpenAIError as e:
            logger.error(f"[deepseek] Summary request failed for {classification}: {e}")
            return None
        return content.strip() if content else None

    def extract_keywords(self, articles: Iterable[Any], classification: str) -> list[str]:
        """Lowercase discriminative keywords for `classification`, or [] on failure."""
        articles = [_article_fields(a) for a in articles]
        if not articles:
            return []

        prompt = (
            f"Extract relevant keywords and terms from these {classification} articles that would help classify "
            "similar articles in the future. Focus on domain-specific terms, key phrases, and important concepts.\n\n"
        )
        for index, article in enumerate(articles, start=1):
            prompt += f"Article {index}: {article['title']}\n{article['content'][:KEYWORD_CONTENT_CHARS]}\n\n"
        prompt += "Return a JSON array of unique keywords/phrases (lowercase, no duplicates)."

        try:
            content = self._complete(KEYWORD_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=500, timeout=KEYWORD_TIMEOUT_SECONDS)
        except OpenAIError as e:
            logger.error(f"[deepseek] Keyword request failed for {classification}: {e}")
            return []
        return parse_keyword_response(content or "")
