"""Turn raw HTML into a canonical ArticleRecord."""

import json
import logging
import re
from typing import Callable, Optional

import trafilatura
from lxml import html as lxml_html
from readability import Document

from common.datetime import parse_datetime
from common.errors import ErrorKind, ExtractionError
from common.hashing import compute_fingerprint
from common.timeouts import BudgetedRunner, BudgetExceeded
from extract_articles.models import ArticleRecord, MainContent
from fetch_articles.models import RawDocument

logger = logging.getLogger(__name__)

# Share of U+FFFD replacement characters above which markup counts as garbled
MAX_REPLACEMENT_RATIO = 0.05

_AUTHOR_SPLIT = re.compile(r"\s*(?:;|,|\band\b|&)\s*", re.IGNORECASE)
_BYLINE_PREFIX = re.compile(r"^by\s+", re.IGNORECASE)


def decode_body(raw: RawDocument) -> str:
    """Decode the response body, raising ExtractionError for garbled markup."""
    if not raw.body_bytes:
        raise ExtractionError(f"empty response body for {raw.url}", ErrorKind.TERMINAL_CONTENT)

    encoding = raw.encoding or "utf-8"
    try:
        text = raw.body_bytes.decode(encoding)
    except (UnicodeDecodeError, LookupError):
        text = raw.body_bytes.decode("utf-8", errors="replace")

    if text.count("\ufffd") / max(len(text), 1) > MAX_REPLACEMENT_RATIO:
        raise ExtractionError(f"undecodable markup for {raw.url}", ErrorKind.TERMINAL_CONTENT)
    return text


def clean_body_text(text: Optional[str]) -> str:
    """Strip leftover tags and collapse whitespace, one paragraph per line."""
    if not text:
        return ""
    text = re.sub(r"<[^>]+>", " ", text)
    lines = (re.sub(r"\s+", " ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def parse_authors(value) -> tuple[str, ...]:
    """Split author strings like "By Jane Doe and John Roe; AP" into names."""
    if not value:
        return ()
    parts = value if isinstance(value, (list, tuple)) else _AUTHOR_SPLIT.split(str(value))
    authors: list[str] = []
    for part in parts:
        name = _BYLINE_PREFIX.sub("", str(part).strip()).strip()
        if name and name not in authors:
            authors.append(name)
    return tuple(authors)


def extract_with_trafilatura(html: str, url: str) -> Optional[MainContent]:
    """Extract main content and metadata using trafilatura."""
    result = trafilatura.extract(
        html,
        url=url,
        output_format="json",
        with_metadata=True,
        include_comments=False,
    )
    if not result:
        return None
    data = json.loads(result)
    body = clean_body_text(data.get("text") or data.get("raw_text"))
    if not body:
        return None
    return MainContent(
        title=(data.get("title") or "").strip(),
        body_text=body,
        published_at=parse_datetime(data.get("date")),
        authors=parse_authors(data.get("author")),
        method="trafilatura",
    )


def extract_with_readability(html: str, url: str) -> Optional[MainContent]:
    """Extract main content using readability-lxml as fallback."""
    doc = Document(html, url=url)
    summary_html = doc.summary(html_partial=True)
    tree = lxml_html.fromstring(summary_html)
    body = clean_body_text(tree.text_content())
    if not body:
        return None
    return MainContent(
        title=(doc.short_title() or "").strip(),
        body_text=body,
        method="readability",
    )


def extract_main(html: str, url: str) -> Optional[MainContent]:
    """
    Extract the main article content from HTML.

    Order:
    1. trafilatura
    2. readability-lxml

    Each tried once. If both find nothing -> returns None.
    """
    try:
        content = extract_with_trafilatura(html, url)
        if content:
            return content
    except Exception as e:
        logger.warning("trafilatura failed for %s: %s", url, e)

    try:
        return extract_with_readability(html, url)
    except Exception as e:
        logger.warning("readability failed for %s: %s", url, e)
    return None


class Extractor:
    """Builds ArticleRecords and rejects content that is too thin to keep."""

    def __init__(
        self,
        min_body_chars: int = 200,
        deadline: float | None = None,
        max_workers: int = 4,
        extract_fn: Callable[[str, str], Optional[MainContent]] | None = None,
    ) -> None:
        self.min_body_chars = min_body_chars
        self._extract_fn = extract_fn or extract_main
        self._runner = BudgetedRunner(deadline, max_workers=max_workers, name="extract")

    def extract(self, raw: RawDocument) -> ArticleRecord:
        html = decode_body(raw)
        url = raw.final_url or raw.url
        try:
            content = self._runner.run(self._extract_fn, html, url)
        except BudgetExceeded as e:
            raise ExtractionError(f"extraction deadline exceeded for {url}: {e}", ErrorKind.TERMINAL_CONTENT) from e

        if content is None or not content.body_text.strip():
            raise ExtractionError(f"no article body found at {url}", ErrorKind.TERMINAL_CONTENT)
        if len(content.body_text) < self.min_body_chars:
            raise ExtractionError(
                f"article body too short at {url} ({len(content.body_text)} < {self.min_body_chars} chars)",
                ErrorKind.TERMINAL_CONTENT,
            )

        return ArticleRecord(
            url=raw.url,
            title=content.title,
            body_text=content.body_text,
            content_fingerprint=compute_fingerprint(content.body_text),
            published_at=content.published_at,
            authors=content.authors,
            extraction_method=content.method,
        )

    def close(self) -> None:
        self._runner.shutdown()
