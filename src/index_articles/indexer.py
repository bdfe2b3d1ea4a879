"""Publish enriched documents to the search engine with idempotent upserts."""

from __future__ import annotations

import logging
import time
from typing import Callable

from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from common.datetime import utc_now
from common.errors import ErrorKind, IndexingError
from common.hashing import generate_document_id
from enrich_articles.models import EnrichedDocument
from index_articles.engines import SearchEngine
from index_articles.models import IndexRecord, IndexResult

logger = logging.getLogger(__name__)


def build_index_record(document: EnrichedDocument) -> IndexRecord:
    """Project an EnrichedDocument onto the search engine's document schema."""
    article = document.article
    body = {
        "url": article.url,
        "title": article.title,
        "body_text": article.body_text,
        "published_at": article.published_at.isoformat() if article.published_at else None,
        "authors": list(article.authors),
        "fingerprint": article.content_fingerprint,
        "entities": [
            {"name": entity.name, "type": entity.type}
            for entity in sorted(document.entities)
        ],
        "sentiment_score": document.sentiment_score,
        "keyphrases": list(document.keyphrases),
        "indexed_at": utc_now().isoformat(),
    }
    return IndexRecord(document_id=generate_document_id(article.content_fingerprint), body=body)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, IndexingError) and exc.retryable


class Indexer:
    """Upserts documents keyed by fingerprint, so re-indexing the same content is harmless."""

    def __init__(
        self,
        engine: SearchEngine,
        max_attempts: int = 5,
        backoff_base: float = 0.5,
        backoff_max: float = 16.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

    def index(self, document: EnrichedDocument) -> IndexResult:
        record = build_index_record(document)
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            result = retrying(self.engine.upsert, record.document_id, record.body)
        except IndexingError as e:
            if e.kind is ErrorKind.TERMINAL_CONTENT:
                logger.error(
                    "Malformed document %s (%s) needs manual inspection: %s",
                    record.document_id, document.article.url, e.message,
                )
            elif e.retryable:
                raise IndexingError(
                    f"{e.message} (gave up after {self.max_attempts} attempts)",
                    ErrorKind.TRANSIENT_EXTERNAL,
                ) from e
            raise

        logger.debug("Indexed %s as %s (%s)", document.article.url, record.document_id, result)
        return IndexResult(document_id=record.document_id, result=result)
