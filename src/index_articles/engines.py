"""Search engine backends for enriched documents."""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Protocol

from elasticsearch import ApiError, Elasticsearch, TransportError

from common.errors import ErrorKind, IndexingError

logger = logging.getLogger(__name__)

INDEX_MAPPINGS = {
    "properties": {
        "url": {"type": "keyword"},
        "title": {"type": "text"},
        "body_text": {"type": "text"},
        "published_at": {"type": "date"},
        "authors": {"type": "keyword"},
        "fingerprint": {"type": "keyword"},
        "entities": {
            "type": "nested",
            "properties": {
                "name": {"type": "keyword"},
                "type": {"type": "keyword"},
            },
        },
        "sentiment_score": {"type": "float"},
        "keyphrases": {"type": "keyword"},
        "indexed_at": {"type": "date"},
    }
}


class SearchEngine(Protocol):
    def upsert(self, document_id: str, document: dict[str, Any]) -> str: ...

    def ensure_index(self) -> None: ...

    def ping(self) -> bool: ...


def classify_status(status: int) -> ErrorKind:
    """Map an HTTP status from the search engine to an error kind."""
    if status == 429 or status >= 500:
        return ErrorKind.TRANSIENT_EXTERNAL
    if status in (401, 403):
        return ErrorKind.TERMINAL_SYSTEM
    return ErrorKind.TERMINAL_CONTENT


class ElasticsearchEngine:
    """Writes documents with the index API, which replaces any document with the same id."""

    def __init__(self, client: Elasticsearch, index_name: str) -> None:
        self.client = client
        self.index_name = index_name

    @classmethod
    def from_url(
        cls,
        url: str,
        index_name: str,
        api_key: str | None = None,
        request_timeout: float = 10,
    ) -> ElasticsearchEngine:
        client = Elasticsearch(url, api_key=api_key, request_timeout=request_timeout)
        return cls(client, index_name)

    def ensure_index(self) -> None:
        try:
            if self.client.indices.exists(index=self.index_name):
                return
            self.client.indices.create(index=self.index_name, mappings=INDEX_MAPPINGS)
            logger.info("Created search index %s", self.index_name)
        except ApiError as e:
            if e.meta.status == 400 and "resource_already_exists" in str(e):
                return
            raise IndexingError(f"cannot create index {self.index_name}: {e}", ErrorKind.TERMINAL_SYSTEM) from e
        except TransportError as e:
            raise IndexingError(f"cannot reach search engine: {e}", ErrorKind.TERMINAL_SYSTEM) from e

    def upsert(self, document_id: str, document: dict[str, Any]) -> str:
        try:
            response = self.client.index(index=self.index_name, id=document_id, document=document)
        except ApiError as e:
            raise IndexingError(
                f"search engine rejected {document_id} (HTTP {e.meta.status}): {e}",
                classify_status(e.meta.status),
            ) from e
        except TransportError as e:
            raise IndexingError(f"search engine unreachable: {e}", ErrorKind.TRANSIENT_EXTERNAL) from e
        return response["result"]

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except TransportError as e:
            logger.error("Search engine ping failed: %s", e)
            return False


class MemorySearchEngine:
    """In-process engine for local runs and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.documents: dict[str, dict[str, Any]] = {}

    def upsert(self, document_id: str, document: dict[str, Any]) -> str:
        with self._lock:
            result = "updated" if document_id in self.documents else "created"
            self.documents[document_id] = copy.deepcopy(document)
            return result

    def ensure_index(self) -> None:
        return None

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self.documents)
