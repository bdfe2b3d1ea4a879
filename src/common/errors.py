"""Error taxonomy shared by every pipeline stage."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """How the coordinator should treat a stage failure."""

    TRANSIENT_EXTERNAL = "transient_external"
    TERMINAL_CONTENT = "terminal_content"
    TERMINAL_SYSTEM = "terminal_system"


class PipelineError(Exception):
    """Base error raised at a stage boundary."""

    stage = "pipeline"

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TERMINAL_SYSTEM) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT_EXTERNAL

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, kind={self.kind.value})"


class FetchError(PipelineError):
    """Raised when a URL cannot be fetched."""

    stage = "fetch"


class ExtractionError(PipelineError):
    """Raised when no usable article can be extracted from a document."""

    stage = "extract"


class DedupError(PipelineError):
    """Raised when the reservation store cannot be reached."""

    stage = "dedup"


class EnrichmentError(PipelineError):
    """Raised when NLP analysis fails or exceeds its budget."""

    stage = "enrich"


class IndexingError(PipelineError):
    """Raised when a document cannot be written to the search engine."""

    stage = "index"


class ConfigError(Exception):
    """Raised for invalid configuration or unreachable backends at startup."""
