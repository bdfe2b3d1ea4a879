"""Data models for pipeline runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from common.errors import ErrorKind


class CandidateState(str, Enum):
    """Where a candidate is in the pipeline."""

    DISCOVERED = "discovered"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DEDUPLICATING = "deduplicating"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    ENRICHING = "enriching"
    INDEXING = "indexing"
    COMMITTED = "committed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (CandidateState.SKIPPED_DUPLICATE, CandidateState.COMMITTED, CandidateState.FAILED)


# Stage name reported for failures that happen while in a given state
STATE_STAGES = {
    CandidateState.DISCOVERED: "fetch",
    CandidateState.FETCHING: "fetch",
    CandidateState.EXTRACTING: "extract",
    CandidateState.DEDUPLICATING: "dedup",
    CandidateState.ENRICHING: "enrich",
    CandidateState.INDEXING: "index",
}


@dataclass(frozen=True)
class CandidateOutcome:
    """Terminal result for one candidate."""
    url: str
    source_feed_id: str
    state: CandidateState
    path: tuple[CandidateState, ...]
    failed_stage: str | None = None
    error_kind: ErrorKind | None = None
    reason: str | None = None
    fingerprint: str | None = None
    document_id: str | None = None


@dataclass
class PipelineReport:
    """Summary of one run over a feed."""
    started_at: datetime
    finished_at: datetime | None = None
    outcomes: list[CandidateOutcome] = field(default_factory=list)
    halted_stages: list[str] = field(default_factory=list)

    def count(self, state: CandidateState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state is state)

    @property
    def committed(self) -> int:
        return self.count(CandidateState.COMMITTED)

    @property
    def skipped(self) -> int:
        return self.count(CandidateState.SKIPPED_DUPLICATE)

    @property
    def failed(self) -> int:
        return self.count(CandidateState.FAILED)

    def failures_by_stage(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for outcome in self.outcomes:
            if outcome.state is CandidateState.FAILED:
                counts[outcome.failed_stage] = counts.get(outcome.failed_stage, 0) + 1
        return counts

    @property
    def elapsed_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
