"""Drive candidates through fetch, extract, dedup, enrich and index.

Each stage owns a fixed pool of worker threads fed by a bounded queue. A
worker blocks when the next stage's queue is full, so a slow index stage
throttles fetching instead of buffering without limit. Dedup runs on the
extract workers; it is a single atomic store call.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable

from common.datetime import utc_now
from common.errors import DedupError, ErrorKind, PipelineError
from dedup_articles.deduplicator import Deduplicator
from dedup_articles.models import Reservation
from enrich_articles.enricher import Enricher
from enrich_articles.models import EnrichedDocument
from extract_articles.extractor import Extractor
from extract_articles.models import ArticleRecord
from fetch_articles.feeds import FeedSource
from fetch_articles.fetcher import Fetcher
from fetch_articles.models import Candidate, RawDocument
from index_articles.indexer import Indexer
from run_pipeline.models import STATE_STAGES, CandidateOutcome, CandidateState, PipelineReport

logger = logging.getLogger(__name__)

_STOP = object()

TransitionListener = Callable[[Candidate, CandidateState], None]


@dataclass
class _Work:
    """A candidate and whatever its finished stages produced."""
    candidate: Candidate
    state: CandidateState = CandidateState.DISCOVERED
    path: list[CandidateState] = field(default_factory=lambda: [CandidateState.DISCOVERED])
    raw: RawDocument | None = None
    article: ArticleRecord | None = None
    document: EnrichedDocument | None = None
    reservation: Reservation | None = None

    @property
    def fingerprint(self) -> str | None:
        return self.article.content_fingerprint if self.article else None


@dataclass
class _Stage:
    name: str
    workers: int
    handler: Callable[[_Work], _Work | None]
    inbox: queue.Queue
    outbox: queue.Queue | None = None
    halted: threading.Event = field(default_factory=threading.Event)
    threads: list[threading.Thread] = field(default_factory=list)


@dataclass(frozen=True)
class PoolSizes:
    fetch: int = 16
    extract: int = 4
    enrich: int = 2
    index: int = 4
    queue_size: int = 64


class Coordinator:
    """Runs a feed through the pipeline and reports one outcome per candidate."""

    def __init__(
        self,
        fetcher: Fetcher,
        extractor: Extractor,
        deduplicator: Deduplicator,
        enricher: Enricher,
        indexer: Indexer,
        pools: PoolSizes | None = None,
        candidate_ttl: float | None = None,
        on_transition: TransitionListener | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.extractor = extractor
        self.deduplicator = deduplicator
        self.enricher = enricher
        self.indexer = indexer
        self.pools = pools or PoolSizes()
        self.candidate_ttl = candidate_ttl
        self.on_transition = on_transition
        self._report: PipelineReport | None = None
        self._report_lock = threading.Lock()

    def run(self, feed: FeedSource, batch_size: int = 50, max_candidates: int | None = None) -> PipelineReport:
        """Process every candidate the feed yields, then return the report."""
        self._report = PipelineReport(started_at=utc_now())
        stages = self._build_stages()
        for stage in stages:
            for i in range(stage.workers):
                thread = threading.Thread(
                    target=self._worker, args=(stage,), name=f"{stage.name}-{i}", daemon=True
                )
                thread.start()
                stage.threads.append(thread)

        submitted = 0
        try:
            while max_candidates is None or submitted < max_candidates:
                limit = batch_size if max_candidates is None else min(batch_size, max_candidates - submitted)
                batch = feed.next_batch(limit)
                if not batch:
                    break
                for candidate in batch:
                    self._transition_new(candidate)
                    stages[0].inbox.put(_Work(candidate=candidate))
                    submitted += 1
                logger.info("Submitted %d candidates (%d total)", len(batch), submitted)
        finally:
            self._drain(stages)

        report = self._report
        report.finished_at = utc_now()
        report.halted_stages = [stage.name for stage in stages if stage.halted.is_set()]
        logger.info(
            "Pipeline finished in %.1fs: %d committed, %d skipped duplicates, %d failed %s",
            report.elapsed_seconds, report.committed, report.skipped, report.failed,
            report.failures_by_stage() or "",
        )
        for name in report.halted_stages:
            logger.critical("Stage %s was halted by a system error during this run", name)
        return report

    def _build_stages(self) -> list[_Stage]:
        size = self.pools.queue_size
        fetch = _Stage("fetch", self.pools.fetch, self._fetch, queue.Queue(maxsize=size))
        extract = _Stage("extract", self.pools.extract, self._extract, queue.Queue(maxsize=size))
        enrich = _Stage("enrich", self.pools.enrich, self._enrich, queue.Queue(maxsize=size))
        index = _Stage("index", self.pools.index, self._index, queue.Queue(maxsize=size))
        fetch.outbox = extract.inbox
        extract.outbox = enrich.inbox
        enrich.outbox = index.inbox
        return [fetch, extract, enrich, index]

    def _drain(self, stages: list[_Stage]) -> None:
        # Stop stages in order: once a stage's workers have exited, everything
        # they produced is already queued ahead of the next stage's stop markers.
        for stage in stages:
            for _ in stage.threads:
                stage.inbox.put(_STOP)
            for thread in stage.threads:
                thread.join()

    def _worker(self, stage: _Stage) -> None:
        while True:
            work = stage.inbox.get()
            if work is _STOP:
                return
            if stage.halted.is_set():
                self._release(work)
                self._fail(work, stage.name, ErrorKind.TERMINAL_SYSTEM, f"{stage.name} stage halted")
                continue

            try:
                result = stage.handler(work)
            except PipelineError as exc:
                self._handle_error(stage, work, exc)
                continue
            except Exception as exc:
                logger.exception("Unexpected error in %s stage for %s", stage.name, work.candidate.url)
                self._handle_error(
                    stage, work,
                    PipelineError(f"unexpected {type(exc).__name__}: {exc}", ErrorKind.TERMINAL_SYSTEM),
                )
                continue

            if result is not None and stage.outbox is not None:
                stage.outbox.put(result)

    def _fetch(self, work: _Work) -> _Work | None:
        candidate = work.candidate
        if self.candidate_ttl and utc_now() - candidate.discovered_at > timedelta(seconds=self.candidate_ttl):
            self._fail(work, "fetch", ErrorKind.TERMINAL_CONTENT, "expired")
            return None
        self._transition(work, CandidateState.FETCHING)
        work.raw = self.fetcher.fetch(candidate.url)
        return work

    def _extract(self, work: _Work) -> _Work | None:
        self._transition(work, CandidateState.EXTRACTING)
        work.article = self.extractor.extract(work.raw)
        work.raw = None

        self._transition(work, CandidateState.DEDUPLICATING)
        reservation = self.deduplicator.reserve(work.article.content_fingerprint)
        if not reservation.reserved:
            outcome = reservation.outcome.value
            logger.info("Skipping duplicate %s (%s)", work.candidate.url, outcome)
            self._finish(work, CandidateState.SKIPPED_DUPLICATE, reason=outcome)
            return None
        work.reservation = reservation
        return work

    def _enrich(self, work: _Work) -> _Work:
        self._transition(work, CandidateState.ENRICHING)
        work.document = self.enricher.enrich(work.article)
        return work

    def _index(self, work: _Work) -> None:
        self._transition(work, CandidateState.INDEXING)
        result = self.indexer.index(work.document)
        try:
            if not self.deduplicator.commit(work.reservation):
                logger.warning("Indexed %s but its reservation had lapsed", work.candidate.url)
        except DedupError as e:
            logger.warning("Indexed %s but could not commit reservation: %s", work.candidate.url, e)
        work.reservation = None
        self._finish(work, CandidateState.COMMITTED, document_id=result.document_id)
        return None

    def _handle_error(self, stage: _Stage, work: _Work, exc: PipelineError) -> None:
        failed_stage = STATE_STAGES.get(work.state, stage.name)
        self._release(work)

        if exc.kind is ErrorKind.TERMINAL_SYSTEM:
            logger.critical("Halting %s stage after system error on %s: %s", stage.name, work.candidate.url, exc.message)
            stage.halted.set()
        else:
            logger.warning("%s failed at %s (%s): %s", work.candidate.url, failed_stage, exc.kind.value, exc.message)
        self._fail(work, failed_stage, exc.kind, exc.message)

    def _release(self, work: _Work) -> None:
        reservation, work.reservation = work.reservation, None
        if reservation is None:
            return
        try:
            self.deduplicator.release(reservation)
        except DedupError as e:
            logger.warning("Could not release %s, it will expire: %s", work.fingerprint, e)

    def _transition_new(self, candidate: Candidate) -> None:
        self._notify(candidate, CandidateState.DISCOVERED)

    def _transition(self, work: _Work, state: CandidateState) -> None:
        logger.debug("%s: %s -> %s", work.candidate.url, work.state.value, state.value)
        work.state = state
        work.path.append(state)
        self._notify(work.candidate, state)

    def _notify(self, candidate: Candidate, state: CandidateState) -> None:
        if self.on_transition is None:
            return
        # Listener errors are logged, never raised into the worker
        try:
            self.on_transition(candidate, state)
        except Exception:
            logger.exception("Transition listener failed for %s at %s", candidate.url, state.value)

    def _fail(self, work: _Work, stage: str, kind: ErrorKind, reason: str) -> None:
        self._finish(work, CandidateState.FAILED, failed_stage=stage, error_kind=kind, reason=reason)

    def _finish(self, work: _Work, state: CandidateState, **details) -> None:
        self._transition(work, state)
        outcome = CandidateOutcome(
            url=work.candidate.url,
            source_feed_id=work.candidate.source_feed_id,
            state=state,
            path=tuple(work.path),
            fingerprint=work.fingerprint,
            **details,
        )
        with self._report_lock:
            self._report.outcomes.append(outcome)
