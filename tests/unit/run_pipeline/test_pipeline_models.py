"""Tests for run_pipeline.models module."""

from datetime import datetime, timedelta, timezone

from common.errors import ErrorKind
from run_pipeline.models import CandidateOutcome, CandidateState, PipelineReport


def _outcome(state: CandidateState, stage: str | None = None) -> CandidateOutcome:
    return CandidateOutcome(
        url="https://a.example/1",
        source_feed_id="static",
        state=state,
        path=(CandidateState.DISCOVERED, state),
        failed_stage=stage,
        error_kind=ErrorKind.TERMINAL_CONTENT if stage else None,
    )


class TestCandidateState:
    def test_terminal_states(self) -> None:
        terminal = {state for state in CandidateState if state.terminal}
        assert terminal == {CandidateState.SKIPPED_DUPLICATE, CandidateState.COMMITTED, CandidateState.FAILED}


class TestPipelineReport:
    def test_counts(self) -> None:
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        report = PipelineReport(
            started_at=start,
            finished_at=start + timedelta(seconds=2.5),
            outcomes=[
                _outcome(CandidateState.COMMITTED),
                _outcome(CandidateState.SKIPPED_DUPLICATE),
                _outcome(CandidateState.FAILED, "fetch"),
                _outcome(CandidateState.FAILED, "fetch"),
                _outcome(CandidateState.FAILED, "index"),
            ],
        )

        assert report.committed == 1
        assert report.skipped == 1
        assert report.failed == 3
        assert report.failures_by_stage() == {"fetch": 2, "index": 1}
        assert report.elapsed_seconds == 2.5

    def test_unfinished_elapsed_is_zero(self) -> None:
        assert PipelineReport(started_at=datetime.now(timezone.utc)).elapsed_seconds == 0.0
