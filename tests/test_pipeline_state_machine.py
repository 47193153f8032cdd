"""
Tests for the scan status state machine.
"""
import pytest

from scanguard.core.exceptions import InvalidTransitionError, ScanNotFoundError
from scanguard.models.analysis_log import AnalysisLog, LogLevel
from scanguard.models.scan import ScanStatus
from scanguard.services import pipeline


def _logs(db, scan_id):
    return (
        db.query(AnalysisLog)
        .filter(AnalysisLog.scan_id == scan_id)
        .order_by(AnalysisLog.created_at, AnalysisLog.id)
        .all()
    )


class TestValidateTransition:
    """Pure transition rules."""

    def test_next_status_follows_pipeline_order(self):
        assert pipeline.next_status(ScanStatus.QUEUED) == ScanStatus.PARSING
        assert pipeline.next_status(ScanStatus.ENRICHING) == ScanStatus.COMPLETE
        assert pipeline.next_status(ScanStatus.COMPLETE) is None
        assert pipeline.next_status(ScanStatus.FAILED) is None

    def test_skipping_a_stage_is_rejected(self):
        with pytest.raises(InvalidTransitionError, match="Cannot move from parsing to analyzing"):
            pipeline.validate_transition(ScanStatus.PARSING, 10, ScanStatus.ANALYZING, 50)

    def test_moving_backwards_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            pipeline.validate_transition(ScanStatus.ANALYZING, 50, ScanStatus.DECOMPILING, 50)

    def test_progress_cannot_decrease(self):
        with pytest.raises(InvalidTransitionError, match="cannot decrease"):
            pipeline.validate_transition(ScanStatus.ANALYZING, 65, ScanStatus.ANALYZING, 60)

    def test_progress_must_stay_in_range(self):
        with pytest.raises(InvalidTransitionError, match="0-100"):
            pipeline.validate_transition(ScanStatus.ANALYZING, 50, ScanStatus.ANALYZING, 101)

    def test_hundred_percent_only_at_complete(self):
        with pytest.raises(InvalidTransitionError, match="only reach 100%"):
            pipeline.validate_transition(ScanStatus.ENRICHING, 75, ScanStatus.ENRICHING, 100)

    def test_complete_requires_risk_score_and_full_progress(self):
        with pytest.raises(InvalidTransitionError, match="risk score"):
            pipeline.validate_transition(ScanStatus.ENRICHING, 75, ScanStatus.COMPLETE, 100, None)
        with pytest.raises(InvalidTransitionError, match="100% progress"):
            pipeline.validate_transition(ScanStatus.ENRICHING, 75, ScanStatus.COMPLETE, 90, 40)
        pipeline.validate_transition(ScanStatus.ENRICHING, 75, ScanStatus.COMPLETE, 100, 40)

    def test_failed_reachable_from_any_non_terminal_status(self):
        for current in (ScanStatus.QUEUED, ScanStatus.PARSING, ScanStatus.ANALYZING, ScanStatus.ENRICHING):
            pipeline.validate_transition(current, 0, ScanStatus.FAILED, 0)

    @pytest.mark.parametrize("terminal", [ScanStatus.COMPLETE, ScanStatus.FAILED])
    def test_terminal_statuses_are_final(self, terminal):
        with pytest.raises(InvalidTransitionError, match="already"):
            pipeline.validate_transition(terminal, 100, ScanStatus.FAILED, 100)


class TestTransitions:
    """Transitions applied to stored scans."""

    def test_claim_moves_queued_scan_to_parsing(self, db_session, make_scan):
        scan = make_scan()

        claimed = pipeline.claim_scan(db_session, scan.id)

        assert claimed.status == ScanStatus.PARSING
        assert claimed.progress == 10
        assert claimed.started_at is not None
        logs = _logs(db_session, scan.id)
        assert [entry.stage for entry in logs] == ["parsing"]
        assert logs[0].message == "Stage parsing started - Progress: 10%"

    def test_second_claim_conflicts(self, db_session, make_scan):
        scan = make_scan()
        pipeline.claim_scan(db_session, scan.id)

        with pytest.raises(InvalidTransitionError, match="only queued scans can be started"):
            pipeline.claim_scan(db_session, scan.id)

    def test_claim_unknown_scan(self, db_session):
        with pytest.raises(ScanNotFoundError):
            pipeline.claim_scan(db_session, "does-not-exist")

    def test_full_progression_logs_every_stage_once(self, db_session, make_scan):
        scan = pipeline.claim_scan(db_session, make_scan().id)

        pipeline.transition(db_session, scan, ScanStatus.DECOMPILING)
        pipeline.transition(db_session, scan, ScanStatus.ANALYZING)
        pipeline.transition(db_session, scan, ScanStatus.ANALYZING, progress=65)
        pipeline.transition(db_session, scan, ScanStatus.ENRICHING)
        pipeline.transition(db_session, scan, ScanStatus.COMPLETE, progress=100, risk_score=60)

        assert scan.status == ScanStatus.COMPLETE
        assert scan.progress == 100
        assert scan.risk_score == 60
        assert scan.completed_at is not None
        assert [entry.stage for entry in _logs(db_session, scan.id)] == [
            "parsing", "decompiling", "analyzing", "enriching", "complete",
        ]

    def test_invalid_transition_leaves_scan_untouched(self, db_session, make_scan):
        scan = pipeline.claim_scan(db_session, make_scan().id)

        with pytest.raises(InvalidTransitionError):
            pipeline.transition(db_session, scan, ScanStatus.ENRICHING)

        db_session.refresh(scan)
        assert scan.status == ScanStatus.PARSING
        assert scan.progress == 10

    def test_fail_scan_logs_reason_at_error_level(self, db_session, make_scan):
        scan = pipeline.claim_scan(db_session, make_scan().id)

        pipeline.fail_scan(db_session, scan, "Analysis failed: decompiler crashed")

        assert scan.status == ScanStatus.FAILED
        assert scan.progress == 10
        last = _logs(db_session, scan.id)[-1]
        assert last.stage == "failed"
        assert last.log_level == LogLevel.ERROR
        assert last.message == "Analysis failed: decompiler crashed"

    def test_failed_scan_cannot_move_again(self, db_session, make_scan):
        scan = pipeline.claim_scan(db_session, make_scan().id)
        pipeline.fail_scan(db_session, scan, "boom")

        with pytest.raises(InvalidTransitionError):
            pipeline.transition(db_session, scan, ScanStatus.DECOMPILING)
        with pytest.raises(InvalidTransitionError):
            pipeline.fail_scan(db_session, scan, "again")
