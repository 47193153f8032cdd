"""
Pipeline status state machine.

queued -> parsing -> decompiling -> analyzing -> enriching -> complete,
with failed reachable from any non-terminal status. Drivers may only stay
in the current status (progress update) or step to the immediate
successor, so the analysis log shows every stage in order.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from scanguard.core.exceptions import InvalidTransitionError, ScanNotFoundError
from scanguard.models.analysis_log import AnalysisLog, LogLevel
from scanguard.models.scan import Scan, ScanStatus
from scanguard.services.change_feed import publish_change
from scanguard.utils.timezone import get_now

logger = logging.getLogger(__name__)

STATUS_ORDER = [
    ScanStatus.QUEUED,
    ScanStatus.PARSING,
    ScanStatus.DECOMPILING,
    ScanStatus.ANALYZING,
    ScanStatus.ENRICHING,
    ScanStatus.COMPLETE,
]

STAGE_PROGRESS = {
    ScanStatus.QUEUED: 0,
    ScanStatus.PARSING: 10,
    ScanStatus.DECOMPILING: 30,
    ScanStatus.ANALYZING: 50,
    ScanStatus.ENRICHING: 75,
    ScanStatus.COMPLETE: 100,
}

TERMINAL_STATUSES = frozenset({ScanStatus.COMPLETE, ScanStatus.FAILED})


def is_terminal(status: ScanStatus) -> bool:
    return status in TERMINAL_STATUSES


def next_status(status: ScanStatus) -> Optional[ScanStatus]:
    """Immediate successor in the normal progression, None for terminal states."""
    if status not in STATUS_ORDER or status == ScanStatus.COMPLETE:
        return None
    return STATUS_ORDER[STATUS_ORDER.index(status) + 1]


def validate_transition(
    current_status: ScanStatus,
    current_progress: int,
    new_status: ScanStatus,
    new_progress: int,
    risk_score: Optional[int] = None,
) -> None:
    """
    Raise InvalidTransitionError unless the move is allowed.

    Rules:
        - nothing leaves a terminal status
        - failed is reachable from any non-terminal status
        - otherwise stay put or step to the immediate successor
        - progress is 0-100, never decreases, and is 100 only at complete
        - complete requires a risk score
    """
    if is_terminal(current_status):
        raise InvalidTransitionError(
            f"Scan is already {current_status.value}; no further transitions are allowed"
        )

    if new_status == ScanStatus.FAILED:
        return

    if new_status != current_status and new_status != next_status(current_status):
        raise InvalidTransitionError(
            f"Cannot move from {current_status.value} to {new_status.value}; "
            f"expected {current_status.value} or {next_status(current_status).value}"
        )

    if not 0 <= new_progress <= 100:
        raise InvalidTransitionError(f"Progress must be within 0-100, got {new_progress}")
    if new_progress < current_progress:
        raise InvalidTransitionError(
            f"Progress cannot decrease ({current_progress}% -> {new_progress}%)"
        )

    if new_status == ScanStatus.COMPLETE:
        if new_progress != 100:
            raise InvalidTransitionError("A complete scan must report 100% progress")
        if risk_score is None:
            raise InvalidTransitionError("A complete scan requires a risk score")
    elif new_progress >= 100:
        raise InvalidTransitionError(f"Progress can only reach 100% at complete, not at {new_status.value}")


def append_log(
    db: Session,
    scan_id: str,
    stage: str,
    message: str,
    level: LogLevel = LogLevel.INFO,
    commit: bool = True,
) -> AnalysisLog:
    """Append an entry to the scan's analysis log."""
    entry = AnalysisLog(scan_id=scan_id, stage=stage, log_level=level, message=message)
    db.add(entry)
    if commit:
        db.commit()
    python_level = {
        LogLevel.INFO: logging.INFO,
        LogLevel.WARNING: logging.WARNING,
        LogLevel.ERROR: logging.ERROR,
    }[level]
    logger.log(python_level, f"[scan {scan_id}] [{stage}] {message}")
    return entry


def stage_message(status: ScanStatus, progress: int) -> str:
    return f"Stage {status.value} started - Progress: {progress}%"


def transition(
    db: Session,
    scan: Scan,
    new_status: ScanStatus,
    progress: Optional[int] = None,
    risk_score: Optional[int] = None,
    executive_summary: Optional[str] = None,
) -> Scan:
    """
    Move a scan to a new status (or update progress within its status).

    A status change appends one analysis log entry tagged with the new stage.
    """
    if new_status == ScanStatus.FAILED:
        return fail_scan(db, scan, "Scan marked as failed")

    if progress is None:
        progress = STAGE_PROGRESS[new_status] if new_status != scan.status else scan.progress

    effective_risk = risk_score if risk_score is not None else scan.risk_score
    validate_transition(scan.status, scan.progress, new_status, progress, effective_risk)

    status_changed = new_status != scan.status
    now = get_now()

    scan.status = new_status
    scan.progress = progress
    if risk_score is not None:
        scan.risk_score = risk_score
    if executive_summary is not None:
        scan.executive_summary = executive_summary
    if new_status == ScanStatus.PARSING and scan.started_at is None:
        scan.started_at = now
    if new_status == ScanStatus.COMPLETE:
        scan.completed_at = now
    scan.updated_at = now

    if status_changed:
        append_log(db, scan.id, new_status.value, stage_message(new_status, progress), commit=False)

    db.commit()
    publish_change("scans", "UPDATE", scan.id, scan.id, {"status": new_status.value, "progress": progress})
    return scan


def fail_scan(db: Session, scan: Scan, reason: str) -> Scan:
    """Move a non-terminal scan to failed and record why at error level."""
    if is_terminal(scan.status):
        raise InvalidTransitionError(
            f"Scan is already {scan.status.value}; it cannot be marked failed"
        )

    scan.status = ScanStatus.FAILED
    scan.updated_at = get_now()
    append_log(db, scan.id, ScanStatus.FAILED.value, reason, level=LogLevel.ERROR, commit=False)
    db.commit()
    publish_change("scans", "UPDATE", scan.id, scan.id, {"status": ScanStatus.FAILED.value, "progress": scan.progress})
    return scan


def claim_scan(db: Session, scan_id: str) -> Scan:
    """
    Atomically move a queued scan to parsing.

    The conditional UPDATE makes concurrent start requests safe: exactly one
    caller wins, the others get InvalidTransitionError and must not touch
    the scan.
    """
    now = get_now()
    progress = STAGE_PROGRESS[ScanStatus.PARSING]
    claimed = (
        db.query(Scan)
        .filter(Scan.id == scan_id, Scan.status == ScanStatus.QUEUED)
        .update(
            {
                Scan.status: ScanStatus.PARSING,
                Scan.progress: progress,
                Scan.started_at: now,
                Scan.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    if not claimed:
        db.rollback()
        scan = db.get(Scan, scan_id)
        if scan is None:
            raise ScanNotFoundError(scan_id)
        raise InvalidTransitionError(
            f"Scan {scan_id} is {scan.status.value}; only queued scans can be started"
        )

    append_log(db, scan_id, ScanStatus.PARSING.value, stage_message(ScanStatus.PARSING, progress), commit=False)
    db.commit()
    scan = db.get(Scan, scan_id)
    db.refresh(scan)
    publish_change("scans", "UPDATE", scan_id, scan_id, {"status": ScanStatus.PARSING.value, "progress": progress})
    return scan
