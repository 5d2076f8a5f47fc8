"""
Attendance auto-decision engine.

For every pending participation: find the student's row in the uploaded
attendance sheet, approve when the total percentage reaches the threshold,
reject otherwise. Participations without a matching row are left pending and
reported as not found; missing data never turns into a rejection.
"""

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Callable, List, Optional

from services.attendance_ingestor import AttendanceTable
from services.attendance_matcher import AttendanceMatcher
from services.participation_store import ParticipationRecord, ParticipationStore
from services.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 75.0

OUTCOME_APPROVED = "approved"
OUTCOME_REJECTED = "rejected"
OUTCOME_NOT_FOUND = "not_found"
OUTCOME_FAILED = "failed"
# Store reported the participation was no longer pending
OUTCOME_UNCHANGED = "unchanged"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


def classify(percentage: float, threshold: float = DEFAULT_THRESHOLD) -> Decision:
    """Inclusive at the threshold: 75 approves, 74.9 rejects."""
    return Decision.APPROVE if percentage >= threshold else Decision.REJECT


def rejection_reason(percentage: float, threshold: float = DEFAULT_THRESHOLD) -> str:
    return f"Attendance {percentage:g}% is below the required {threshold:g}%"


def eligibility(percentage: float, threshold: float = DEFAULT_THRESHOLD) -> dict:
    eligible = classify(percentage, threshold) is Decision.APPROVE
    return {
        "eligible": eligible,
        "current_attendance": percentage,
        "required_attendance": threshold,
        "short_by": 0 if eligible else round(threshold - percentage, 2),
        "message": "Student meets attendance requirement" if eligible
        else f"Student's attendance ({percentage:g}%) is below the required {threshold:g}%",
    }


@dataclass
class ParticipationOutcome:
    participation_id: int
    student_identifier: str
    outcome: str
    percentage: Optional[float] = None
    match_type: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchSummary:
    outcomes: List[ParticipationOutcome] = field(default_factory=list)
    # Pending participations left after the post-batch refresh
    pending_after: Optional[int] = None
    already_processed: bool = False

    def count(self, outcome: str) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    @property
    def approved(self) -> int:
        return self.count(OUTCOME_APPROVED)

    @property
    def rejected(self) -> int:
        return self.count(OUTCOME_REJECTED)

    @property
    def not_found(self) -> int:
        return self.count(OUTCOME_NOT_FOUND)

    @property
    def failed(self) -> int:
        return self.count(OUTCOME_FAILED)

    @property
    def unchanged(self) -> int:
        return self.count(OUTCOME_UNCHANGED)

    def to_dict(self) -> dict:
        return {
            "already_processed": self.already_processed,
            "total": len(self.outcomes),
            "approved": self.approved,
            "rejected": self.rejected,
            "not_found": self.not_found,
            "failed": self.failed,
            "unchanged": self.unchanged,
            "pending_after": self.pending_after,
            "outcomes": [asdict(o) for o in self.outcomes],
        }


class AutoDecisionEngine:
    def __init__(
        self,
        store: ParticipationStore,
        matcher: Optional[AttendanceMatcher] = None,
        threshold: float = DEFAULT_THRESHOLD,
        on_outcome: Optional[Callable[[ParticipationOutcome], None]] = None,
        on_complete: Optional[Callable[[BatchSummary], None]] = None,
    ):
        self._store = store
        self._matcher = matcher or AttendanceMatcher()
        self.threshold = threshold
        self._on_outcome = on_outcome
        self._on_complete = on_complete

    async def process_pending(self, table: AttendanceTable) -> BatchSummary:
        """
        Decide every pending participation against the table.

        Transitions are dispatched together and all of them settle before the
        batch completes; one failure never stops the others. A single refresh
        of the pending list follows the batch.
        """
        try:
            listed = await self._store.list_pending()
        except Exception as e:
            raise StoreUnavailable(f"could not list pending participations: {e}") from e
        pending = [p for p in listed if p.status == "pending"]
        logger.info("Auto-processing %d pending participations against %d attendance rows", len(pending), len(table))

        outcomes = await asyncio.gather(*(self._decide(p, table) for p in pending))
        summary = BatchSummary(outcomes=list(outcomes))

        try:
            summary.pending_after = len(await self._store.list_pending())
        except Exception:
            logger.exception("Refreshing pending participations after auto-process failed")

        logger.info(
            "Auto-process finished: %d approved, %d rejected, %d not found, %d failed",
            summary.approved, summary.rejected, summary.not_found, summary.failed,
        )
        if self._on_complete:
            self._on_complete(summary)
        return summary

    async def _decide(self, participation: ParticipationRecord, table: AttendanceTable) -> ParticipationOutcome:
        match = self._matcher.resolve_record(participation.student_identifier, table)
        if match is None:
            outcome = ParticipationOutcome(
                participation_id=participation.id,
                student_identifier=participation.student_identifier,
                outcome=OUTCOME_NOT_FOUND,
            )
            return self._emit(outcome)

        decision = classify(match.percentage, self.threshold)
        reason = None if decision is Decision.APPROVE else rejection_reason(match.percentage, self.threshold)
        outcome = ParticipationOutcome(
            participation_id=participation.id,
            student_identifier=participation.student_identifier,
            outcome=OUTCOME_FAILED,
            percentage=match.percentage,
            match_type=match.match_type,
        )
        try:
            changed = await self._store.set_status(
                participation.id, decision, reason=reason, percentage=match.percentage
            )
        except Exception as e:
            # Left in its prior state for a manual retry
            logger.warning("Status update for participation %s failed: %s", participation.id, e)
            outcome.error = str(e)
        else:
            if not changed:
                outcome.outcome = OUTCOME_UNCHANGED
            elif decision is Decision.APPROVE:
                outcome.outcome = OUTCOME_APPROVED
            else:
                outcome.outcome = OUTCOME_REJECTED
        return self._emit(outcome)

    def _emit(self, outcome: ParticipationOutcome) -> ParticipationOutcome:
        if self._on_outcome:
            self._on_outcome(outcome)
        return outcome
