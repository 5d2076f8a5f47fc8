"""
Participation Store client used by the auto-decision engine.

The engine only needs two calls: list the pending participations and move one
of them to approved/rejected. The SQL implementation runs each unit of work
on a worker thread so concurrent transitions do not block the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from models.participations import Participation
from services.exceptions import TransitionError

logger = logging.getLogger(__name__)

AUTO_DECIDER = "auto-attendance"

# Decision value -> participation status
DECISION_STATUS = {
    "approve": "approved",
    "reject": "rejected",
}


@dataclass(frozen=True)
class ParticipationRecord:
    id: int
    student_identifier: str
    status: str
    student_name: Optional[str] = None
    event_title: Optional[str] = None


class ParticipationStore(Protocol):
    async def list_pending(self) -> List[ParticipationRecord]:
        ...

    async def set_status(
        self,
        participation_id: int,
        decision,
        reason: Optional[str] = None,
        percentage: Optional[float] = None,
    ) -> bool:
        ...


def to_record(p: Participation) -> ParticipationRecord:
    student = p.student
    return ParticipationRecord(
        id=p.id,
        student_identifier=student.registration_number if student else "",
        status=p.status,
        student_name=student.name if student else None,
        event_title=p.event.title if p.event else None,
    )


class SqlParticipationStore:
    """
    SQLAlchemy-backed store. Every call gets its own session, a timeout per
    attempt and a bounded number of retries on database errors.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        timeout: float = 10.0,
        retries: int = 2,
        retry_delay: float = 0.5,
    ):
        self._session_factory = session_factory
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay

    async def list_pending(self) -> List[ParticipationRecord]:
        return await self._call(self._list_pending_sync)

    async def set_status(
        self,
        participation_id: int,
        decision,
        reason: Optional[str] = None,
        percentage: Optional[float] = None,
    ) -> bool:
        """
        Move a pending participation to approved/rejected.
        Returns False when the row is no longer pending (nothing changed).
        """
        status = DECISION_STATUS[getattr(decision, "value", decision)]
        try:
            return await self._call(self._set_status_sync, participation_id, status, reason, percentage)
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            raise TransitionError(participation_id, str(e) or type(e).__name__) from e

    async def _call(self, fn, *args):
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                # A timed-out attempt may still commit in its thread; the
                # pending-only UPDATE makes the retry a no-op in that case.
                return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
            except (SQLAlchemyError, asyncio.TimeoutError) as e:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Participation store call %s failed (attempt %d/%d): %s",
                    fn.__name__, attempt, attempts, e,
                )
                await asyncio.sleep(self.retry_delay)

    # ==========================================
    #   SYNC UNITS OF WORK (worker thread)
    # ==========================================

    def _list_pending_sync(self) -> List[ParticipationRecord]:
        db = self._session_factory()
        try:
            rows = (
                db.query(Participation)
                .options(joinedload(Participation.student), joinedload(Participation.event))
                .filter(Participation.status == "pending")
                .order_by(Participation.id)
                .all()
            )
            return [to_record(p) for p in rows]
        finally:
            db.close()

    def _set_status_sync(
        self,
        participation_id: int,
        status: str,
        reason: Optional[str],
        percentage: Optional[float],
    ) -> bool:
        db = self._session_factory()
        try:
            values = {"status": status}
            if percentage is not None:
                values["attendance_percentage"] = percentage
            if status == "approved":
                values["approved_at"] = datetime.now(timezone.utc).replace(tzinfo=None)
                values["approved_by"] = AUTO_DECIDER
                values["rejection_reason"] = None
            else:
                values["rejection_reason"] = reason

            updated = (
                db.query(Participation)
                .filter(Participation.id == participation_id, Participation.status == "pending")
                .update(values, synchronize_session=False)
            )
            db.commit()
            return updated == 1
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
