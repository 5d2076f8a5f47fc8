from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload
from datetime import datetime, timezone
from typing import List, Optional
import logging

from database import get_db
from models.participations import Participation, PARTICIPATION_STATUSES
from schemas.attendance import ParticipationOut, RejectRequest
from services.exceptions import InvalidTransition, ParticipationNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/participations", tags=["Participations"])

MANUAL_DECIDER = "admin"


def _to_out(p: Participation) -> dict:
    return {
        "id": p.id,
        "student_id": p.student_id,
        "registration_number": p.student.registration_number if p.student else None,
        "student_name": p.student.name if p.student else None,
        "event_id": p.event_id,
        "event_title": p.event.title if p.event else None,
        "status": p.status,
        "registered_at": p.registered_at,
        "approved_at": p.approved_at,
        "approved_by": p.approved_by,
        "rejection_reason": p.rejection_reason,
        "attendance_percentage": p.attendance_percentage,
    }


def get_pending_participation(participation_id: int, db: Session) -> Participation:
    """Load a participation for an operator decision; only pending ones can be decided."""
    participation = db.query(Participation).options(
        joinedload(Participation.student), joinedload(Participation.event)
    ).filter(Participation.id == participation_id).first()
    if not participation:
        raise ParticipationNotFound(participation_id)
    if participation.status != "pending":
        raise InvalidTransition(participation_id, participation.status)
    return participation


def _decision_error(e: Exception) -> HTTPException:
    if isinstance(e, ParticipationNotFound):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=409, detail=str(e))


# 1. LIST
@router.get("", response_model=List[ParticipationOut])
def list_participations(status: Optional[str] = None, db: Session = Depends(get_db)):
    query = db.query(Participation).options(
        joinedload(Participation.student), joinedload(Participation.event)
    )
    if status:
        if status not in PARTICIPATION_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'")
        query = query.filter(Participation.status == status)
    return [_to_out(p) for p in query.order_by(Participation.id).all()]


# 2. MANUAL APPROVE
@router.put("/{participation_id}/approve", response_model=ParticipationOut)
def approve_participation(participation_id: int, db: Session = Depends(get_db)):
    try:
        participation = get_pending_participation(participation_id, db)
    except (ParticipationNotFound, InvalidTransition) as e:
        raise _decision_error(e)

    participation.status = "approved"
    participation.approved_at = datetime.now(timezone.utc).replace(tzinfo=None)
    participation.approved_by = MANUAL_DECIDER
    participation.rejection_reason = None
    try:
        db.commit()
        db.refresh(participation)
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
    logger.info("Participation %s approved by %s", participation_id, MANUAL_DECIDER)
    return _to_out(participation)


# 3. MANUAL REJECT
@router.put("/{participation_id}/reject", response_model=ParticipationOut)
def reject_participation(
    participation_id: int,
    payload: Optional[RejectRequest] = None,
    db: Session = Depends(get_db),
):
    try:
        participation = get_pending_participation(participation_id, db)
    except (ParticipationNotFound, InvalidTransition) as e:
        raise _decision_error(e)

    participation.status = "rejected"
    participation.rejection_reason = payload.reason if payload else None
    try:
        db.commit()
        db.refresh(participation)
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=str(e))
    logger.info("Participation %s rejected by %s", participation_id, MANUAL_DECIDER)
    return _to_out(participation)
