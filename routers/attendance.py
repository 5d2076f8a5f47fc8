"""
Attendance Sheet Router
Admins upload the university attendance export, look students up in it, and
auto-approve/reject pending participations against the attendance threshold.
"""

from fastapi import APIRouter, Depends, HTTPException, File, Query, UploadFile
from sqlalchemy.orm import Session, joinedload
from typing import List, Optional
import logging

from database import get_db
from models.participations import Participation
from models.students import Student
from schemas.attendance import (
    UploadResponse, SheetStatus, AttendanceLookup, Eligibility,
    BelowThresholdItem, BulkCheckRequest, BulkCheckResult, AttendanceReport, BatchResult,
)
from services.attendance_ingestor import SPREADSHEET_EXTENSIONS
from services.attendance_session import AttendanceSession, get_attendance_session
from services.auto_decision import classify, eligibility, Decision
from services.exceptions import FormatError, IngestionCancelled, NoAttendanceLoaded, StoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/attendance", tags=["Attendance"])


def _require_sheet(session: AttendanceSession):
    try:
        return session.require_table()
    except NoAttendanceLoaded as e:
        raise HTTPException(status_code=409, detail=str(e))


# ==========================================
#   1. SHEET UPLOAD / STATE
# ==========================================

@router.post("/upload", response_model=UploadResponse)
async def upload_attendance_sheet(
    file: UploadFile = File(...),
    session: AttendanceSession = Depends(get_attendance_session),
):
    filename = file.filename or ""
    name = filename.lower()

    if name.endswith(".pdf"):
        raise HTTPException(
            status_code=415,
            detail="PDF attendance files are not supported for matching. Please upload an Excel file (.xlsx or .xls)",
        )
    if not name.endswith(SPREADSHEET_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail="Invalid file format. Please upload an Excel file (.xlsx or .xls)",
        )

    contents = await file.read()
    try:
        table = await session.load_file(contents, filename)
    except FormatError as e:
        raise HTTPException(status_code=400, detail=f"Could not read attendance sheet: {e}")
    except IngestionCancelled as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "filename": filename,
        "record_count": len(table),
        "skipped_rows": table.skipped_rows,
        "duplicate_rows": table.duplicate_rows,
    }


@router.get("/status", response_model=SheetStatus)
def sheet_status(session: AttendanceSession = Depends(get_attendance_session)):
    return session.status()


@router.delete("/file")
def clear_attendance_sheet(session: AttendanceSession = Depends(get_attendance_session)):
    session.clear()
    return {"message": "Attendance sheet cleared"}


# ==========================================
#   2. LOOKUPS
# ==========================================

@router.get("/check/{identifier}", response_model=AttendanceLookup)
def check_attendance(identifier: str, session: AttendanceSession = Depends(get_attendance_session)):
    _require_sheet(session)
    match = session.lookup(identifier)
    if match is None:
        raise HTTPException(status_code=404, detail=f"Attendance not found for '{identifier}'")

    record = match.record
    return {
        "identifier": identifier,
        "matched_identifier": record.identifier,
        "match_type": match.match_type,
        "percentage": record.percentage,
        "subjects": {k: str(v) for k, v in record.subject_breakdown.items()},
        "eligible": classify(record.percentage, session.threshold) is Decision.APPROVE,
    }


@router.get("/eligibility/{participation_id}", response_model=Eligibility)
def participation_eligibility(
    participation_id: int,
    db: Session = Depends(get_db),
    session: AttendanceSession = Depends(get_attendance_session),
):
    participation = db.query(Participation).options(joinedload(Participation.student)).filter(
        Participation.id == participation_id
    ).first()
    if not participation:
        raise HTTPException(status_code=404, detail=f"Participation {participation_id} not found")

    _require_sheet(session)
    reg_no = participation.student.registration_number if participation.student else ""
    match = session.lookup(reg_no)
    if match is None:
        raise HTTPException(status_code=404, detail=f"Attendance not found for '{reg_no}'")

    return {
        "participation_id": participation_id,
        "student_identifier": reg_no,
        **eligibility(match.percentage, session.threshold),
    }


@router.get("/below-threshold", response_model=List[BelowThresholdItem])
def below_threshold(
    threshold: Optional[float] = Query(None, ge=0, le=100),
    session: AttendanceSession = Depends(get_attendance_session),
):
    table = _require_sheet(session)
    if threshold is None:
        threshold = session.threshold
    return [
        {
            "identifier": record.identifier,
            "percentage": record.percentage,
            "short_by": round(threshold - record.percentage, 2),
        }
        for record in table.values()
        if classify(record.percentage, threshold) is Decision.REJECT
    ]


@router.post("/bulk-check", response_model=BulkCheckResult)
def bulk_check(payload: BulkCheckRequest, session: AttendanceSession = Depends(get_attendance_session)):
    _require_sheet(session)
    threshold = session.threshold

    details = []
    for identifier in payload.identifiers:
        match = session.lookup(identifier)
        if match is None:
            details.append({
                "identifier": identifier,
                "found": False,
                "eligible": False,
                "required_attendance": threshold,
                "message": f"Attendance not found for '{identifier}'",
            })
            continue
        details.append({
            "identifier": identifier,
            "found": True,
            "matched_identifier": match.record.identifier,
            **eligibility(match.percentage, threshold),
        })

    eligible_count = sum(1 for d in details if d["eligible"])
    not_found = sum(1 for d in details if not d["found"])
    return {
        "total": len(details),
        "eligible": eligible_count,
        "not_eligible": len(details) - eligible_count - not_found,
        "not_found": not_found,
        "details": details,
    }


@router.get("/report", response_model=AttendanceReport)
def attendance_report(
    department: Optional[str] = None,
    year: Optional[int] = None,
    min_attendance: Optional[float] = None,
    max_attendance: Optional[float] = None,
    db: Session = Depends(get_db),
    session: AttendanceSession = Depends(get_attendance_session),
):
    """Registered students joined with their sheet attendance, highest first"""
    _require_sheet(session)
    threshold = session.threshold

    query = db.query(Student)
    if department:
        query = query.filter(Student.department == department)
    if year is not None:
        query = query.filter(Student.year == year)

    students = []
    unmatched = 0
    for student in query.all():
        match = session.lookup(student.registration_number)
        if match is None:
            unmatched += 1
            continue
        pct = match.percentage
        if min_attendance is not None and pct < min_attendance:
            continue
        if max_attendance is not None and pct > max_attendance:
            continue
        students.append({
            "registration_number": student.registration_number,
            "name": student.name,
            "department": student.department,
            "year": student.year,
            "percentage": pct,
            "eligible": classify(pct, threshold) is Decision.APPROVE,
        })
    students.sort(key=lambda s: s["percentage"], reverse=True)

    eligible_count = sum(1 for s in students if s["eligible"])
    percentages = [s["percentage"] for s in students]
    return {
        "filters": {
            "department": department,
            "year": year,
            "min_attendance": min_attendance,
            "max_attendance": max_attendance,
        },
        "stats": {
            "total_students": len(students),
            "eligible": eligible_count,
            "not_eligible": len(students) - eligible_count,
            "average_attendance": round(sum(percentages) / len(percentages), 2) if percentages else 0,
            "highest_attendance": percentages[0] if percentages else 0,
            "lowest_attendance": percentages[-1] if percentages else 0,
            "unmatched_students": unmatched,
        },
        "students": students,
    }


# ==========================================
#   3. AUTO APPROVE / REJECT
# ==========================================

@router.post("/auto-process", response_model=BatchResult)
async def auto_process_pending(session: AttendanceSession = Depends(get_attendance_session)):
    _require_sheet(session)
    try:
        summary = await session.auto_process()
    except StoreUnavailable as e:
        logger.error("Auto-process aborted: %s", e)
        raise HTTPException(status_code=503, detail="Participation store unavailable, try again")
    return summary.to_dict()
