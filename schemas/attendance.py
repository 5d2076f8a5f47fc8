from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, Dict, List, Optional

# 1. Upload / sheet state
class UploadResponse(BaseModel):
    filename: str
    record_count: int
    skipped_rows: int
    duplicate_rows: int

class SheetStatus(BaseModel):
    loaded: bool
    loading: bool
    filename: Optional[str]
    progress: int
    record_count: int
    skipped_rows: int
    processed: bool
    threshold: float
    error: Optional[str]

# 2. Lookups
class AttendanceLookup(BaseModel):
    identifier: str
    matched_identifier: str
    match_type: str
    percentage: float
    subjects: Dict[str, Any]
    eligible: bool

class Eligibility(BaseModel):
    participation_id: int
    student_identifier: str
    eligible: bool
    current_attendance: float
    required_attendance: float
    short_by: float
    message: str

class BelowThresholdItem(BaseModel):
    identifier: str
    percentage: float
    short_by: float

class BulkCheckRequest(BaseModel):
    identifiers: List[str]

class BulkCheckItem(BaseModel):
    identifier: str
    found: bool
    matched_identifier: Optional[str] = None
    eligible: bool
    current_attendance: Optional[float] = None
    required_attendance: float
    short_by: Optional[float] = None
    message: str

class BulkCheckResult(BaseModel):
    total: int
    eligible: int
    not_eligible: int
    not_found: int
    details: List[BulkCheckItem]

class ReportStudent(BaseModel):
    registration_number: str
    name: Optional[str] = None
    department: Optional[str] = None
    year: Optional[int] = None
    percentage: float
    eligible: bool

class ReportStats(BaseModel):
    total_students: int
    eligible: int
    not_eligible: int
    average_attendance: float
    highest_attendance: float
    lowest_attendance: float
    unmatched_students: int

class AttendanceReport(BaseModel):
    filters: Dict[str, Any]
    stats: ReportStats
    students: List[ReportStudent]

# 3. Auto-process batch
class OutcomeItem(BaseModel):
    participation_id: int
    student_identifier: str
    outcome: str  # approved | rejected | not_found | failed | unchanged
    percentage: Optional[float] = None
    match_type: Optional[str] = None
    error: Optional[str] = None

class BatchResult(BaseModel):
    already_processed: bool
    total: int
    approved: int
    rejected: int
    not_found: int
    failed: int
    unchanged: int
    pending_after: Optional[int] = None
    outcomes: List[OutcomeItem]

# 4. Participations
class ParticipationOut(BaseModel):
    id: int
    student_id: int
    registration_number: Optional[str] = None
    student_name: Optional[str] = None
    event_id: int
    event_title: Optional[str] = None
    status: str
    registered_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    attendance_percentage: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

class RejectRequest(BaseModel):
    reason: Optional[str] = None
