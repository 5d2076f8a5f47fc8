import logging
from dataclasses import dataclass
from typing import Optional

from services.attendance_ingestor import AttendanceRecord, AttendanceTable
from services.identifiers import normalize_identifier

logger = logging.getLogger(__name__)

NOT_FOUND = None

MATCH_EXACT = "exact"
MATCH_SUFFIX = "suffix"
MATCH_SUBSTRING = "substring"


@dataclass(frozen=True)
class MatchResult:
    record: AttendanceRecord
    match_type: str  # exact | suffix | substring

    @property
    def percentage(self) -> float:
        return self.record.percentage


class AttendanceMatcher:
    """
    Resolves a participation's student identifier against an AttendanceTable.

    Lookup order: exact key, then the first key ending with the identifier
    (participation stores a roll-number suffix, sheet stores the full
    registration number), then the first key containing it. Ties go to the
    first key in sheet order; there is no similarity scoring.
    """

    def __init__(self, substring_min_length: int = 3):
        self.substring_min_length = substring_min_length

    def resolve_record(self, student_identifier, table: AttendanceTable) -> Optional[MatchResult]:
        needle = normalize_identifier(student_identifier)
        if not needle:
            return None

        record = table.get(needle)
        if record is not None:
            return MatchResult(record, MATCH_EXACT)

        for key, record in table.items():
            if key.endswith(needle):
                return MatchResult(record, MATCH_SUFFIX)

        # Short identifiers would match nearly every key
        if len(needle) >= self.substring_min_length:
            for key, record in table.items():
                if needle in key:
                    return MatchResult(record, MATCH_SUBSTRING)

        return None

    def resolve(self, student_identifier, table: AttendanceTable) -> Optional[float]:
        """Attendance percentage for the identifier, or NOT_FOUND (None)"""
        match = self.resolve_record(student_identifier, table)
        if match is None:
            logger.debug("No attendance row for identifier %r", student_identifier)
            return NOT_FOUND
        return match.percentage


_default_matcher = AttendanceMatcher()


def resolve(student_identifier, table: AttendanceTable) -> Optional[float]:
    return _default_matcher.resolve(student_identifier, table)
