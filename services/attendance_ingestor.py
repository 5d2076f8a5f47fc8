"""
Attendance Sheet Ingestor
Reads the university attendance export (one row per student, a "REGD. NO"
column, per-subject columns and a "TOTAL %" column) into an in-memory
AttendanceTable keyed by normalized registration number.
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, List, Optional

import pandas as pd

from services.exceptions import FormatError, IngestionCancelled
from services.identifiers import normalize_identifier

logger = logging.getLogger(__name__)

IDENTIFIER_MARKER = "REGD"
PERCENTAGE_MARKER = "TOTAL"

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls", ".csv")

_LEADING_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


# ==========================================
#   RECORD TYPES
# ==========================================

@dataclass(frozen=True)
class AttendanceRecord:
    identifier: str
    normalized_identifier: str
    percentage: float
    subject_breakdown: Mapping[str, Any] = field(default_factory=dict)
    row_number: Optional[int] = None  # 1-based sheet row

    def __post_init__(self):
        if not isinstance(self.subject_breakdown, MappingProxyType):
            object.__setattr__(self, "subject_breakdown", MappingProxyType(dict(self.subject_breakdown)))


class AttendanceTable(Mapping):
    """
    Read-only mapping normalized identifier -> AttendanceRecord.

    Iteration follows the order keys were first seen in the sheet. On duplicate
    identifiers the "last" policy replaces the record in place, "first" keeps
    the earliest one.
    """

    def __init__(
        self,
        records: Iterable[AttendanceRecord] = (),
        duplicate_policy: str = "last",
        skipped_rows: int = 0,
    ):
        if duplicate_policy not in ("first", "last"):
            raise ValueError(f"Unknown duplicate policy: {duplicate_policy}")
        data: dict = {}
        duplicates = 0
        for record in records:
            key = record.normalized_identifier
            if not key:
                raise ValueError("AttendanceRecord with an empty identifier cannot be a table key")
            if key in data:
                duplicates += 1
                if duplicate_policy == "first":
                    continue
            data[key] = record
        self._records = data
        self.duplicate_policy = duplicate_policy
        self.duplicate_rows = duplicates
        self.skipped_rows = skipped_rows

    def __getitem__(self, key: str) -> AttendanceRecord:
        return self._records[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"<AttendanceTable records={len(self)} skipped={self.skipped_rows}>"


# ==========================================
#   CELL HELPERS
# ==========================================

def is_blank(value) -> bool:
    """None, NaN and whitespace-only strings count as empty cells"""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_text(value) -> str:
    """Cell as trimmed text; integral floats (231.0) render without the decimal part"""
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_percentage(value) -> float:
    """
    Lenient numeric parse: "82.5%" -> 82.5, garbage -> 0.
    Result is clamped to 0-100.
    """
    if isinstance(value, bool):
        number = 0.0
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(cell_text(value))
        number = float(match.group(0)) if match else 0.0
    if not math.isfinite(number):
        return 0.0
    return min(100.0, max(0.0, number))


# ==========================================
#   FILE DECODING
# ==========================================

def read_spreadsheet_rows(content: bytes, filename: str) -> List[list]:
    """
    Decode the first sheet of an uploaded file into a grid of raw cell values.
    No header inference happens here; the header row is located later.
    """
    name = (filename or "").lower()
    if not name.endswith(SPREADSHEET_EXTENSIONS):
        raise FormatError(f"unsupported file type: {filename}")

    try:
        if name.endswith(".csv"):
            # Title lines above the header are narrower than the table, so name
            # every column up front instead of letting the first line fix the width
            text = content.decode("utf-8-sig", errors="replace")
            width = max((line.count(",") + 1 for line in text.splitlines()), default=1)
            df = pd.read_csv(
                io.StringIO(text), header=None, names=list(range(width)), dtype=object,
                keep_default_na=False, na_values=[""], skip_blank_lines=False,
            )
        else:
            # openpyxl = .xlsx (new format), xlrd = .xls (old format)
            engine = "openpyxl" if name.endswith(".xlsx") else "xlrd"
            df = pd.read_excel(io.BytesIO(content), header=None, dtype=object, engine=engine)
    except pd.errors.EmptyDataError:
        return []
    except Exception as e:
        raise FormatError(f"unreadable spreadsheet: {e}") from e

    df = df.astype(object).where(pd.notna(df), None)
    return df.values.tolist()


# ==========================================
#   INGESTOR
# ==========================================

def find_header_row(rows: List[list], scan_rows: int = 100) -> int:
    """Index of the first row (within scan_rows) mentioning both REGD and TOTAL, or -1"""
    for i, row in enumerate(rows[:scan_rows]):
        if not isinstance(row, (list, tuple)):
            continue
        row_string = " ".join(cell_text(c) for c in row).upper()
        if IDENTIFIER_MARKER in row_string and PERCENTAGE_MARKER in row_string:
            return i
    return -1


def _find_column(header: list, marker: str) -> int:
    for i, cell in enumerate(header):
        if marker in cell_text(cell).upper():
            return i
    return -1


class AttendanceIngestor:
    """
    Builds an AttendanceTable from a decoded sheet.

    Rows are consumed in chunks of chunk_size; between chunks the coroutine
    yields to the event loop and reports progress (0-100) through on_progress.
    on_complete receives the finished table; failures are raised, never
    reported through it (FormatError, IngestionCancelled).
    """

    def __init__(
        self,
        header_scan_rows: int = 100,
        chunk_size: int = 1000,
        duplicate_policy: str = "last",
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.header_scan_rows = header_scan_rows
        self.chunk_size = chunk_size
        self.duplicate_policy = duplicate_policy

    async def ingest_file(
        self,
        content: bytes,
        filename: str,
        *,
        on_progress: Optional[Callable[[int], None]] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
        on_complete: Optional[Callable[[AttendanceTable], None]] = None,
    ) -> AttendanceTable:
        rows = await asyncio.to_thread(read_spreadsheet_rows, content, filename)
        return await self.ingest(rows, on_progress=on_progress, is_cancelled=is_cancelled, on_complete=on_complete)

    async def ingest(
        self,
        rows: List[list],
        *,
        on_progress: Optional[Callable[[int], None]] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
        on_complete: Optional[Callable[[AttendanceTable], None]] = None,
    ) -> AttendanceTable:
        header_idx = find_header_row(rows, self.header_scan_rows)
        if header_idx < 0:
            raise FormatError("header not found")

        header = list(rows[header_idx])
        id_col = _find_column(header, IDENTIFIER_MARKER)
        pct_col = _find_column(header, PERCENTAGE_MARKER)
        # A single cell naming both cannot serve as identifier and percentage
        if id_col < 0 or pct_col < 0 or id_col == pct_col:
            raise FormatError("required columns missing")

        subject_cols = [(j, cell_text(header[j])) for j in range(id_col + 1, pct_col)]
        subject_cols = [(j, name) for j, name in subject_cols if name]

        records: List[AttendanceRecord] = []
        skipped = 0
        last_pct = -1

        def report(pct: int) -> None:
            nonlocal last_pct
            if on_progress and pct > last_pct:
                last_pct = pct
                on_progress(pct)

        report(0)
        first_data = header_idx + 1
        total_data = len(rows) - first_data

        for start in range(first_data, len(rows), self.chunk_size):
            end = min(start + self.chunk_size, len(rows))
            for i in range(start, end):
                row = rows[i]
                if not row or all(is_blank(c) for c in row):
                    continue

                raw_id = row[id_col] if id_col < len(row) else None
                raw_pct = row[pct_col] if pct_col < len(row) else None
                if is_blank(raw_id) or is_blank(raw_pct):
                    skipped += 1
                    continue

                identifier = cell_text(raw_id)
                normalized = normalize_identifier(identifier)
                if not normalized:
                    skipped += 1
                    continue

                subjects = {}
                for j, subject in subject_cols:
                    if j < len(row) and not is_blank(row[j]):
                        subjects[subject] = row[j]

                records.append(AttendanceRecord(
                    identifier=identifier,
                    normalized_identifier=normalized,
                    percentage=parse_percentage(raw_pct),
                    subject_breakdown=subjects,
                    row_number=i + 1,
                ))

            report(min(99, int(100 * (end - first_data) / total_data)))
            # Let the event loop breathe between chunks
            await asyncio.sleep(0)
            if is_cancelled and is_cancelled():
                raise IngestionCancelled("attendance file was cleared during ingestion")

        table = AttendanceTable(records, duplicate_policy=self.duplicate_policy, skipped_rows=skipped)
        report(100)
        logger.info(
            "Attendance sheet ingested: %d records, %d skipped rows, %d duplicate identifiers",
            len(table), skipped, table.duplicate_rows,
        )
        if on_complete:
            on_complete(table)
        return table
