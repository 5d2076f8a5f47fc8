"""
Per-upload attendance state shared by the upload and auto-process endpoints.

One uploaded sheet at a time. A new upload or a clear bumps the generation,
which invalidates any ingestion still running for an older file, and resets
the "already processed" flag guarding the auto-decision batch.
"""

import logging
from typing import Optional

from fastapi import Request

from config import Settings
from services.attendance_ingestor import AttendanceIngestor, AttendanceTable
from services.attendance_matcher import AttendanceMatcher, MatchResult
from services.auto_decision import AutoDecisionEngine, BatchSummary
from services.exceptions import AttendanceError, IngestionCancelled, NoAttendanceLoaded, StoreUnavailable
from services.participation_store import SqlParticipationStore

logger = logging.getLogger(__name__)


class AttendanceSession:
    def __init__(
        self,
        ingestor: AttendanceIngestor,
        engine: AutoDecisionEngine,
        matcher: Optional[AttendanceMatcher] = None,
    ):
        self._ingestor = ingestor
        self._engine = engine
        self._matcher = matcher or AttendanceMatcher()
        self._generation = 0

        self.table: Optional[AttendanceTable] = None
        self.filename: Optional[str] = None
        self.progress = 0
        self.loading = False
        self.error: Optional[str] = None
        self.processed = False

    @property
    def threshold(self) -> float:
        return self._engine.threshold

    @property
    def generation(self) -> int:
        return self._generation

    async def load_file(self, content: bytes, filename: str) -> AttendanceTable:
        """Replace the current sheet with a new upload. FormatError leaves no table behind."""
        self._generation += 1
        generation = self._generation
        self.table = None
        self.filename = filename
        self.progress = 0
        self.loading = True
        self.error = None
        self.processed = False

        def is_stale() -> bool:
            return generation != self._generation

        def on_progress(pct: int) -> None:
            if not is_stale():
                self.progress = pct

        try:
            table = await self._ingestor.ingest_file(
                content, filename, on_progress=on_progress, is_cancelled=is_stale
            )
            if is_stale():
                raise IngestionCancelled(f"{filename} was cleared or replaced while loading")
        except AttendanceError as e:
            if not is_stale():
                self.error = str(e)
                self.filename = None
                self.loading = False
            logger.warning("Attendance upload %s rejected: %s", filename, e)
            raise

        self.table = table
        self.loading = False
        logger.info("Attendance sheet %s loaded (%d records)", filename, len(table))
        return table

    def clear(self) -> None:
        self._generation += 1
        self.table = None
        self.filename = None
        self.progress = 0
        self.loading = False
        self.error = None
        self.processed = False
        logger.info("Attendance sheet cleared")

    def require_table(self) -> AttendanceTable:
        if self.table is None:
            raise NoAttendanceLoaded("No attendance sheet uploaded")
        return self.table

    def lookup(self, identifier: str) -> Optional[MatchResult]:
        return self._matcher.resolve_record(identifier, self.require_table())

    async def auto_process(self) -> BatchSummary:
        """Run the decision batch once per uploaded file; later calls are no-ops."""
        table = self.require_table()
        if self.processed:
            logger.info("Attendance sheet %s already processed, skipping", self.filename)
            return BatchSummary(already_processed=True)
        # Set before dispatch so a concurrent call cannot start a second batch
        self.processed = True
        try:
            return await self._engine.process_pending(table)
        except StoreUnavailable:
            # Nothing was decided, leave the sheet eligible for a retry
            self.processed = False
            raise

    def status(self) -> dict:
        return {
            "loaded": self.table is not None,
            "loading": self.loading,
            "filename": self.filename,
            "progress": self.progress,
            "record_count": len(self.table) if self.table is not None else 0,
            "skipped_rows": self.table.skipped_rows if self.table is not None else 0,
            "processed": self.processed,
            "threshold": self.threshold,
            "error": self.error,
        }


def build_attendance_session(settings: Settings, session_factory) -> AttendanceSession:
    matcher = AttendanceMatcher(substring_min_length=settings.ATTENDANCE_SUBSTRING_MIN_LENGTH)
    store = SqlParticipationStore(
        session_factory,
        timeout=settings.STATUS_UPDATE_TIMEOUT,
        retries=settings.STATUS_UPDATE_RETRIES,
        retry_delay=settings.STATUS_UPDATE_RETRY_DELAY,
    )
    ingestor = AttendanceIngestor(
        header_scan_rows=settings.ATTENDANCE_HEADER_SCAN_ROWS,
        chunk_size=settings.ATTENDANCE_CHUNK_SIZE,
        duplicate_policy=settings.ATTENDANCE_DUPLICATE_POLICY,
    )
    engine = AutoDecisionEngine(store, matcher=matcher, threshold=settings.ATTENDANCE_THRESHOLD)
    return AttendanceSession(ingestor, engine, matcher)


def get_attendance_session(request: Request) -> AttendanceSession:
    """FastAPI dependency: the session built at startup and kept on app.state"""
    return request.app.state.attendance_session
