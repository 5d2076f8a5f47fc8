"""Domain errors raised by the attendance services. Routers map them to HTTP codes."""


class AttendanceError(Exception):
    """Base class for attendance auto-decision errors"""


class FormatError(AttendanceError):
    """Spreadsheet has no locatable header row or lacks the REGD/TOTAL columns."""


class IngestionCancelled(AttendanceError):
    """The uploaded file was cleared or replaced while it was still being read."""


class NoAttendanceLoaded(AttendanceError):
    """An operation needs an attendance sheet but none is loaded."""


class TransitionError(AttendanceError):
    """The participation store could not apply a status change."""

    def __init__(self, participation_id: int, message: str):
        super().__init__(f"participation {participation_id}: {message}")
        self.participation_id = participation_id


class ParticipationNotFound(AttendanceError):
    def __init__(self, participation_id: int):
        super().__init__(f"Participation {participation_id} not found")
        self.participation_id = participation_id


class InvalidTransition(AttendanceError):
    def __init__(self, participation_id: int, status: str):
        super().__init__(f"Participation {participation_id} is '{status}', only pending participations can be decided")
        self.participation_id = participation_id
        self.status = status


class StoreUnavailable(AttendanceError):
    """Pending participations could not be read, so no decision was attempted."""
