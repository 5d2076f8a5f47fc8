"""
NSS Portal - Test Configuration and Fixtures
"""
import asyncio
import io
import os
import tempfile
from dataclasses import replace
from typing import Dict, List

import pandas as pd
import pytest
from sqlalchemy.exc import OperationalError

# Set testing environment before the app reads its settings
_TEST_DIR = tempfile.mkdtemp(prefix="nss_tests_")
os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ['ENVIRONMENT'] = 'testing'
os.environ['STATUS_UPDATE_RETRY_DELAY'] = '0'

from fastapi.testclient import TestClient

from config import settings
from database import Base, SessionLocal, engine
from main import app
from models.events import Event
from models.participations import Participation
from models.students import Student
from services.attendance_session import build_attendance_session
from services.exceptions import TransitionError
from services.participation_store import DECISION_STATUS, ParticipationRecord


# Rows from the university export used across tests
EXPORT_ROWS = [
    ["REGD", "M1", "TOTAL"],
    ["231fa04c33", "x", 82],
    ["231fa04c99", "y", 60],
]


def make_xlsx(rows: List[list]) -> bytes:
    """Build an .xlsx file in memory, rows written as-is (no header inference)"""
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, header=False, index=False, engine="openpyxl")
    return buf.getvalue()


class FakeStore:
    """In-memory participation store recording every status call"""

    def __init__(self, records: List[ParticipationRecord], fail_ids=(), delay: float = 0, fail_list: bool = False):
        self.records: Dict[int, ParticipationRecord] = {r.id: r for r in records}
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.fail_list = fail_list
        self.calls = []
        self.list_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_pending(self):
        self.list_calls += 1
        if self.fail_list:
            raise OperationalError("SELECT participations", {}, Exception("database is locked"))
        return [r for r in self.records.values() if r.status == "pending"]

    async def set_status(self, participation_id, decision, reason=None, percentage=None):
        self.calls.append((participation_id, decision, reason))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if participation_id in self.fail_ids:
                raise TransitionError(participation_id, "store unavailable")
            record = self.records[participation_id]
            if record.status != "pending":
                return False
            self.records[participation_id] = replace(record, status=DECISION_STATUS[decision.value])
            return True
        finally:
            self.in_flight -= 1


@pytest.fixture
def make_store():
    def _make(*identifiers, statuses=None, **kwargs):
        statuses = statuses or {}
        records = [
            ParticipationRecord(id=i, student_identifier=ident, status=statuses.get(i, "pending"))
            for i, ident in enumerate(identifiers, start=1)
        ]
        return FakeStore(records, **kwargs)
    return _make


@pytest.fixture(scope='function')
def db_session():
    """Fresh tables for each test"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded(db_session):
    """Event with participations for c33, c99 (pending), zz1 (unmatched) and fa04c33x (already approved)"""
    event = Event(title="Village Cleanliness Drive", volunteer_hours=4)
    db_session.add(event)
    db_session.flush()

    students = {}
    for reg_no in ("c33", "c99", "zz1", "fa04c33x"):
        s = Student(registration_number=reg_no, name=f"Student {reg_no}")
        db_session.add(s)
        students[reg_no] = s
    db_session.flush()

    participations = {
        "c33": Participation(student_id=students["c33"].id, event_id=event.id, status="pending"),
        "c99": Participation(student_id=students["c99"].id, event_id=event.id, status="pending"),
        "zz1": Participation(student_id=students["zz1"].id, event_id=event.id, status="pending"),
        "fa04c33x": Participation(student_id=students["fa04c33x"].id, event_id=event.id, status="approved"),
    }
    db_session.add_all(participations.values())
    db_session.commit()
    return {key: p.id for key, p in participations.items()}


@pytest.fixture
def client(db_session):
    """Test client with a fresh attendance session per test"""
    app.state.attendance_session = build_attendance_session(settings, SessionLocal)
    with TestClient(app) as c:
        yield c
