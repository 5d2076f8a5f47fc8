from datetime import date
import logging

from database import SessionLocal, engine, Base
from logging_config import setup_logging
from models.students import Student
from models.events import Event
from models.participations import Participation

logger = logging.getLogger(__name__)

# --- Ye Tables bana degi agar missing hain ---
Base.metadata.create_all(bind=engine)

STUDENTS = [
    ("231FA04C33", "Ananya Rao", "CSE", 2),
    ("231FA04C99", "Rahul Varma", "CSE", 2),
    ("231FA04A12", "Sneha Reddy", "ECE", 2),
    ("221FA05B07", "Kiran Kumar", "MECH", 3),
]

EVENTS = [
    ("Village Cleanliness Drive", date(2026, 1, 26), "Vadlamudi", 4.0),
    ("Blood Donation Camp", date(2026, 2, 14), "Campus Auditorium", 3.0),
]


def seed_data(db):
    logger.info("Seeding NSS demo data...")

    # 1. STUDENTS
    student_ids = []
    for reg_no, name, dept, year in STUDENTS:
        student = db.query(Student).filter_by(registration_number=reg_no).first()
        if not student:
            student = Student(registration_number=reg_no, name=name, department=dept, year=year)
            db.add(student)
            db.commit()
            db.refresh(student)
            logger.info("Added student %s", reg_no)
        student_ids.append(student.id)

    # 2. EVENTS
    event_ids = []
    for title, event_date, location, hours in EVENTS:
        event = db.query(Event).filter_by(title=title).first()
        if not event:
            event = Event(title=title, date=event_date, location=location, volunteer_hours=hours)
            db.add(event)
            db.commit()
            db.refresh(event)
            logger.info("Added event %s", title)
        event_ids.append(event.id)

    # 3. PENDING PARTICIPATIONS (every student in the first event)
    for student_id in student_ids:
        exists = db.query(Participation).filter_by(student_id=student_id, event_id=event_ids[0]).first()
        if not exists:
            db.add(Participation(student_id=student_id, event_id=event_ids[0], status="pending"))
    db.commit()

    logger.info("Seeding complete")


if __name__ == "__main__":
    setup_logging()
    db = SessionLocal()
    try:
        seed_data(db)
    finally:
        db.close()
