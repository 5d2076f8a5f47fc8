from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base

# Status lifecycle: pending -> approved/rejected (operator or auto-attendance);
# attended/completed are set by the event workflows.
PARTICIPATION_STATUSES = ("pending", "approved", "rejected", "attended", "completed")


class Participation(Base):
    __tablename__ = "participations"
    # One registration per student per event
    __table_args__ = (UniqueConstraint("student_id", "event_id", name="uq_participation_student_event"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)

    status = Column(String(20), default="pending", index=True, nullable=False)
    registered_at = Column(DateTime, server_default=func.now())

    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(50), nullable=True)
    rejection_reason = Column(String(255), nullable=True)

    attendance_percentage = Column(Float, nullable=True)
    volunteer_hours = Column(Float, default=0.0)

    student = relationship("models.students.Student", back_populates="participations")
    event = relationship("models.events.Event", back_populates="participations")
