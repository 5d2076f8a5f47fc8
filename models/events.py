from sqlalchemy import Column, Integer, String, Date, Float, Text
from sqlalchemy.orm import relationship
from database import Base

class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=True)
    location = Column(String(200), nullable=True)
    volunteer_hours = Column(Float, default=0.0)

    participations = relationship("models.participations.Participation", back_populates="event")
