from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship
from database import Base

class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    # University registration number, e.g. 231FA04C33 (matched against the REGD column)
    registration_number = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(100))
    email = Column(String(120), nullable=True)

    # --- ACADEMIC INFO ---
    department = Column(String(100), nullable=True)
    year = Column(Integer, nullable=True)

    # --- RELATIONSHIPS ---
    participations = relationship("models.participations.Participation", back_populates="student")
