from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import engine, Base, SessionLocal
from logging_config import setup_logging

# --- IMPORT ROUTERS (APIs) ---
from routers import attendance, participations

# --- IMPORT MODELS ---
from models.students import Student
from models.events import Event
from models.participations import Participation

from services.attendance_session import build_attendance_session

logger = setup_logging()

# --- CREATE DATABASE TABLES ---
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.APP_NAME)

# One attendance sheet per process, shared by the attendance endpoints
app.state.attendance_session = build_attendance_session(settings, SessionLocal)

# ==========================================
# CORS MIDDLEWARE (Admin front end)
# ==========================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- REGISTER ROUTERS ---
app.include_router(attendance.router)
app.include_router(participations.router)


@app.get("/")
def health():
    return {"status": "ok", "app": settings.APP_NAME}
