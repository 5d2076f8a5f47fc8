from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Any
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "NSS Activity Portal"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./nss_portal.db"
    DB_ECHO: bool = False

    CORS_ORIGINS: Any = "http://localhost:3000"

    # ==========================================
    # Attendance auto-decision
    # ==========================================
    ATTENDANCE_THRESHOLD: float = 75.0
    ATTENDANCE_HEADER_SCAN_ROWS: int = 100
    ATTENDANCE_CHUNK_SIZE: int = 1000
    # "last" = last row wins on a duplicate registration number, "first" = earliest row wins
    ATTENDANCE_DUPLICATE_POLICY: str = "last"
    ATTENDANCE_SUBSTRING_MIN_LENGTH: int = 3

    # Participation store client
    STATUS_UPDATE_TIMEOUT: float = 10.0
    STATUS_UPDATE_RETRIES: int = 2
    STATUS_UPDATE_RETRY_DELAY: float = 0.5

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v):
        return parse_cors_origins(v)

    @field_validator("ATTENDANCE_DUPLICATE_POLICY")
    @classmethod
    def _check_policy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("first", "last"):
            raise ValueError("ATTENDANCE_DUPLICATE_POLICY must be 'first' or 'last'")
        return v


# Create settings instance
settings = Settings()
