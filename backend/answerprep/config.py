"""Configuration management for the practice service."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# config.py lives in backend/answerprep/, .env sits in the project root
env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(env_path)


def _csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings:
    """Application settings read from environment variables."""

    # Length of one spoken answer, in countdown ticks
    ANSWER_SECONDS: int = int(os.getenv("ANSWER_SECONDS", "60"))
    TICK_SECONDS: float = float(os.getenv("TICK_SECONDS", "1.0"))

    # How long to wait for the browser to answer a mic request / flush on stop
    CAPTURE_REQUEST_TIMEOUT: float = float(os.getenv("CAPTURE_REQUEST_TIMEOUT", "30"))
    CAPTURE_STOP_TIMEOUT: float = float(os.getenv("CAPTURE_STOP_TIMEOUT", "5"))

    # Sessions whose page went away are dropped after this many seconds
    SESSION_GRACE_SECONDS: float = float(os.getenv("SESSION_GRACE_SECONDS", "60"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    CORS_ORIGINS: List[str] = _csv(os.getenv(
        "CORS_ORIGINS",
        "http://localhost:8000,http://127.0.0.1:8000,"
        "http://localhost:5173,http://127.0.0.1:5173",
    ))

    @classmethod
    def validate(cls) -> List[str]:
        """Return a list of configuration problems (empty when valid)."""
        problems = []
        if cls.ANSWER_SECONDS <= 0:
            problems.append("ANSWER_SECONDS must be positive")
        if cls.TICK_SECONDS <= 0:
            problems.append("TICK_SECONDS must be positive")
        if cls.CAPTURE_REQUEST_TIMEOUT <= 0:
            problems.append("CAPTURE_REQUEST_TIMEOUT must be positive")
        if cls.CAPTURE_STOP_TIMEOUT < 0:
            problems.append("CAPTURE_STOP_TIMEOUT must not be negative")
        if cls.SESSION_GRACE_SECONDS < 0:
            problems.append("SESSION_GRACE_SECONDS must not be negative")
        return problems


settings = Settings()
