"""
Configuration management for the application.

Loads environment variables and provides centralized config access.
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

APP_IDENTIFIER = "com.stenberg.focusboard"


def _default_data_dir() -> Path:
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APP_IDENTIFIER


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")
    HOST: str = os.getenv("FOCUSBOARD_HOST", "127.0.0.1")
    PORT: int = int(os.getenv("FOCUSBOARD_PORT", "5175"))

    # Storage settings
    DATA_DIR: Path = Path(os.getenv("FOCUSBOARD_DATA_DIR", "") or _default_data_dir())
    DATABASE_DIR: Path = DATA_DIR / "database"
    DATABASE_FILE: Path = DATABASE_DIR / "data.db"
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")

    # Ordering: "tab_parent" scopes siblings by (tab_id, parent_id), "tab" by tab_id alone.
    ORDER_SCOPE: str = os.getenv("FOCUSBOARD_ORDER_SCOPE", "tab_parent")
    # "manual" keeps order_id dense and lists by it; "recent" lists by updated_at.
    NOTE_ORDERING: str = os.getenv("FOCUSBOARD_NOTE_ORDERING", "manual")

    # Lifecycle
    OPTIMIZE_INTERVAL_SECONDS: float = float(os.getenv("FOCUSBOARD_OPTIMIZE_INTERVAL_SECONDS", "600"))
    SHUTDOWN_GRACE_SECONDS: float = float(os.getenv("FOCUSBOARD_SHUTDOWN_GRACE_SECONDS", "3"))

    # Logging
    LOG_LEVEL: str = os.getenv("FOCUSBOARD_LOG_LEVEL", "INFO")
    LOG_DIR: Path = Path(os.getenv("FOCUSBOARD_LOG_DIR", "") or DATA_DIR / "logs")
    LOG_MAX_BYTES: int = int(os.getenv("FOCUSBOARD_LOG_MAX_BYTES", "50000"))

    @classmethod
    def validate(cls):
        """Validate configuration values that have a closed set of choices"""
        errors = []

        if cls.ORDER_SCOPE not in ("tab_parent", "tab"):
            errors.append(f"FOCUSBOARD_ORDER_SCOPE must be 'tab_parent' or 'tab', got {cls.ORDER_SCOPE!r}")
        if cls.NOTE_ORDERING not in ("manual", "recent"):
            errors.append(f"FOCUSBOARD_NOTE_ORDERING must be 'manual' or 'recent', got {cls.NOTE_ORDERING!r}")
        if cls.OPTIMIZE_INTERVAL_SECONDS <= 0:
            errors.append("FOCUSBOARD_OPTIMIZE_INTERVAL_SECONDS must be positive")
        if cls.SHUTDOWN_GRACE_SECONDS < 0:
            errors.append("FOCUSBOARD_SHUTDOWN_GRACE_SECONDS must not be negative")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @classmethod
    def init_directories(cls):
        """Create necessary directories if they don't exist"""
        cls.DATABASE_DIR.mkdir(parents=True, exist_ok=True)
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)


# Create config instance
config = Config()
