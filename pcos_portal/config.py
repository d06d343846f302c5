"""
PCOS Portal - Configuration
Environment-driven settings, optionally loaded from a .env file
"""
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Runtime settings read once from the environment"""

    def __init__(self):
        self.database_url: str = os.getenv("PCOS_DATABASE_URL", "sqlite:///./pcos_portal.db")
        self.storage_root: Path = Path(os.getenv("PCOS_STORAGE_ROOT", "./storage"))
        self.session_hours: int = int(os.getenv("PCOS_SESSION_HOURS", "24"))
        self.consent_version: str = os.getenv("PCOS_CONSENT_VERSION", "v1.0")
        self.log_level: str = os.getenv("PCOS_LOG_LEVEL", "INFO")
        self.log_file: str | None = os.getenv("PCOS_LOG_FILE") or None
        self.cors_origins: List[str] = [
            origin.strip()
            for origin in os.getenv("PCOS_CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]


settings = Settings()
