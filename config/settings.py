from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY") or None
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
    top_p: float = float(os.getenv("MODEL_TOP_P", "0.9"))
    data_dir: str = os.getenv("DATA_DIR", ".data")
    sessions_file: str = os.getenv("SESSIONS_FILE", "mcp-sessions.json")
    # "keep" leaves an unanswered user turn in place after a provider failure,
    # "rollback" removes it again.
    failed_turn_policy: str = os.getenv("FAILED_TURN_POLICY", "keep").lower()

    @property
    def sessions_path(self) -> Path:
        return Path(self.data_dir).resolve() / self.sessions_file


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
