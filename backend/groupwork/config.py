"""Application configuration via environment variables."""

from pathlib import Path
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8088


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    project_name: str = "Groupwork Live"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    questions_path: str = str(BASE_DIR / "questions.json")
    allow_origins: list[str] = ["http://localhost:5173", "http://localhost:4173"]
    log_level: str = "INFO"

    @field_validator("host", mode="before")
    @classmethod
    def _default_blank_host(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_HOST
        return value.strip()

    @field_validator("port", mode="before")
    @classmethod
    def _default_invalid_port(cls, value: Any) -> int:
        try:
            port = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_PORT
        return port if port > 0 else DEFAULT_PORT


settings = Settings()
