"""
Runtime configuration for the SnapMeal backend.

Values are read from the process environment (after loading the project
``.env`` file) and parsed leniently: malformed numbers fall back to their
defaults instead of preventing the service from starting.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_OPENAI_MODEL = "gpt-4o"
MIN_PASSWORD_LENGTH = 6


def _safe_float(value: Optional[str], default: float) -> float:
  try:
    return float(value) if value is not None else default
  except (TypeError, ValueError):
    return default


def _safe_int(value: Optional[str], default: int) -> int:
  try:
    return int(value) if value is not None else default
  except (TypeError, ValueError):
    return default


@dataclass(frozen=True)
class Settings:
  openai_api_key: str = ""
  openai_model: str = DEFAULT_OPENAI_MODEL
  openai_max_tokens: int = 1500
  openai_temperature: float = 0.3
  openai_timeout: float = 60.0
  jwt_secret_key: str = "change-me"
  jwt_expiration_minutes: int = 60
  storage_backend: str = "sqlite"
  sqlite_db_path: Path = BASE_DIR / "snapmeal.db"
  aws_users_table: str = ""
  aws_region: Optional[str] = None
  cors_origins: str = "*"
  log_level: str = "INFO"

  @property
  def use_aws_backend(self) -> bool:
    return self.storage_backend == "aws"

  @classmethod
  def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
    """Build settings from environment variables, loading ``.env`` first."""
    load_dotenv(env_file or BASE_DIR / ".env")
    env = os.environ
    return cls(
      openai_api_key=(env.get("OPENAI_API_KEY") or "").strip(),
      openai_model=(env.get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL).strip(),
      openai_max_tokens=_safe_int(env.get("OPENAI_MAX_TOKENS"), 1500),
      openai_temperature=_safe_float(env.get("OPENAI_TEMPERATURE"), 0.3),
      openai_timeout=_safe_float(env.get("OPENAI_TIMEOUT"), 60.0),
      jwt_secret_key=env.get("JWT_SECRET_KEY", "change-me"),
      jwt_expiration_minutes=_safe_int(env.get("JWT_EXPIRATION_MINUTES"), 60),
      storage_backend=env.get("STORAGE_BACKEND", "sqlite").strip().lower(),
      sqlite_db_path=Path(env.get("SQLITE_DB_PATH", str(BASE_DIR / "snapmeal.db"))).resolve(),
      aws_users_table=(env.get("AWS_USERS_TABLE") or "").strip(),
      aws_region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION"),
      cors_origins=env.get("CORS_ORIGINS", "*").strip() or "*",
      log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )


__all__ = ["Settings", "MIN_PASSWORD_LENGTH", "DEFAULT_OPENAI_MODEL"]
