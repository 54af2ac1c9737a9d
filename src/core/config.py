"""
Centralised compiler settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    # ── Compiler ─────────────────────────────────────────
    param_style: Literal["dollar", "qmark"] = "dollar"  # $1, $2 … | ?
    vocabulary_path: str = ""  # empty -> bundled semantic_layer/query_vocabulary.yml

    # ── App ──────────────────────────────────────────────
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
