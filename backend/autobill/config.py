# backend/autobill/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


# ============================================================
# ✅ Load .env intelligently
# ============================================================
def load_env_safely() -> None:
    try:
        from dotenv import load_dotenv
    except ImportError:
        return

    here = Path(__file__).resolve()
    package_dir = here.parent
    backend_dir = package_dir.parent
    project_root_guess = backend_dir.parent

    candidates = [
        backend_dir / ".env",
        package_dir / ".env",
        project_root_guess / ".env",
    ]

    for p in candidates:
        if p.exists():
            load_dotenv(dotenv_path=str(p), override=False)
            logger.info("Loaded .env: %s", str(p))
            return

    load_dotenv(override=False)


# ============================================================
# ✅ Tolerant env parsers
# ============================================================
def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _safe_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


def _safe_float(name: str, default: float) -> float:
    try:
        return float(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


def _safe_decimal(name: str, default: str) -> Decimal:
    try:
        return Decimal(str(os.getenv(name, default)).strip())
    except InvalidOperation:
        return Decimal(default)


def _safe_str(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else str(v).strip()


# ============================================================
# Settings
# ============================================================
@dataclass
class Settings:
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # hosted Postgres (Supabase)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # chat completions (OpenRouter-compatible)
    ai_api_key: str = ""
    ai_base_url: str = "https://openrouter.ai/api/v1"
    ai_model: str = "anthropic/claude-3.5-sonnet"
    ai_max_tokens: int = 4096
    ai_timeout: float = 90.0
    ai_text_max: int = 22000

    # uploads
    max_image_mb: float = 10.0
    max_image_side: int = 2048
    max_image_pixels: int = 40_000_000

    app_url: str = "http://localhost:3000"
    app_title: str = "Auto Bill"

    # document defaults (company settings override these)
    default_vat_rate: Decimal = Decimal("7")
    default_validity_days: int = 30

    @property
    def max_image_bytes(self) -> int:
        return int(self.max_image_mb * 1024 * 1024)

    @classmethod
    def from_env(cls) -> "Settings":
        level = _safe_str("LOG_LEVEL", "INFO").upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            level = "INFO"

        raw_origins = _safe_str("CORS_ORIGINS", "*")
        if raw_origins == "*":
            origins = ["*"]
        else:
            origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

        return cls(
            debug=_env_bool("DEBUG", default=False),
            log_level=level,
            cors_origins=origins,
            supabase_url=_safe_str("SUPABASE_URL"),
            supabase_service_key=_safe_str("SUPABASE_SERVICE_KEY"),
            ai_api_key=_safe_str("OPENROUTER_API_KEY"),
            ai_base_url=_safe_str("AI_BASE_URL", "https://openrouter.ai/api/v1") or "https://openrouter.ai/api/v1",
            ai_model=_safe_str("AI_MODEL", "anthropic/claude-3.5-sonnet") or "anthropic/claude-3.5-sonnet",
            ai_max_tokens=_safe_int("AI_MAX_TOKENS", 4096),
            ai_timeout=_safe_float("AI_TIMEOUT", 90.0),
            ai_text_max=_safe_int("AI_TEXT_MAX", 22000),
            max_image_mb=_safe_float("MAX_IMAGE_MB", 10.0),
            max_image_side=_safe_int("MAX_IMAGE_SIDE", 2048),
            max_image_pixels=_safe_int("MAX_IMAGE_PIXELS", 40_000_000),
            app_url=_safe_str("APP_URL", "http://localhost:3000"),
            app_title=_safe_str("APP_TITLE", "Auto Bill") or "Auto Bill",
            default_vat_rate=_safe_decimal("DEFAULT_VAT_RATE", "7"),
            default_validity_days=_safe_int("DEFAULT_VALIDITY_DAYS", 30),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_env_safely()
    return Settings.from_env()
