"""
config.py — Runtime settings for the TPP tracker backend.

Everything tunable lives on a single Settings object that is built once from
the environment (a local .env file is honoured) and passed explicitly to the
store, the submission workflow and the report builder.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from core.errors import ConfigurationError


TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    program_name: str = "TPP"
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )
    store_backend: str = "memory"
    backend_url: str = ""
    backend_key: str = ""
    profiles_table: str = "profiles"
    http_timeout_seconds: float = 10.0
    min_subjects: int = 6
    max_subjects: int = 9
    normalize_subject_names: bool = True
    suppress_noisy_notices: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        if self.min_subjects < 1:
            raise ConfigurationError("MIN_SUBJECTS must be at least 1.")
        if self.min_subjects > self.max_subjects:
            raise ConfigurationError(
                f"MIN_SUBJECTS ({self.min_subjects}) cannot exceed MAX_SUBJECTS ({self.max_subjects})."
            )
        if self.store_backend not in ("memory", "rest"):
            raise ConfigurationError(
                f"STORE_BACKEND must be 'memory' or 'rest', got '{self.store_backend}'."
            )
        if self.store_backend == "rest" and not self.backend_url:
            raise ConfigurationError("BACKEND_URL is required when STORE_BACKEND=rest.")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'.", field=name)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'.", field=name)


def load_settings() -> Settings:
    """Build Settings from environment variables (and .env, when present)."""
    load_dotenv()

    # Comma-separated allowed origins, e.g. http://localhost:3000,https://tpp.example.ac.za
    raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return Settings(
        program_name=os.getenv("PROGRAM_NAME", "TPP"),
        cors_origins=origins,
        store_backend=os.getenv("STORE_BACKEND", "memory").strip().lower(),
        backend_url=os.getenv("BACKEND_URL", "").strip().rstrip("/"),
        backend_key=os.getenv("BACKEND_KEY", "").strip(),
        profiles_table=os.getenv("PROFILES_TABLE", "profiles").strip(),
        http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10.0),
        min_subjects=_env_int("MIN_SUBJECTS", 6),
        max_subjects=_env_int("MAX_SUBJECTS", 9),
        normalize_subject_names=_env_bool("NORMALIZE_SUBJECT_NAMES", True),
        suppress_noisy_notices=_env_bool("SUPPRESS_NOISY_NOTICES", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings():
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
