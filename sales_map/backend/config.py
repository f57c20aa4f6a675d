"""
Runtime configuration for the sales map backend.
Values come from the environment, optionally seeded from a .env file.
"""
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv, find_dotenv


DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
]


@dataclass(frozen=True)
class Settings:
    geocoding_api_key: str | None
    proxy_api_key: str | None
    geocode_region: str = "India"
    geocode_batch_size: int = 10
    geocode_batch_delay: float = 1.0
    geocode_timeout: float = 10.0
    cors_origins: tuple[str, ...] = tuple(DEFAULT_CORS_ORIGINS)
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings() -> Settings:
    """Build settings from the current environment (after loading .env if present)."""
    load_dotenv(find_dotenv(usecwd=True))

    geocoding_key = os.getenv("GOOGLE_MAP_API") or os.getenv("GOOGLE_GEOCODING_API") or None
    # The browser key is only accepted as a fallback for the geocode proxy
    proxy_key = geocoding_key or os.getenv("VITE_GOOGLE_MAPS_API_KEY") or None

    origins_raw = os.getenv("CORS_ORIGINS")
    if origins_raw:
        origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())
    else:
        origins = tuple(DEFAULT_CORS_ORIGINS)

    return Settings(
        geocoding_api_key=geocoding_key,
        proxy_api_key=proxy_key,
        geocode_region=os.getenv("GEOCODE_REGION", "India"),
        geocode_batch_size=max(1, _env_int("GEOCODE_BATCH_SIZE", 10)),
        geocode_batch_delay=max(0.0, _env_float("GEOCODE_BATCH_DELAY", 1.0)),
        geocode_timeout=_env_float("GEOCODE_TIMEOUT", 10.0),
        cors_origins=origins,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
