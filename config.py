"""
env-backed settings for the ingestion job.
reads .env once via python-dotenv and freezes everything into dataclasses that get passed to constructors,
so nothing downstream calls os.getenv on its own.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


def env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return float(v)


def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return int(v)


@dataclass(frozen=True)
class PolygonConfig:
    api_key: str = ""
    base_url: str = "https://api.polygon.io"
    timeout_s: float = 15.0
    # free tier is 5 calls/minute
    min_interval_s: float = 12.0
    breaker_threshold: int = 5
    breaker_reset_s: float = 60.0


@dataclass(frozen=True)
class IngestConfig:
    batch_size: int = 8
    universe_cap: int = 330
    base_delay_s: float = 18.0
    jitter_min_s: float = 0.5
    jitter_max_s: float = 2.0
    rate_limit_cooldown_s: float = 30.0
    current_lag_days: int = 1
    monthly_lag_days: int = 29
    total_batches: int = 42


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    polygon: PolygonConfig = field(default_factory=PolygonConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    every_minutes: int = 15


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path=dotenv_path, override=True)

    polygon = PolygonConfig(
        api_key=os.getenv("POLYGON_API_KEY", ""),
        base_url=os.getenv("POLYGON_BASE_URL", "https://api.polygon.io").rstrip("/"),
        timeout_s=env_float("POLYGON_TIMEOUT_S", 15.0),
        min_interval_s=env_float("POLYGON_MIN_INTERVAL_S", 12.0),
        breaker_threshold=env_int("POLYGON_BREAKER_THRESHOLD", 5),
        breaker_reset_s=env_float("POLYGON_BREAKER_RESET_S", 60.0),
    )
    ingest = IngestConfig(
        batch_size=env_int("INGEST_BATCH_SIZE", 8),
        universe_cap=env_int("INGEST_UNIVERSE_CAP", 330),
        base_delay_s=env_float("INGEST_BASE_DELAY_S", 18.0),
        rate_limit_cooldown_s=env_float("INGEST_RATE_LIMIT_COOLDOWN_S", 30.0),
        total_batches=env_int("INGEST_TOTAL_BATCHES", 42),
    )
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        polygon=polygon,
        ingest=ingest,
        every_minutes=env_int("INGEST_EVERY_MINUTES", 15),
    )
