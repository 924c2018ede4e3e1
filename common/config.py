from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    # Local .env at the repo root; deployments set real environment variables.
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


@dataclass(frozen=True)
class Settings:
    database_url: str | None

    db_host: str
    db_port: int
    db_user: str
    db_password: str
    db_name: str

    odbc_driver: str

    batch_size: int
    max_workers: int
    timeout_seconds: float
    long_job_timeout_seconds: float

    tag_cache_ttl_seconds: float
    tag_cache_max_size: int


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("OEE_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    database_url = os.getenv("DATABASE_URL") or None

    db_host = os.getenv("DB_HOST", "localhost")
    db_port = int(os.getenv("DB_PORT", "3306"))
    db_user = os.getenv("DB_USER", "root")
    db_password = os.getenv("DB_PASSWORD", "")
    db_name = os.getenv("DB_NAME", "fouro")

    # Driver name depends on the OS image.
    # Common values:
    # - MySQL ODBC 8.0 Unicode Driver
    # - MySQL ODBC 9.0 Unicode Driver
    odbc_driver = os.getenv("ODBC_DRIVER", "MySQL ODBC 8.0 Unicode Driver")

    return Settings(
        database_url=database_url,
        db_host=db_host,
        db_port=db_port,
        db_user=db_user,
        db_password=db_password,
        db_name=db_name,
        odbc_driver=odbc_driver,
        batch_size=int(os.getenv("OEE_BATCH_SIZE", "100")),
        max_workers=int(os.getenv("OEE_MAX_WORKERS", "8")),
        timeout_seconds=float(os.getenv("OEE_TIMEOUT_SECONDS", "60")),
        long_job_timeout_seconds=float(os.getenv("OEE_LONG_JOB_TIMEOUT_SECONDS", "180")),
        tag_cache_ttl_seconds=float(os.getenv("OEE_TAG_CACHE_TTL_SECONDS", "300")),
        tag_cache_max_size=int(os.getenv("OEE_TAG_CACHE_MAX_SIZE", "5000")),
    )
