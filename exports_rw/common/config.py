from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

SUPPORTED_STORAGE_BACKENDS: tuple[str, ...] = ("s3", "memory")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    APP_SYSTEM_CODE: str = "exports-rw"
    LOG_LEVEL: str = "INFO"
    STORAGE_BACKEND: str = "s3"
    S3_BUCKET: str | None = None
    S3_REGION: str = "eu-west-1"
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    S3_USE_SSL: bool = True
    S3_ADDRESSING_STYLE: str = "path"
    BUCKET_CONTENT_PREFIX: str = ""
    BUCKET_CONCEPT_PREFIX: str = ""
    CONTENT_RESOURCE_PATH: str = "content"
    CONCEPT_RESOURCE_PATH: str = "concept"
    GENERIC_RESOURCE_PATH: str = "generic"
    EXPORT_WORKERS: int = 10
    RESERVED_KEY_PREFIX: str = "__"
    WRITER_ENTITY_LOCKS: bool = True
    ENABLE_METRICS: bool = True
    API_KEY_ENABLED: bool = False
    API_KEY: str | None = None
    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        backend = (self.STORAGE_BACKEND or "").strip().lower()
        if backend not in SUPPORTED_STORAGE_BACKENDS:
            raise ValueError(
                f"Unsupported STORAGE_BACKEND {self.STORAGE_BACKEND!r}; "
                f"expected one of {', '.join(SUPPORTED_STORAGE_BACKENDS)}."
            )
        self.STORAGE_BACKEND = backend
        level = (self.LOG_LEVEL or "").strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"Unsupported LOG_LEVEL {self.LOG_LEVEL!r}; "
                f"expected one of {', '.join(LOG_LEVELS)}."
            )
        self.LOG_LEVEL = level
        if self.EXPORT_WORKERS < 1:
            raise ValueError("EXPORT_WORKERS must be at least 1.")
        paths = [
            self.CONTENT_RESOURCE_PATH,
            self.CONCEPT_RESOURCE_PATH,
            self.GENERIC_RESOURCE_PATH,
        ]
        cleaned = [p.strip("/") for p in paths]
        if not all(cleaned) or len(set(cleaned)) != len(cleaned):
            raise ValueError("Resource paths must be non-empty and distinct.")

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        return cls(
            APP_SYSTEM_CODE=os.environ.get("APP_SYSTEM_CODE", cls.APP_SYSTEM_CODE),
            LOG_LEVEL=os.environ.get("LOG_LEVEL", cls.LOG_LEVEL),
            STORAGE_BACKEND=os.environ.get("STORAGE_BACKEND", cls.STORAGE_BACKEND),
            S3_BUCKET=os.environ.get("S3_BUCKET") or os.environ.get("BUCKET_NAME"),
            S3_REGION=os.environ.get(
                "S3_REGION", os.environ.get("AWS_REGION", cls.S3_REGION)
            ),
            S3_ENDPOINT_URL=os.environ.get("S3_ENDPOINT_URL"),
            S3_ACCESS_KEY_ID=os.environ.get("S3_ACCESS_KEY_ID"),
            S3_SECRET_ACCESS_KEY=os.environ.get("S3_SECRET_ACCESS_KEY"),
            S3_USE_SSL=_as_bool(os.environ.get("S3_USE_SSL"), cls.S3_USE_SSL),
            S3_ADDRESSING_STYLE=os.environ.get(
                "S3_ADDRESSING_STYLE", cls.S3_ADDRESSING_STYLE
            ),
            BUCKET_CONTENT_PREFIX=os.environ.get(
                "BUCKET_CONTENT_PREFIX", cls.BUCKET_CONTENT_PREFIX
            ),
            BUCKET_CONCEPT_PREFIX=os.environ.get(
                "BUCKET_CONCEPT_PREFIX", cls.BUCKET_CONCEPT_PREFIX
            ),
            CONTENT_RESOURCE_PATH=os.environ.get(
                "CONTENT_RESOURCE_PATH", cls.CONTENT_RESOURCE_PATH
            ),
            CONCEPT_RESOURCE_PATH=os.environ.get(
                "CONCEPT_RESOURCE_PATH", cls.CONCEPT_RESOURCE_PATH
            ),
            GENERIC_RESOURCE_PATH=os.environ.get(
                "GENERIC_RESOURCE_PATH", cls.GENERIC_RESOURCE_PATH
            ),
            EXPORT_WORKERS=int(
                os.environ.get(
                    "EXPORT_WORKERS", os.environ.get("WORKERS", cls.EXPORT_WORKERS)
                )
            ),
            RESERVED_KEY_PREFIX=os.environ.get(
                "RESERVED_KEY_PREFIX", cls.RESERVED_KEY_PREFIX
            ),
            WRITER_ENTITY_LOCKS=_as_bool(
                os.environ.get("WRITER_ENTITY_LOCKS"), cls.WRITER_ENTITY_LOCKS
            ),
            ENABLE_METRICS=_as_bool(
                os.environ.get("ENABLE_METRICS"), cls.ENABLE_METRICS
            ),
            API_KEY_ENABLED=_as_bool(
                os.environ.get("API_KEY_ENABLED"), cls.API_KEY_ENABLED
            ),
            API_KEY=os.environ.get("API_KEY"),
            CORS_ENABLED=_as_bool(os.environ.get("CORS_ENABLED"), cls.CORS_ENABLED),
            CORS_ORIGINS=_as_list(os.environ.get("CORS_ORIGINS")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
