"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ── Database (MySQL-protocol; any SQLAlchemy async URL may override) ───
    db_host: str = "mysql"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "community"
    database_url: Optional[str] = None
    db_pool_size: int = 20
    db_max_overflow: int = 10

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # ── Tokens & passwords ─────────────────────────────────────────────────
    jwt_secret: str = "change-me-access"
    jwt_refresh_secret: str = "change-me-refresh"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7     # 7d
    refresh_token_expire_days: int = 30
    bcrypt_rounds: int = 12

    # ── MinIO (S3-compatible) ──────────────────────────────────────────────
    minio_endpoint: str = "minio:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_bucket: str = "community-app"
    minio_use_ssl: bool = False
    media_url_ttl: int = 3600
    max_upload_bytes: int = 5 * 1024 * 1024            # 5MB
    image_max_dimension: int = 800
    image_max_pixels: int = 40_000_000                 # decoded size guard

    # ── Outbound email (SMTP) ──────────────────────────────────────────────
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_start_tls: bool = True
    smtp_timeout: float = 10.0
    email_from: str = "Community App <no-reply@community.app>"

    # ── Redis (rate limiting) ──────────────────────────────────────────────
    redis_url: Optional[str] = None
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 500

    # ── HTTP ───────────────────────────────────────────────────────────────
    api_prefix: str = "/api"

    # ── Observability ──────────────────────────────────────────────────────
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "community-api"
    environment: str = "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
