"""Pydantic settings models for application configuration."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseModel):
    """Application-level settings."""

    name: str = "media-staging-server"
    version: str = "0.1.0"
    environment: Literal["dev", "staging", "prod"] = "dev"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class ServerSettings(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1, le=1)
    reload: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    api_prefix: str = "/v1"
    docs_enabled: bool = True
    operator_user_header: str = "X-Authenticated-User"
    operator_role_header: str = "X-Authenticated-Role"
    operator_role: str = "admin"


class BucketSettings(BaseModel):
    """Bucket name configuration."""

    staging: str = "staging-videos"


class BlobStorageSettings(BaseModel):
    """Blob storage settings (MinIO/S3)."""

    provider: Literal["minio", "s3"] = "minio"
    endpoint: str = "localhost:9000"
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = False
    region: str = "us-east-1"
    buckets: BucketSettings = Field(default_factory=BucketSettings)
    part_size_bytes: int = Field(default=16 * 1024 * 1024, ge=5 * 1024 * 1024)
    stream_chunk_bytes: int = Field(default=1024 * 1024, ge=8192)


class DocumentCollectionSettings(BaseModel):
    """Document DB collection names."""

    staging_items: str = "staging_items"
    published_records: str = "published_records"
    process_logs: str = "process_logs"
    system: str = "system"


class DocumentDBSettings(BaseModel):
    """Document database settings (MongoDB)."""

    provider: Literal["mongodb"] = "mongodb"
    host: str = "localhost"
    port: int = 27017
    username: str = ""
    password: str = ""
    database: str = "media_staging"
    auth_source: str = "admin"
    collections: DocumentCollectionSettings = Field(
        default_factory=DocumentCollectionSettings
    )


class QuotaFieldMapping(BaseModel):
    """Candidate response paths for each quota field, tried in order.

    Paths are dotted (``storage.used``) and resolved against the account info
    payload after a top-level ``data`` envelope has been unwrapped.
    """

    storage_used: list[str] = Field(
        default_factory=lambda: ["storage.used", "storageUsed"]
    )
    storage_limit: list[str] = Field(
        default_factory=lambda: ["storage.limit", "storageLimit"]
    )
    daily_used: list[str] = Field(
        default_factory=lambda: ["daily.used", "dailyUsed", "dailyUploadUsed"]
    )
    daily_limit: list[str] = Field(
        default_factory=lambda: ["daily.limit", "dailyLimit", "dailyUploadLimit"]
    )
    max_uploads: list[str] = Field(
        default_factory=lambda: ["maxUploads", "max_uploads"]
    )
    uploads_count: list[str] = Field(
        default_factory=lambda: ["uploadsCount", "uploads_count"]
    )


class VideoHostSettings(BaseModel):
    """External video host settings."""

    api_url: str = "https://api.abyss.to"
    upload_url: str = "http://up.hydrax.net"
    api_key: str = ""
    email: str = ""
    password: str = ""
    timeout_seconds: float = 30.0
    upload_timeout_seconds: float | None = None
    token_ttl_seconds: int = 24 * 60 * 60
    quota_fields: QuotaFieldMapping = Field(default_factory=QuotaFieldMapping)


class StagingSettings(BaseModel):
    """Staging intake and processing settings."""

    allowed_content_types: list[str] = Field(
        default_factory=lambda: ["video/mp4", "video/webm", "video/x-matroska"]
    )
    max_size_bytes: int = Field(default=15 * 1024 * 1024 * 1024, ge=1)
    chunk_max_bytes: int = Field(default=90 * 1024 * 1024, ge=1)
    temp_dir: str | None = None
    process_batch_limit: int = Field(default=100, ge=1)
    list_max_limit: int = Field(default=100, ge=1)
    list_default_limit: int = Field(default=20, ge=1)
    log_entry_limit: int = Field(default=100, ge=1)

    @field_validator("allowed_content_types")
    @classmethod
    def _lowercase_types(cls, value: list[str]) -> list[str]:
        return [v.strip().lower() for v in value if v.strip()]


class TelemetrySettings(BaseModel):
    """Telemetry and observability settings."""

    enabled: bool = True
    log_format: Literal["json", "text"] = "json"
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Root settings container with environment loading."""

    app: AppSettings = Field(default_factory=AppSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    blob_storage: BlobStorageSettings = Field(default_factory=BlobStorageSettings)
    document_db: DocumentDBSettings = Field(default_factory=DocumentDBSettings)
    video_host: VideoHostSettings = Field(default_factory=VideoHostSettings)
    staging: StagingSettings = Field(default_factory=StagingSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEDIA_STAGING__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )
