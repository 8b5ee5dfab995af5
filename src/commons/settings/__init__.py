"""Settings management module."""

from src.commons.settings.loader import SettingsLoader, get_settings, reset_settings
from src.commons.settings.models import (
    AppSettings,
    BlobStorageSettings,
    BucketSettings,
    DocumentCollectionSettings,
    DocumentDBSettings,
    QuotaFieldMapping,
    ServerSettings,
    Settings,
    StagingSettings,
    TelemetrySettings,
    VideoHostSettings,
)

__all__ = [
    # Loader
    "SettingsLoader",
    "get_settings",
    "reset_settings",
    # Main settings
    "Settings",
    "AppSettings",
    "ServerSettings",
    # Storage
    "BlobStorageSettings",
    "BucketSettings",
    "DocumentDBSettings",
    "DocumentCollectionSettings",
    # External host
    "VideoHostSettings",
    "QuotaFieldMapping",
    # Staging
    "StagingSettings",
    # Telemetry
    "TelemetrySettings",
]
