"""Unit tests for settings models and loader."""

import json
import os
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

from src.commons.settings.loader import SettingsLoader, get_settings, reset_settings
from src.commons.settings.models import (
    AppSettings,
    BlobStorageSettings,
    DocumentDBSettings,
    QuotaFieldMapping,
    ServerSettings,
    Settings,
    StagingSettings,
    TelemetrySettings,
    VideoHostSettings,
)


class TestAppSettings:
    """Tests for AppSettings model."""

    def test_default_values(self):
        settings = AppSettings()
        assert settings.name == "media-staging-server"
        assert settings.environment == "dev"
        assert settings.debug is False
        assert settings.log_level == "INFO"

    def test_invalid_environment(self):
        with pytest.raises(ValueError):
            AppSettings(environment="invalid")  # type: ignore[arg-type]

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            AppSettings(log_level="TRACE")  # type: ignore[arg-type]


class TestServerSettings:
    """Tests for ServerSettings model."""

    def test_default_values(self):
        settings = ServerSettings()
        assert settings.port == 8000
        assert settings.api_prefix == "/v1"
        assert settings.operator_user_header == "X-Authenticated-User"
        assert settings.operator_role_header == "X-Authenticated-Role"
        assert settings.operator_role == "admin"

    def test_port_validation(self):
        with pytest.raises(ValueError):
            ServerSettings(port=0)
        with pytest.raises(ValueError):
            ServerSettings(port=70000)

    def test_single_worker_only(self):
        """Run and chunk state live in process memory."""
        with pytest.raises(ValueError):
            ServerSettings(workers=4)


class TestBlobStorageSettings:
    """Tests for BlobStorageSettings model."""

    def test_default_values(self):
        settings = BlobStorageSettings()
        assert settings.provider == "minio"
        assert settings.endpoint == "localhost:9000"
        assert settings.use_ssl is False
        assert settings.buckets.staging == "staging-videos"

    def test_part_size_has_s3_minimum(self):
        with pytest.raises(ValueError):
            BlobStorageSettings(part_size_bytes=1024)


class TestDocumentDBSettings:
    """Tests for DocumentDBSettings model."""

    def test_collections(self):
        settings = DocumentDBSettings()
        assert settings.collections.staging_items == "staging_items"
        assert settings.collections.published_records == "published_records"
        assert settings.collections.process_logs == "process_logs"
        assert settings.collections.system == "system"


class TestVideoHostSettings:
    """Tests for VideoHostSettings model."""

    def test_default_quota_paths(self):
        settings = VideoHostSettings()
        assert settings.quota_fields.storage_used[0] == "storage.used"
        assert settings.upload_timeout_seconds is None

    def test_custom_quota_paths(self):
        settings = VideoHostSettings(
            quota_fields=QuotaFieldMapping(daily_limit=["limits.daily"])
        )
        assert settings.quota_fields.daily_limit == ["limits.daily"]
        assert settings.quota_fields.daily_used[0] == "daily.used"


class TestStagingSettings:
    """Tests for StagingSettings model."""

    def test_default_values(self):
        settings = StagingSettings()
        assert settings.max_size_bytes == 15 * 1024 * 1024 * 1024
        assert settings.chunk_max_bytes == 90 * 1024 * 1024
        assert "video/mp4" in settings.allowed_content_types

    def test_content_types_are_normalized(self):
        settings = StagingSettings(
            allowed_content_types=[" Video/MP4 ", "", "video/webm"]
        )
        assert settings.allowed_content_types == ["video/mp4", "video/webm"]


class TestRootSettings:
    """Tests for root Settings model."""

    def test_default_values(self):
        settings = Settings()
        assert isinstance(settings.app, AppSettings)
        assert isinstance(settings.server, ServerSettings)
        assert isinstance(settings.blob_storage, BlobStorageSettings)
        assert isinstance(settings.document_db, DocumentDBSettings)
        assert isinstance(settings.video_host, VideoHostSettings)
        assert isinstance(settings.staging, StagingSettings)
        assert isinstance(settings.telemetry, TelemetrySettings)


class TestSettingsLoader:
    """Tests for SettingsLoader."""

    def test_load_empty_config(self):
        with TemporaryDirectory() as tmpdir:
            loader = SettingsLoader(config_dir=Path(tmpdir), environment="dev")
            settings = loader.load()
            assert settings.app.name == "media-staging-server"

    def test_load_base_config(self):
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir)
            base_config = {
                "app": {"name": "test-app", "environment": "dev"},
                "staging": {"chunk_max_bytes": 1024},
            }
            with (config_dir / "appsettings.json").open("w") as f:
                json.dump(base_config, f)

            loader = SettingsLoader(config_dir=config_dir, environment="dev")
            settings = loader.load()
            assert settings.app.name == "test-app"
            assert settings.staging.chunk_max_bytes == 1024

    def test_load_environment_override(self):
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir)

            base_config = {
                "app": {"name": "test-app", "debug": False},
                "server": {"port": 8000},
            }
            with (config_dir / "appsettings.json").open("w") as f:
                json.dump(base_config, f)

            prod_config = {
                "app": {"log_level": "WARNING"},
                "server": {"docs_enabled": False},
            }
            with (config_dir / "appsettings.prod.json").open("w") as f:
                json.dump(prod_config, f)

            loader = SettingsLoader(config_dir=config_dir, environment="prod")
            settings = loader.load()

            # Base values
            assert settings.app.name == "test-app"
            assert settings.server.port == 8000
            # Overridden values
            assert settings.app.log_level == "WARNING"
            assert settings.server.docs_enabled is False

    def test_deep_merge(self):
        loader = SettingsLoader()
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        override = {"a": {"b": 10, "e": 4}, "f": 5}

        result = loader._deep_merge(base, override)

        assert result == {"a": {"b": 10, "c": 2, "e": 4}, "d": 3, "f": 5}

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("False", False),
            ("42", 42),
            ("1.5", 1.5),
            ('["video/mp4"]', ["video/mp4"]),
            ("[broken", "[broken"),
            ("plain", "plain"),
        ],
    )
    def test_coerce_value(self, raw, expected):
        assert SettingsLoader()._coerce_value(raw) == expected


class TestEnvironmentOverrides:
    """Tests for MEDIA_STAGING__ environment variables."""

    def test_nested_env_var(self, monkeypatch):
        monkeypatch.setenv("MEDIA_STAGING__VIDEO_HOST__API_KEY", "from-env")
        monkeypatch.setenv("MEDIA_STAGING__STAGING__CHUNK_MAX_BYTES", "2048")
        with TemporaryDirectory() as tmpdir:
            settings = SettingsLoader(config_dir=Path(tmpdir)).load()
        assert settings.video_host.api_key == "from-env"
        assert settings.staging.chunk_max_bytes == 2048

    def test_config_dir_is_not_forwarded(self, monkeypatch):
        with TemporaryDirectory() as tmpdir:
            monkeypatch.setenv("MEDIA_STAGING__CONFIG_DIR", tmpdir)
            loader = SettingsLoader()
            assert loader.config_dir == Path(tmpdir)
            assert "config_dir" not in loader._load_env_vars()


class TestGetSettings:
    """Tests for get_settings function."""

    def setup_method(self):
        reset_settings()

    def teardown_method(self):
        reset_settings()
        # Clean up env vars
        for key in list(os.environ.keys()):
            if key.startswith("MEDIA_STAGING__"):
                del os.environ[key]

    def test_get_settings_cached(self):
        with TemporaryDirectory() as tmpdir:
            settings1 = get_settings(config_dir=Path(tmpdir))
            settings2 = get_settings(config_dir=Path(tmpdir))
            assert settings1 is settings2

    def test_get_settings_reload(self):
        with TemporaryDirectory() as tmpdir:
            settings1 = get_settings(config_dir=Path(tmpdir))
            settings2 = get_settings(config_dir=Path(tmpdir), reload=True)
            assert settings1 is not settings2

    def test_reset_settings(self):
        with TemporaryDirectory() as tmpdir:
            settings1 = get_settings(config_dir=Path(tmpdir))
            reset_settings()
            settings2 = get_settings(config_dir=Path(tmpdir))
            assert settings1 is not settings2
