"""Settings loader with hierarchical configuration support."""

import json
import os
from pathlib import Path
from typing import Any

from src.commons.settings.models import Settings


class SettingsLoader:
    """Loads and merges configuration from multiple sources.

    Configuration precedence (highest to lowest):
    1. Environment variables (MEDIA_STAGING__SECTION__KEY)
    2. Environment-specific config (appsettings.{env}.json)
    3. Base config (appsettings.json)
    """

    ENV_PREFIX = "MEDIA_STAGING__"
    # Loader-only keys, never forwarded to the Settings model
    RESERVED_KEYS = frozenset({"CONFIG_DIR"})

    def __init__(
        self,
        config_dir: Path | None = None,
        environment: str | None = None,
    ) -> None:
        """Initialize the settings loader.

        Args:
            config_dir: Directory containing configuration files. Defaults to
                MEDIA_STAGING__CONFIG_DIR, then 'config' in the working directory.
            environment: Environment name (dev, staging, prod).
                Defaults to MEDIA_STAGING__APP__ENVIRONMENT or 'dev'.
        """
        env_dir = os.getenv(f"{self.ENV_PREFIX}CONFIG_DIR")
        self.config_dir = config_dir or Path(env_dir or "config")
        self.environment = environment or os.getenv(
            f"{self.ENV_PREFIX}APP__ENVIRONMENT", "dev"
        )

    def load(self) -> Settings:
        """Load settings with proper precedence.

        Returns:
            Fully resolved Settings instance.
        """
        config: dict[str, Any] = {}
        for filename in (
            "appsettings.json",
            f"appsettings.{self.environment}.json",
        ):
            config = self._deep_merge(config, self._load_json(filename))

        config = self._deep_merge(config, self._load_env_vars())
        return Settings(**config)

    def _load_env_vars(self) -> dict[str, Any]:
        """Collect prefixed environment variables as a nested dict.

        MEDIA_STAGING__VIDEO_HOST__API_KEY becomes
        {"video_host": {"api_key": "value"}}.
        """
        result: dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.ENV_PREFIX):
                continue
            remainder = key[len(self.ENV_PREFIX) :]
            if remainder.upper() in self.RESERVED_KEYS:
                continue
            self._set_nested(
                result,
                remainder.lower().split("__"),
                self._coerce_value(value),
            )

        return result

    @staticmethod
    def _set_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
        current = target
        for part in path[:-1]:
            current = current.setdefault(part, {})
        current[path[-1]] = value

    def _coerce_value(self, value: str) -> Any:
        """Coerce an environment string to bool, int, float, JSON or str."""
        lowered = value.lower()
        if lowered in ("true", "false"):
            return lowered == "true"

        for caster in (int, float):
            try:
                return caster(value)
            except ValueError:
                continue

        # Lists/dicts such as ALLOWED_CONTENT_TYPES or QUOTA_FIELDS
        if value.startswith(("[", "{")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _load_json(self, filename: str) -> dict[str, Any]:
        """Load a JSON config file, or an empty dict if it does not exist."""
        path = self.config_dir / filename
        if not path.exists():
            return {}
        with path.open(encoding="utf-8") as f:
            return dict(json.load(f))

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Recursively merge override into a copy of base."""
        result = base.copy()
        for key, value in override.items():
            existing = result.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                result[key] = self._deep_merge(existing, value)
            else:
                result[key] = value
        return result


# Global settings instance
_settings: Settings | None = None


def get_settings(
    config_dir: Path | None = None,
    environment: str | None = None,
    *,
    reload: bool = False,
) -> Settings:
    """Get or create the global settings instance.

    Args:
        config_dir: Optional config directory override.
        environment: Optional environment override.
        reload: Force reload settings from files.

    Returns:
        Settings instance.
    """
    global _settings  # noqa: PLW0603
    if _settings is None or reload:
        loader = SettingsLoader(config_dir=config_dir, environment=environment)
        _settings = loader.load()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance. Useful for testing."""
    global _settings  # noqa: PLW0603
    _settings = None
