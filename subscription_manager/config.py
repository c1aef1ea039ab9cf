"""Configuration management - loads settings.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from subscription_manager.models import AppSettings

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Application configuration loader and manager.

    Loads settings.yaml and provides validated access to:
    - Payment processor client settings
    - Refund policy
    - Notification (SMTP) settings
    - Secrets from the environment
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to settings.yaml file. If not provided, uses CONFIG_PATH env var
                        or defaults to config/settings.yaml at the project root
        """
        self._config_path = self._resolve_config_path(config_path)
        self._settings: Optional[AppSettings] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return DEFAULT_CONFIG_PATH

    def _load_config(self) -> None:
        """Load and validate settings.yaml configuration."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/settings.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        try:
            self._settings = AppSettings(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}")

    @property
    def settings(self) -> AppSettings:
        """Get validated settings."""
        if self._settings is None:
            raise ConfigurationError("Configuration not loaded")
        return self._settings

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def processor(self):
        return self.settings.processor

    @property
    def refunds(self):
        return self.settings.refunds

    @property
    def notifications(self):
        return self.settings.notifications

    @property
    def webhook(self):
        return self.settings.webhook

    @property
    def stripe_secret_key(self) -> Optional[str]:
        """Processor API key from STRIPE_SECRET_KEY."""
        return os.getenv("STRIPE_SECRET_KEY") or None

    @property
    def stripe_webhook_secret(self) -> Optional[str]:
        """Webhook signing secret from STRIPE_WEBHOOK_SECRET."""
        return os.getenv("STRIPE_WEBHOOK_SECRET") or None

    @property
    def smtp_username(self) -> Optional[str]:
        """SMTP login, from SMTP_USERNAME or the legacy EMAIL_USER."""
        return os.getenv("SMTP_USERNAME") or os.getenv("EMAIL_USER") or None

    @property
    def smtp_password(self) -> Optional[str]:
        """SMTP password, from SMTP_PASSWORD or the legacy EMAIL_PASS."""
        return os.getenv("SMTP_PASSWORD") or os.getenv("EMAIL_PASS") or None

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reload_config() -> None:
    """Reload global configuration from disk."""
    global _config_instance
    if _config_instance:
        _config_instance.reload()
    else:
        _config_instance = Config()
