"""
Configuration settings for the CRVS workflow service.

This module provides a settings class with support for loading configuration
from TOML files and environment variables.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


class Settings(BaseSettings):
    """Main settings class for the workflow service.

    Values are read from ``settings.toml`` / ``settings.custom.toml`` and can be
    overridden with ``CRVS_``-prefixed environment variables.
    """

    model_config = SettingsConfigDict(
        toml_file=["settings.toml", "settings.custom.toml"], env_prefix="CRVS_", extra="ignore"
    )

    # Server settings
    port: int = 5050
    host: str = "127.0.0.1"
    root_url: str = "/"
    debug: bool = False

    # Collaborating services
    hearth_url: str = "http://localhost:3447/fhir"
    user_mgnt_url: str = "http://localhost:3030"
    country_config_url: str = "http://localhost:3040"
    events_url: str = "http://localhost:5050"
    http_timeout: float = 10.0

    # Workflow behaviour
    external_validation_enabled: bool = False
    tracking_id_max_attempts: int = 5

    # Token validation
    jwt_public_key_path: str | None = None
    jwt_secret_key: str = "insecure-change-this-key-in-production"
    jwt_issuer: str = "opencrvs:auth-service"
    jwt_audience: list[str] = ["opencrvs:workflow-user"]

    # Logging settings
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: str | None = None  # If None, ~/crvs_workflow/logs
    log_rotation: str = "20 MB"
    log_retention: str = "1 week"
    log_format: str | None = None  # Use default if None
    log_serialize: bool = False  # JSON lines in the log file

    @classmethod
    def settings_customize_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the sources for settings.

        Priority order: explicit init arguments, environment variables, then TOML config files
        """
        return init_settings, env_settings, TomlConfigSettingsSource(settings_cls)

    def get_jwt_key(self) -> str | bytes:
        """Get the key used to verify bearer tokens.

        Returns:
            The PEM public key contents when ``jwt_public_key_path`` is set,
            otherwise the shared secret.
        """
        if self.jwt_public_key_path:
            return Path(self.jwt_public_key_path).read_bytes()
        return self.jwt_secret_key

    def get_log_dir(self) -> Path:
        """Get the log directory path."""
        if self.log_dir:
            return Path(self.log_dir)
        return Path.home() / "crvs_workflow" / "logs"


@lru_cache
def get_settings() -> Settings:
    """Get the settings instance, with caching.

    Returns:
        Cached Settings instance
    """
    return Settings()


# Create a global settings instance for easy imports
settings = get_settings()
