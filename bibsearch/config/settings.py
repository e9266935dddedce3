"""
Application settings management.

Loads configuration from environment variables (or a .env file) and
provides access to the Zotero connection and search tuning parameters.
"""

import os
from pathlib import Path
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="localhost", description="API server host")
    api_port: int = Field(default=8120, description="API server port")

    # Zotero Configuration
    zotero_connection_type: Literal["local", "web", "none"] = Field(
        default="local",
        description="How to reach Zotero: desktop local API, zotero.org web API, or not at all"
    )
    zotero_api_url: str = Field(
        default="http://localhost:23119",
        description="Zotero local API URL"
    )
    zotero_api_key: Optional[str] = Field(
        default=None,
        description="zotero.org API key (web connection only)"
    )
    zotero_user_id: Optional[str] = Field(
        default=None,
        description="zotero.org user ID (web connection only, looked up from the key if unset)"
    )
    zotero_libraries: Optional[list[str]] = Field(
        default=None,
        description="Names of the Zotero libraries to load (all libraries if unset)"
    )
    zotero_use_better_bibtex: bool = Field(
        default=False,
        description="Ask Better BibTeX for BibLaTeX output (local connection only)"
    )

    # Search Configuration
    search_limit: int = Field(default=1000, description="Maximum number of search results")
    search_max_query_length: int = Field(
        default=40,
        description="Queries are truncated to this many characters before fuzzy matching"
    )
    search_score_cutoff: float = Field(
        default=60.0,
        description="Minimum per-field similarity (0-100) for a field to count as a match"
    )

    # Provider loading
    provider_load_timeout: Optional[float] = Field(
        default=None,
        description="Seconds to wait for a single provider load (no limit if unset)"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(
        default=None,
        description="Path to log file"
    )

    # Application version
    version: str = Field(default="0.1.0", description="Backend version")

    @field_validator("log_file", mode="before")
    @classmethod
    def expand_path(cls, v):
        """Expand user home directory in paths."""
        if v is None or v == "":
            return None
        path_str = str(v)
        if path_str.startswith("~"):
            path_str = os.path.expanduser(path_str)
        return Path(path_str)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator("search_limit", "search_max_query_length")
    @classmethod
    def validate_positive(cls, v):
        """Search bounds must be positive."""
        if v <= 0:
            raise ValueError("Search bounds must be positive integers")
        return v

    def ensure_directories(self):
        """Create the log directory if it doesn't exist."""
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def zotero_enabled(self) -> bool:
        """
        Whether the configured Zotero connection can be used at all.

        A web connection needs an API key; a local connection needs nothing.
        """
        if self.zotero_connection_type == "none":
            return False
        if self.zotero_connection_type == "web":
            return bool(self.zotero_api_key)
        return True


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Creates and caches the settings on first call.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reset_settings():
    """Reset the global settings instance (mainly for testing)."""
    global _settings
    _settings = None
