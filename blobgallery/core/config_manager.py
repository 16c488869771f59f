"""
Configuration management for BlobGallery.

Handles loading, validation, and access to configuration settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..storage.models import ContainerNameValidator

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"

# Configuration file for app factories started without arguments (uvicorn --reload)
CONFIG_FILE_ENV = "BLOBGALLERY_CONFIG_FILE"


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackendType(str, Enum):
    """Supported object store backends."""
    MEMORY = "memory"
    AZURE = "azure"


class EmptyUploadPolicy(str, Enum):
    """What a block upload does with a zero-length input."""
    SKIP = "skip"
    COMMIT = "commit"
    REJECT = "reject"


class FinalizeMode(str, Enum):
    """How properties and metadata are attached after an upload."""
    SEPARATE = "separate"
    ON_COMMIT = "on_commit"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: LogLevel = LogLevel.INFO
    format: str = "json"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'blobgallery.upload.coordinator': 'DEBUG'}"
    )

    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = ConfigDict(frozen=True)


class StorageConfig(BaseModel):
    """Object store connection settings."""
    backend: StorageBackendType = StorageBackendType.MEMORY
    container_name: str = "cont1"
    connection_string: Optional[str] = None
    account_name: Optional[str] = None
    account_key: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None

    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)

    @field_validator("container_name")
    @classmethod
    def validate_container_name(cls, v: str) -> str:
        """Validate container name."""
        ContainerNameValidator.validate_raise(v)
        return v


class UploadConfig(BaseModel):
    """Upload behavior and the content settings applied to new objects."""
    max_block_size: int = Field(default=100_000, gt=0, description="Maximum block size in bytes")
    max_concurrency: int = Field(default=4, ge=1, description="Blocks staged in parallel per file")
    max_concurrent_files: int = Field(default=2, ge=1, description="Files uploaded in parallel per batch")
    empty_upload_policy: EmptyUploadPolicy = EmptyUploadPolicy.SKIP
    finalize_mode: FinalizeMode = FinalizeMode.SEPARATE
    default_content_type: str = "application/octet-stream"
    cache_control: Optional[str] = "public,max-age=60480"
    content_disposition: Optional[str] = "inline"
    content_encoding: Optional[str] = None
    content_language: Optional[str] = "en-US"

    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True)


class GalleryConfig(BaseModel):
    """Main BlobGallery configuration schema."""

    server: ServerConfig = Field(default_factory=ServerConfig)

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    storage: StorageConfig = Field(default_factory=StorageConfig)

    upload: UploadConfig = Field(default_factory=UploadConfig)

    model_config = ConfigDict(frozen=True)

    def redacted_dump(self) -> Dict[str, Any]:
        """Dump the configuration with credentials replaced."""
        config_dict = self.model_dump(mode="json")
        storage = config_dict["storage"]
        for key in ("account_key", "connection_string"):
            if storage.get(key):
                storage[key] = REDACTED
        return config_dict


class ConfigManager:
    """
    Manages BlobGallery configuration loading and validation.

    Configuration precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables (BLOBGALLERY_*, STORAGE_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[GalleryConfig] = None
        self._config_file: Optional[Path] = None

    def load(
        self,
        config_file: Optional[str] = None,
        cli_overrides: Optional[Dict[str, Any]] = None
    ) -> GalleryConfig:
        """
        Load and validate configuration from multiple sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            cli_overrides: Dictionary of CLI argument overrides

        Returns:
            Validated GalleryConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If specified config file doesn't exist
        """
        logger.info("Loading BlobGallery configuration")

        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.info(f"Applied {len(env_config)} environment variable overrides")

        if cli_overrides:
            config_dict = self._merge_configs(config_dict, cli_overrides)
            logger.info(f"Applied {len(cli_overrides)} CLI argument overrides")

        try:
            self._config = GalleryConfig(**config_dict)
            logger.info("Configuration validated successfully")
            self._log_configuration()
            return self._config
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file."""
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        # Server configuration
        if host := os.getenv("BLOBGALLERY_HOST"):
            config.setdefault("server", {})["host"] = host
        if port := os.getenv("BLOBGALLERY_PORT"):
            config.setdefault("server", {})["port"] = int(port)

        # Logging configuration
        if log_level := os.getenv("BLOBGALLERY_LOG_LEVEL"):
            config.setdefault("logging", {})["level"] = log_level.upper()
        if log_file := os.getenv("BLOBGALLERY_LOG_FILE"):
            config.setdefault("logging", {})["file"] = log_file

        # Storage account (same variable names the gallery has always read)
        storage_env = {
            "backend": "BLOBGALLERY_STORAGE_BACKEND",
            "container_name": "BLOBGALLERY_CONTAINER",
            "connection_string": "AZURE_STORAGE_CONNECTION_STRING",
            "account_name": "STORAGE_ACCOUNT_NAME",
            "account_key": "STORAGE_ACCOUNT_KEY",
            "host": "STORAGE_HOST",
        }
        for key, env_name in storage_env.items():
            if value := os.getenv(env_name):
                config.setdefault("storage", {})[key] = value
        if storage_port := os.getenv("STORAGE_PORT"):
            config.setdefault("storage", {})["port"] = int(storage_port)

        # Upload behavior
        if max_block_size := os.getenv("BLOBGALLERY_MAX_BLOCK_SIZE"):
            config.setdefault("upload", {})["max_block_size"] = int(max_block_size)
        if max_concurrency := os.getenv("BLOBGALLERY_MAX_CONCURRENCY"):
            config.setdefault("upload", {})["max_concurrency"] = int(max_concurrency)
        if empty_policy := os.getenv("BLOBGALLERY_EMPTY_UPLOAD_POLICY"):
            config.setdefault("upload", {})["empty_upload_policy"] = empty_policy.lower()
        if finalize_mode := os.getenv("BLOBGALLERY_FINALIZE_MODE"):
            config.setdefault("upload", {})["finalize_mode"] = finalize_mode.lower()

        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _log_configuration(self) -> None:
        """Log the loaded configuration (with credentials redacted)."""
        if not self._config:
            return

        logger.info(f"Active configuration: {json.dumps(self._config.redacted_dump(), indent=2)}")

    def get_config(self) -> GalleryConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def reload(self) -> GalleryConfig:
        """Reload configuration from the same sources."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file)
