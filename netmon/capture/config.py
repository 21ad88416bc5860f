"""Configuration system for network monitoring.

This module provides configuration management for monitoring sessions,
including YAML loading, validation, and environment-specific overrides.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .browser_factory import BrowserConfig, DEFAULT_CDP_PORT
from .errors import ConfigurationError
from .query import DETAIL_CAP_BYTES, PREVIEW_BYTES
from .store import DEFAULT_BUFFER_SIZE, MAX_BUFFER_SIZE
from ..models.capture import FilterConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "NETMON_CONFIG"
ENVIRONMENT_ENV = "NETMON_ENV"
DEFAULT_CONFIG_PATH = Path("config") / "netmon.yaml"


class MonitorConfig(BaseModel):
    """Root configuration for monitoring sessions."""

    environment: str = Field(default="production", description="Environment name")
    cdp_port: int = Field(default=DEFAULT_CDP_PORT, ge=1, le=65535, description="Remote debugging port")
    host: str = Field(default="localhost", description="Host the browser listens on")
    connect_timeout_s: float = Field(default=5.0, gt=0, description="Websocket handshake timeout")
    headless: bool = Field(default=False, description="Launch browsers headless")
    max_buffer_size: int = Field(
        default=DEFAULT_BUFFER_SIZE,
        ge=1,
        le=MAX_BUFFER_SIZE,
        description="Default number of retained records"
    )
    filter: FilterConfig = Field(default_factory=FilterConfig, description="Default capture filter")
    preview_bytes: int = Field(default=PREVIEW_BYTES, ge=0, description="Body preview size in list results")
    detail_cap_bytes: int = Field(default=DETAIL_CAP_BYTES, ge=1, description="Body cap in detail results")
    log_level: str = Field(default="INFO", description="Logging level")
    environments: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Environment-specific overrides"
    )

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {'production', 'staging', 'development', 'test'}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = str(v).upper()
        if level not in {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def effective(self) -> "MonitorConfig":
        """Return a copy with the current environment's overrides applied."""
        overrides = self.environments.get(self.environment)
        if not overrides:
            return self
        data = self.model_dump(exclude={'environments', 'filter'})
        data['filter'] = self.filter
        data.update(overrides)
        return MonitorConfig(**data)

    def get_browser_config(self) -> BrowserConfig:
        """Get browser configuration with environment overrides applied."""
        config = self.effective()
        return BrowserConfig(headless=config.headless, host=config.host)


class MonitorConfigManager:
    """Manager for configuration loading and caching."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to YAML config file. Defaults to $NETMON_CONFIG,
                then config/netmon.yaml in the working directory
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        self._config: Optional[MonitorConfig] = None
        self._loaded_env: Optional[str] = None

    def load_config(self, force_reload: bool = False) -> MonitorConfig:
        """Load configuration from YAML file.

        A missing file yields the defaults.

        Args:
            force_reload: Force reload even if already cached

        Returns:
            Loaded and validated configuration with overrides applied

        Raises:
            ConfigurationError: If the YAML or its contents are invalid
        """
        current_env = os.environ.get(ENVIRONMENT_ENV, 'production')

        if self._config is not None and not force_reload and current_env == self._loaded_env:
            return self._config

        config_data: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e
        else:
            logger.debug(f"No config file at {self.config_path}, using defaults")

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Configuration in {self.config_path} must be a mapping")

        if current_env != 'production':
            config_data['environment'] = current_env

        try:
            self._config = MonitorConfig(**config_data).effective()
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        self._loaded_env = current_env
        return self._config

    @property
    def config(self) -> MonitorConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    @property
    def environment(self) -> str:
        return self.config.environment


# Global config manager instance
_config_manager: Optional[MonitorConfigManager] = None


def get_config(config_path: Optional[Union[str, Path]] = None) -> MonitorConfigManager:
    """Get global configuration manager.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        Global MonitorConfigManager instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = MonitorConfigManager(config_path)
    return _config_manager
