"""Configuration for keyward.

Settings live in a pydantic model with validated ranges. They can be read
from a YAML, TOML or JSON file and overridden by environment variables::

    KEYWARD_MAX_ACTIVE_PER_OWNER=5
    KEYWARD_ROTATION_GRACE_PERIOD_HOURS=48

Environment variables win over the file, the file wins over the defaults.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import toml
import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from keyward.consts import SYSTEM_ACTOR_EMAIL
from keyward.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "KEYWARD_"


class CredentialConfig(BaseModel):
    """Configuration for credential issuance, rotation and sweeping."""

    # Secret generation
    secret_length: int = Field(default=32, ge=16, le=64)
    secret_prefix_length: int = Field(default=20, ge=4, le=32)

    # Hashing
    hash_rounds: int = Field(default=12, ge=4, le=31)

    # Expiration
    default_expiration_days: int = 90
    min_expiration_days: int = Field(default=1, ge=1)
    max_expiration_days: int = Field(default=365, ge=1)
    expiring_soon_days: int = Field(default=7, ge=0)

    # Naming and limits
    max_name_length: int = Field(default=100, ge=1)
    max_active_per_owner: int = Field(default=10, ge=1)

    # Rotation
    rotation_grace_period_hours: int = Field(default=24, ge=0)

    # Sweeping
    sweep_interval_seconds: float = Field(default=3600, gt=0)
    system_actor_email: str = SYSTEM_ACTOR_EMAIL

    # Audit
    audit_outbox_size: int = Field(default=10000, ge=1)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _check_expiration_bounds(self) -> "CredentialConfig":
        if self.min_expiration_days > self.max_expiration_days:
            raise ValueError("min_expiration_days must not exceed max_expiration_days")
        if not self.min_expiration_days <= self.default_expiration_days <= self.max_expiration_days:
            raise ValueError("default_expiration_days must lie between the minimum and maximum")
        return self

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "CredentialConfig":
        """Build a config, turning pydantic errors into ``ConfigurationError``."""
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid keyward configuration: {e}") from e


class ConfigFormat(str, Enum):
    """Configuration file format enumeration."""
    JSON = "json"
    YAML = "yaml"
    TOML = "toml"


class ConfigLoader(ABC):
    """Abstract base class for configuration loaders."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def load(self) -> Dict[str, Any]:
        """Load configuration values from the source."""
        pass


class FileConfigLoader(ConfigLoader):
    """File-based configuration loader.

    The file may hold the settings at top level or under a ``keyward``
    section, so it can share a file with other components.
    """

    SECTION = "keyward"

    def __init__(self, path: Union[str, Path], format: Optional[ConfigFormat] = None, encoding: str = "utf-8"):
        super().__init__()
        self.file_path = Path(path)
        self.format = format or self._detect_format()
        self.encoding = encoding

    def _detect_format(self) -> ConfigFormat:
        """Detect file format from extension."""
        suffix = self.file_path.suffix.lower()
        format_map = {
            '.json': ConfigFormat.JSON,
            '.yaml': ConfigFormat.YAML,
            '.yml': ConfigFormat.YAML,
            '.toml': ConfigFormat.TOML,
        }
        return format_map.get(suffix, ConfigFormat.YAML)

    def load(self) -> Dict[str, Any]:
        """Load configuration from file."""
        if not self.file_path.exists():
            self.logger.warning(f"Configuration file not found: {self.file_path}")
            return {}

        content = self.file_path.read_text(encoding=self.encoding)
        try:
            if self.format == ConfigFormat.JSON:
                data = json.loads(content)
            elif self.format == ConfigFormat.TOML:
                data = toml.loads(content)
            else:
                data = yaml.safe_load(content) or {}
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to parse {self.file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {self.file_path} must contain a mapping")

        section = data.get(self.SECTION, data)
        if not isinstance(section, dict):
            raise ConfigurationError(f"Section '{self.SECTION}' in {self.file_path} must be a mapping")
        return section


class EnvironmentConfigLoader(ConfigLoader):
    """Environment variables configuration loader."""

    def __init__(self, prefix: str = DEFAULT_ENV_PREFIX, environ: Optional[Dict[str, str]] = None):
        super().__init__()
        self.prefix = prefix
        self.environ = environ if environ is not None else os.environ

    def load(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config = {}
        known_fields = set(CredentialConfig.model_fields)

        for key, value in self.environ.items():
            if not key.upper().startswith(self.prefix.upper()):
                continue
            config_key = key[len(self.prefix):].lower()
            if config_key not in known_fields:
                self.logger.warning(f"Ignoring unknown configuration variable {key}")
                continue
            config[config_key] = self._convert_type(value)

        return config

    def _convert_type(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        if value.isdigit():
            return int(value)

        try:
            return float(value)
        except ValueError:
            return value


def load_config(
    path: Optional[Union[str, Path]] = None,
    env_prefix: Optional[str] = DEFAULT_ENV_PREFIX,
    overrides: Optional[Dict[str, Any]] = None,
) -> CredentialConfig:
    """Load the configuration from a file and the environment.

    Args:
        path: Optional YAML, TOML or JSON file
        env_prefix: Prefix of environment overrides, ``None`` to skip them
        overrides: Explicit values applied last

    Returns:
        CredentialConfig: The validated configuration
    """
    loaders: List[ConfigLoader] = []
    if path is not None:
        loaders.append(FileConfigLoader(path))
    if env_prefix is not None:
        loaders.append(EnvironmentConfigLoader(env_prefix))

    values: Dict[str, Any] = {}
    for loader in loaders:
        loaded = loader.load()
        if loaded:
            logger.debug(f"Loaded {len(loaded)} setting(s) from {loader.__class__.__name__}")
        values.update(loaded)

    if overrides:
        values.update(overrides)

    return CredentialConfig.from_mapping(values)
