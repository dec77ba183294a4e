"""
Registry settings

Loaded from YAML, with environment overrides.

Precedence for the config file (highest first):
1. Environment variable CAPREG_CONFIG (path)
2. ``config_path`` argument
3. Default path ~/.capregistry/config.yaml
4. Hard-coded defaults

Individual fields can then be overridden by environment variables
(CAPREG_DB_PATH, CAPREG_SCHEMA_DIR, CAPREG_LOG_LEVEL, OPENAI_API_KEY,
CAPREG_EMBEDDING_MODEL, CAPREG_OPENAI_BASE_URL, CAPREG_STRICT).
"""

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from capregistry.providers.embeddings import DEFAULT_EMBEDDING_MODEL, DEFAULT_OPENAI_BASE_URL

logger = logging.getLogger(__name__)

CAPREG_HOME = Path.home() / ".capregistry"
DEFAULT_CONFIG_PATH = CAPREG_HOME / "config.yaml"
DEFAULT_DB_PATH = CAPREG_HOME / "registry.db"

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class RegistrySettings:
    """Registry configuration"""

    db_path: str = str(DEFAULT_DB_PATH)
    schema_dir: Optional[str] = None  # extra *.json schemas, registered after the bundled ones
    log_level: str = "INFO"
    openai_api_key: Optional[str] = None
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    strict: bool = False  # default strictness for create/update/import

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (API key masked)"""
        data = asdict(self)
        if data["openai_api_key"]:
            data["openai_api_key"] = "***"
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistrySettings":
        """Create from dictionary; unknown keys are ignored"""
        defaults = cls()
        return cls(
            db_path=str(data.get("db_path", defaults.db_path)),
            schema_dir=data.get("schema_dir"),
            log_level=str(data.get("log_level", defaults.log_level)).upper(),
            openai_api_key=data.get("openai_api_key"),
            embedding_model=data.get("embedding_model", defaults.embedding_model),
            openai_base_url=data.get("openai_base_url", defaults.openai_base_url),
            strict=bool(data.get("strict", defaults.strict)),
        )


def _apply_env_overrides(settings: RegistrySettings) -> RegistrySettings:
    env_db_path = os.getenv("CAPREG_DB_PATH")
    if env_db_path:
        settings.db_path = env_db_path

    env_schema_dir = os.getenv("CAPREG_SCHEMA_DIR")
    if env_schema_dir:
        settings.schema_dir = env_schema_dir

    env_log_level = os.getenv("CAPREG_LOG_LEVEL")
    if env_log_level:
        settings.log_level = env_log_level.upper()

    env_api_key = os.getenv("OPENAI_API_KEY")
    if env_api_key:
        settings.openai_api_key = env_api_key

    env_model = os.getenv("CAPREG_EMBEDDING_MODEL")
    if env_model:
        settings.embedding_model = env_model

    env_base_url = os.getenv("CAPREG_OPENAI_BASE_URL")
    if env_base_url:
        settings.openai_base_url = env_base_url

    env_strict = os.getenv("CAPREG_STRICT")
    if env_strict:
        settings.strict = env_strict.strip().lower() in _TRUE_VALUES

    return settings


def load_settings(config_path: Optional[Path] = None) -> RegistrySettings:
    """
    Load registry settings

    Args:
        config_path: Config file path (optional)

    Returns:
        RegistrySettings with environment overrides applied
    """
    # 1. Environment variable
    env_config_path = os.getenv("CAPREG_CONFIG")
    if env_config_path:
        config_path = Path(env_config_path)

    # 2. Argument, 3. default path
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH

    config_data: Dict[str, Any] = {}
    if config_path and Path(config_path).exists():
        with open(config_path, encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring config file {config_path}: expected a mapping")
            config_data = {}
    elif config_path:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    # 4. Hard-coded defaults fill the rest
    return _apply_env_overrides(RegistrySettings.from_dict(config_data))

