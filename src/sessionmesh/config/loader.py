# src/sessionmesh/config/loader.py
"""
Layered configuration loading.

Sources, lowest precedence first:
    1. ``default_config.toml`` packaged with the library
    2. an optional user TOML file
    3. environment variables (``SESSIONMESH_CACHE__MAX_ENTRIES=512``)
    4. an explicit overrides dictionary (dotted keys allowed)

Layering is done by ``confy``; the merged result is then validated into
``SessionMeshConfig``.
"""

import importlib.resources
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from confy.loader import Config as ConfyConfig
from pydantic import ValidationError

from ..exceptions import ConfigError
from .models import SessionMeshConfig

logger = logging.getLogger(__name__)


def load_default_config() -> Dict[str, Any]:
    """Reads the packaged default configuration."""
    default_path = importlib.resources.files("sessionmesh.config").joinpath("default_config.toml")
    with default_path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    config_file_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    env_prefix: Optional[str] = "SESSIONMESH",
) -> SessionMeshConfig:
    """
    Builds the validated configuration from all sources.

    Args:
        config_file_path: Optional TOML file layered over the defaults.
        overrides: Optional dictionary applied last. Keys may be dotted
                   (``{"cache.max_entries": 10}``) or nested dictionaries.
        env_prefix: Prefix for environment overrides; None disables them.

    Returns:
        The validated SessionMeshConfig.

    Raises:
        ConfigError: If a file cannot be read or the merged values are invalid.
    """
    file_path = None
    if config_file_path:
        file_path = Path(os.path.expanduser(config_file_path))
        if not file_path.is_file():
            raise ConfigError(f"Configuration file not found: {file_path}")

    try:
        layered = ConfyConfig(
            defaults=load_default_config(),
            file_path=str(file_path) if file_path else None,
            prefix=env_prefix,
            overrides_dict=dict(overrides) if overrides else None,
        )
        merged = layered.as_dict()
    except Exception as e:
        raise ConfigError(f"SessionMesh configuration loading failed: {e}")
    if file_path:
        logger.info(f"Loaded configuration file: {file_path}")

    try:
        return SessionMeshConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid SessionMesh configuration: {e}")
