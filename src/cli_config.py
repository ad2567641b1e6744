"""Configuration loading for the CLI: mirror registry, trusted keys, tunables.

Precedence is CLI flag, then environment variable, then built-in default.
The registry is loaded once and handed to the core explicitly; nothing here
stores it in module state.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, List, Optional

import yaml

from constants import Constants
from common.http_client import get_text
from errors import ConfigError

logger = logging.getLogger(__name__)


def _validate_registry(data, source: str) -> Dict[str, List[str]]:
    """Check the ``scheme -> [base, ...]`` shape, keeping list order untouched."""
    if isinstance(data, dict) and isinstance(data.get(Constants.REGISTRY_SECTION), dict):
        data = data[Constants.REGISTRY_SECTION]
    if not isinstance(data, dict) or not data:
        raise ConfigError(f"Mirror registry in {source} must be a non-empty mapping")

    registry: Dict[str, List[str]] = {}
    for scheme, bases in data.items():
        if not isinstance(scheme, str) or not scheme or ':' in scheme:
            raise ConfigError(f"Invalid scheme name {scheme!r} in {source}")
        if not isinstance(bases, list) or not bases:
            raise ConfigError(f"Scheme '{scheme}' in {source} must list at least one mirror")
        if not all(isinstance(base, str) and base.strip() for base in bases):
            raise ConfigError(f"Scheme '{scheme}' in {source} has an empty or non-string mirror")
        registry[scheme] = [base.strip() for base in bases]
    return registry


def load_registry(path: Optional[str] = None) -> Dict[str, List[str]]:
    """Load the mirror registry from YAML or JSON.

    Args:
        path: Registry file; falls back to MIRRORFETCH_REGISTRY, then the default.

    Returns:
        Mapping of scheme name to ordered mirror bases.

    Raises:
        ConfigError: unreadable file or invalid registry shape.
    """
    path = path or os.environ.get(Constants.ENV_REGISTRY)
    if not path:
        logger.debug("Using built-in mirror registry")
        return {scheme: list(bases) for scheme, bases in Constants.DEFAULT_REGISTRY.items()}

    if not os.path.isfile(path):
        raise ConfigError(f"Registry file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load registry {path}: {exc}") from exc
    registry = _validate_registry(data, path)
    logger.info("Loaded mirror registry from %s (%d scheme(s))", path, len(registry))
    return registry


def load_trusted_keys(sources: Iterable[str]) -> List[str]:
    """Read armored public keys from file paths or http(s) URLs."""
    keys: List[str] = []
    for source in sources:
        if source.startswith(("https://", "http://")):
            if source.startswith("http://"):
                logger.warning("Fetching trusted key over plain http: %s", source)
            keys.append(get_text(source, context="trusted key"))
            continue
        try:
            with open(source, "r", encoding="utf-8") as f:
                keys.append(f.read())
        except OSError as exc:
            raise ConfigError(f"Failed to read trusted key {source}: {exc}") from exc
    return keys


def get_git_timeout(cli_value: Optional[float] = None) -> Optional[float]:
    """Resolve the per-command git timeout in seconds; 0 disables it."""
    if cli_value is not None:
        value: float = cli_value
    else:
        env_value = os.environ.get(Constants.ENV_GIT_TIMEOUT)
        if not env_value:
            return Constants.GIT_TIMEOUT_SEC
        try:
            value = float(env_value)
        except ValueError as exc:
            raise ConfigError(
                f"{Constants.ENV_GIT_TIMEOUT} must be a number, got {env_value!r}"
            ) from exc
    if value < 0:
        raise ConfigError("git timeout must not be negative")
    return value or None


def get_gnupghome(cli_value: Optional[str] = None) -> Optional[str]:
    """Resolve the trusted keyring directory, if any."""
    home = cli_value or os.environ.get(Constants.ENV_GNUPGHOME)
    if home and not os.path.isdir(home):
        raise ConfigError(f"Keyring directory not found: {home}")
    return home or None
