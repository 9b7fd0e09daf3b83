"""YAML configuration for toolpack.

Settings are resolved once by the CLI and passed explicitly to every
component. Each value is taken from the first source that sets it:

1. explicit argument (command-line flag)
2. environment (``TOOLPACK_INSTALL_ROOT``, ``TOOLPACK_REGISTRY``)
3. ``<home>/config.yaml``
4. built-in default

Example config.yaml:

    registry: https://toolchains.example.com/stable
    install_root: ~/toolchains
    active_version: 1.2.0
    sources:
      nightly: /srv/toolchains/nightly
    fetch:
      timeout: 30
      max_retries: 3
      backoff_factor: 1.0

A registry value that names an entry of ``sources`` (registered with
``toolpack link``) resolves to that entry's location. ``active_version`` is
written by ``toolpack version switch`` and is the version install, verify
and uninstall use when none is given.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

import yaml
from filelock import FileLock

from toolpack.core.directory import CONFIG_FILE_NAME, InstallLayout, get_default_home
from toolpack.core.exceptions import ConfigError
from toolpack.core.filesystem import atomic_write, ensure_directory
from toolpack.fetch.remote import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
)
from toolpack.manifest.version import is_valid_version

logger = logging.getLogger(__name__)

INSTALL_ROOT_ENV_VAR = "TOOLPACK_INSTALL_ROOT"
REGISTRY_ENV_VAR = "TOOLPACK_REGISTRY"

SOURCE_NAME_PATTERN = re.compile(r"[a-z0-9][a-z0-9_-]*")


@dataclass
class FetchSettings:
    """Network retrieval settings."""

    timeout: float = DEFAULT_TIMEOUT  # seconds per attempt
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR


@dataclass
class Settings:
    """Resolved toolpack settings."""

    home: Path
    install_root: Path
    registry: str
    fetch: FetchSettings = field(default_factory=FetchSettings)
    config_file: Optional[Path] = None
    config_path: Optional[Path] = None  # where updates are written
    active_version: Optional[str] = None
    sources: Dict[str, str] = field(default_factory=dict)

    @property
    def layout(self) -> InstallLayout:
        return InstallLayout(self.install_root)


def load_config_file(config_file: Path, required: bool = False) -> Dict[str, Any]:
    """
    Load and parse a YAML configuration file.

    Args:
        config_file: Path to YAML configuration file
        required: If True, raise error if file doesn't exist

    Returns:
        Configuration dictionary (empty dict if file doesn't exist and not required)

    Raises:
        ConfigError: If the file is required but missing, or is not valid YAML
    """
    if not config_file.exists():
        if required:
            raise ConfigError(f"Configuration file not found: {config_file}")
        logger.debug(f"Config file not found (optional): {config_file}")
        return {}

    logger.debug(f"Loading configuration from {config_file}")
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {config_file}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {config_file}")
    return data


def _parse_fetch(data: Any) -> FetchSettings:
    """Parse the fetch section."""
    if data is None:
        return FetchSettings()
    if not isinstance(data, dict):
        raise ConfigError("fetch must be a mapping")

    settings = FetchSettings()
    timeout = data.get("timeout", settings.timeout)
    max_retries = data.get("max_retries", settings.max_retries)
    backoff = data.get("backoff_factor", settings.backoff_factor)

    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(f"fetch.timeout must be a positive number, got {timeout!r}")
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 1:
        raise ConfigError(f"fetch.max_retries must be an integer >= 1, got {max_retries!r}")
    if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
        raise ConfigError(f"fetch.backoff_factor must be >= 0, got {backoff!r}")

    return FetchSettings(timeout=timeout, max_retries=max_retries, backoff_factor=backoff)


def _parse_sources(data: Any) -> Dict[str, str]:
    """Parse the sources section: name -> registry location."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("sources must be a mapping of name to location")

    sources = {}
    for name, location in data.items():
        if not is_valid_source_name(name):
            raise ConfigError(f"Invalid source name: {name!r}")
        if not isinstance(location, str) or not location:
            raise ConfigError(f"sources.{name} must be a non-empty string")
        sources[name] = location
    return sources


def _parse_active_version(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not is_valid_version(value):
        raise ConfigError(
            f"active_version must be a semantic version or 'local', got {value!r}"
        )
    return value


def is_valid_source_name(name) -> bool:
    """Check a linked source name: lowercase letters, digits, '_' and '-'."""
    return isinstance(name, str) and bool(SOURCE_NAME_PATTERN.fullmatch(name))


def _pick(*values):
    for value in values:
        if value:
            return value
    return None


def load_settings(
    config_file: Optional[Union[str, Path]] = None,
    install_root: Optional[Union[str, Path]] = None,
    registry: Optional[str] = None,
    home: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Resolve settings from arguments, environment, config file and defaults.

    Args:
        config_file: Config file path (default: <home>/config.yaml, optional)
        install_root: Explicit install root
        registry: Explicit registry source
        home: Home directory (default: TOOLPACK_HOME or ~/.toolpack)
        environ: Environment mapping (default: os.environ)

    Returns:
        Resolved Settings

    Raises:
        ConfigError: If an explicit config file is missing or any file is invalid

    Example:
        >>> settings = load_settings(install_root="/tmp/tp")
        >>> settings.registry
        '/tmp/tp/local'
    """
    environ = os.environ if environ is None else environ
    home = Path(home).expanduser() if home else get_default_home()

    explicit_config = config_file is not None
    config_path = Path(config_file) if explicit_config else home / CONFIG_FILE_NAME
    data = load_config_file(config_path, required=explicit_config)

    for name in ("install_root", "registry"):
        if name in data and not isinstance(data[name], str):
            raise ConfigError(f"{name} must be a string, got {data[name]!r}")

    root = _pick(
        install_root,
        environ.get(INSTALL_ROOT_ENV_VAR),
        data.get("install_root"),
    )
    root_path = Path(root).expanduser() if root else home

    source = _pick(
        registry,
        environ.get(REGISTRY_ENV_VAR),
        data.get("registry"),
    )
    sources = _parse_sources(data.get("sources"))
    if not source:
        source = str(InstallLayout(root_path).local_root)
    elif str(source) in sources:
        logger.debug(f"Registry {source!r} is a linked source: {sources[str(source)]}")
        source = sources[str(source)]

    settings = Settings(
        home=home,
        install_root=root_path,
        registry=str(source),
        fetch=_parse_fetch(data.get("fetch")),
        config_file=config_path if config_path.exists() else None,
        config_path=config_path,
        active_version=_parse_active_version(data.get("active_version")),
        sources=sources,
    )
    logger.debug(f"Settings: install_root={settings.install_root} registry={settings.registry}")
    return settings


# ============================================================================
# Persisting changes
# ============================================================================


def edit_config_file(
    config_file: Union[str, Path], edit: Callable[[Dict[str, Any]], Any]
) -> Any:
    """
    Read, modify and rewrite a config file.

    The read-modify-write runs under a file lock next to the config file and
    the new document replaces the old one atomically. Keys edit does not
    touch are preserved.

    Args:
        config_file: Config file to update (created if missing)
        edit: Called with the parsed mapping, mutates it in place

    Returns:
        Whatever edit returned

    Raises:
        ConfigError: If the existing file is invalid
        FilesystemError: If the file cannot be written
    """
    config_file = Path(config_file)
    ensure_directory(config_file.parent)

    with FileLock(str(config_file) + ".lock"):
        data = load_config_file(config_file)
        result = edit(data)
        text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        atomic_write(config_file, text)

    logger.debug(f"Updated {config_file}")
    return result


def update_config_file(config_file: Union[str, Path], **changes) -> None:
    """
    Set top-level keys of a config file; a value of None removes the key.

    Example:
        >>> update_config_file(home / "config.yaml", active_version="1.2.0")
    """

    def apply(data):
        for name, value in changes.items():
            if value is None:
                data.pop(name, None)
            else:
                data[name] = value

    edit_config_file(config_file, apply)


def set_source(config_file: Union[str, Path], name: str, location: str) -> Optional[str]:
    """
    Register location under name in the sources section.

    Returns:
        The location previously registered under name, if any

    Raises:
        ConfigError: If name is not a valid source name
    """
    if not is_valid_source_name(name):
        raise ConfigError(
            f"Invalid source name {name!r}: use lowercase letters, digits, '_' and '-'"
        )

    def apply(data):
        sources = data.get("sources") or {}
        if not isinstance(sources, dict):
            raise ConfigError("sources must be a mapping of name to location")
        previous = sources.get(name)
        sources[name] = location
        data["sources"] = sources
        return previous

    return edit_config_file(config_file, apply)


def remove_source(config_file: Union[str, Path], name: str) -> str:
    """
    Unregister a linked source.

    Returns:
        The location that was registered

    Raises:
        ConfigError: If no source has that name
    """

    def apply(data):
        sources = data.get("sources")
        if not isinstance(sources, dict) or name not in sources:
            raise ConfigError(f"No linked source named {name!r}")
        location = sources.pop(name)
        if not sources:
            del data["sources"]
        return location

    return edit_config_file(config_file, apply)


__all__ = [
    "INSTALL_ROOT_ENV_VAR",
    "REGISTRY_ENV_VAR",
    "SOURCE_NAME_PATTERN",
    "FetchSettings",
    "Settings",
    "is_valid_source_name",
    "load_config_file",
    "load_settings",
    "edit_config_file",
    "update_config_file",
    "set_source",
    "remove_source",
]
