"""Configuration module for toolpack.

This module resolves user settings (install root, registry, fetch tuning,
linked sources, active version) from command-line values, environment
variables and ``config.yaml``, and persists changes back to it.
"""

from toolpack.config.settings import (
    INSTALL_ROOT_ENV_VAR,
    REGISTRY_ENV_VAR,
    FetchSettings,
    Settings,
    edit_config_file,
    is_valid_source_name,
    load_config_file,
    load_settings,
    remove_source,
    set_source,
    update_config_file,
)

__all__ = [
    "INSTALL_ROOT_ENV_VAR",
    "REGISTRY_ENV_VAR",
    "FetchSettings",
    "Settings",
    "edit_config_file",
    "is_valid_source_name",
    "load_config_file",
    "load_settings",
    "remove_source",
    "set_source",
    "update_config_file",
]
