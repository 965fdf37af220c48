"""
Configuration loader for the Orchestra runtime.

The system file (platform config dir) is read first and the nearest project
``.orchestra/config.toml`` is layered on top. Tables merge key by key; the
``triggers`` and ``skills`` arrays merge by identity so a project can
override one system trigger without restating the rest.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from orchestra.config.schema import Configuration
from orchestra.constants import APP_NAME, CONFIG_DIR_NAME, CONFIG_FILE_NAME
from orchestra.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Array-of-tables sections merged by a key field instead of replaced.
_KEYED_ARRAYS: dict[str, str] = {"triggers": "id", "skills": "name"}


def get_system_config_path() -> Path:
    """Path of the system-wide ``config.toml``."""
    return Path(user_config_dir(APP_NAME)) / CONFIG_FILE_NAME


def find_project_config(start: Path) -> Path | None:
    """
    Locate the nearest project configuration file.

    Walks from ``start`` up to the filesystem root looking for
    ``.orchestra/config.toml``.

    Parameters
    ----------
    start : Path
        Directory the search begins in.

    Returns
    -------
    Path | None
        The first configuration file found, or None.
    """
    current: Path = start.resolve()
    for directory in (current, *current.parents):
        candidate: Path = directory / CONFIG_DIR_NAME / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            f"Invalid TOML in {path}: {e}",
            config_file=str(path),
            cause=e,
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file {path}: {e}",
            config_file=str(path),
            cause=e,
        ) from e


def _merge_keyed(base: list[Any], override: list[Any], key: str) -> list[Any]:
    merged: list[Any] = list(base)
    positions: dict[Any, int] = {
        entry.get(key): i for i, entry in enumerate(merged) if isinstance(entry, dict)
    }
    for entry in override:
        ident = entry.get(key) if isinstance(entry, dict) else None
        if ident is not None and ident in positions:
            merged[positions[ident]] = entry
        else:
            merged.append(entry)
    return merged


def merge_config_layers(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Layer one parsed config document over another.

    Nested tables merge recursively, ``triggers`` and ``skills`` merge by
    ``id`` / ``name``, and every other value in ``override`` wins outright.

    Examples
    --------
    >>> merge_config_layers(
    ...     {"triggers": [{"id": "a", "interval_minutes": 5}]},
    ...     {"triggers": [{"id": "a", "interval_minutes": 10}, {"id": "b"}]},
    ... )["triggers"]
    [{'id': 'a', 'interval_minutes': 10}, {'id': 'b'}]
    """
    result: dict[str, Any] = dict(base)
    for name, value in override.items():
        current = result.get(name)
        if isinstance(current, dict) and isinstance(value, dict):
            result[name] = merge_config_layers(current, value)
        elif name in _KEYED_ARRAYS and isinstance(current, list) and isinstance(value, list):
            result[name] = _merge_keyed(current, value, _KEYED_ARRAYS[name])
        else:
            result[name] = value
    return result


def load_configuration(
    cwd: Path | None = None,
    system_path: Path | None = None,
) -> Configuration:
    """
    Load and validate the runtime configuration.

    A broken system file is logged and skipped; a broken project file is an
    error, since it is the one the user is actively editing. Provider
    credentials missing from both files fall back to environment variables
    when the providers are initialized.

    Parameters
    ----------
    cwd : Path | None, optional
        Directory the project config search starts from. Defaults to the
        current directory.
    system_path : Path | None, optional
        Override for the system configuration file location.

    Returns
    -------
    Configuration
        Validated configuration.

    Raises
    ------
    ConfigurationError
        If the project file is unreadable or the merged settings are invalid.
    """
    cwd = cwd or Path.cwd()
    system_path = system_path or get_system_config_path()

    layers: dict[str, Any] = {}

    if system_path.is_file():
        try:
            layers = _read_toml(system_path)
            logger.debug(f"Loaded system config from {system_path}")
        except ConfigurationError as e:
            logger.warning(f"Skipping invalid system config {system_path}: {e}")

    project_path: Path | None = find_project_config(cwd)
    if project_path is not None:
        layers = merge_config_layers(layers, _read_toml(project_path))
        logger.debug(f"Loaded project config from {project_path}")

    try:
        config = Configuration(**layers)
    except Exception as e:
        raise ConfigurationError(f"Invalid configuration: {e}", cause=e) from e

    problems: list[str] = config.validate_settings()
    if problems:
        raise ConfigurationError(
            "Configuration validation failed:\n" + "\n".join(f"  - {p}" for p in problems)
        )

    logger.info(
        f"Configuration loaded: {len(config.triggers)} trigger(s), {len(config.skills)} skill(s)"
    )
    return config
