"""
User-specific settings of the encode orchestrator.

Endpoints, tokens and default containers differ per deployment, so they are not
kept in `common.py`. They are read from a 'config.user.yaml' file at the project
root (or any path given explicitly), and each of them can be overridden by an
environment variable named `ENCODE_<KEY>` (e.g. `ENCODE_ACCESS_TOKEN`), which keeps
tokens out of files in containerized deployments.

Example 'config.user.yaml':

    rest_api_endpoint: "https://myaccount.restv2.westeurope.media.azure.net/api/"
    access_token: "<bearer token>"
    storage_access_token: "<bearer token for blob storage>"
    callback_endpoint: "https://example.org/api/encode-notifications"
    output_container: "https://myoutput.blob.core.windows.net/encoded"
    preset_file: "presets.yaml"
    log_level: "INFO"
"""
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from ..domain.exceptions import ValidationError
from .common import DEFAULT_REQUEST_TIMEOUT_SECONDS, ENV_PREFIX, USER_CONFIG_PATH

_VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    """
    Deployment settings.

    Attributes:
        rest_api_endpoint: Base URL of the remote encoding service's REST API. Required
                           for every command that talks to the remote service.
        access_token: Bearer token for the REST API.
        storage_access_token: Bearer token for blob storage. Not needed when blob
                              URIs carry SAS tokens or `local_blob_root` is set.
        callback_endpoint: Default callback URI registered for submitted jobs.
        output_container: Default container URI finished output is copied into.
        preset_file: YAML file mapping preset names to encoder configurations.
                     Relative paths are resolved against the configuration file.
        local_blob_root: If set, blob URIs are mapped onto this directory instead of
                         being sent to blob storage.
        request_timeout_seconds: Timeout of a single HTTP request.
        log_level: Level of the stderr log sink.
    """

    rest_api_endpoint: Optional[str] = None
    access_token: Optional[str] = None
    storage_access_token: Optional[str] = None
    callback_endpoint: Optional[str] = None
    output_container: Optional[str] = None
    preset_file: Optional[Path] = None
    local_blob_root: Optional[Path] = None
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    log_level: str = "INFO"

    def require_rest_api(self):
        """
        Raises:
            ValidationError: If the REST endpoint or access token is not configured.
        """
        if not self.rest_api_endpoint:
            raise ValidationError("rest_api_endpoint is not configured.")
        if not self.access_token:
            raise ValidationError("access_token is not configured.")


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValidationError(f"Could not parse '{config_path}': {e}") from e

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValidationError(f"'{config_path}' must contain a mapping at the top level.")
    return loaded


def load_settings(path: Optional[Union[str, Path]] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Loads the settings from a YAML file and the environment.

    Args:
        path: The configuration file. Defaults to 'config.user.yaml' at the project
              root, which may be absent. An explicitly given file must exist.
        environ: The environment to read overrides from. Defaults to `os.environ`.

    Returns:
        The merged settings.

    Raises:
        ValidationError: If the file is missing (explicit path only), malformed, or
                         holds invalid values.
    """
    environ = os.environ if environ is None else environ
    config_path = Path(path) if path is not None else USER_CONFIG_PATH

    values: Dict[str, Any] = {}
    if config_path.is_file():
        values.update(_read_yaml(config_path))
        logger.debug(f"Loaded settings from '{config_path}'")
    elif path is not None:
        raise ValidationError(f"Configuration file '{config_path}' does not exist.")
    else:
        logger.debug(f"User config '{config_path}' not found. Using environment and defaults only.")

    known_keys = {f.name for f in fields(Settings)}
    unknown_keys = set(values) - known_keys
    if unknown_keys:
        logger.warning(f"Ignoring unknown settings in '{config_path}': {', '.join(sorted(unknown_keys))}")

    for key in known_keys:
        env_value = environ.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value is not None:
            values[key] = env_value

    return _build_settings({k: v for k, v in values.items() if k in known_keys}, config_path.parent)


def _build_settings(values: Dict[str, Any], base_dir: Path) -> Settings:
    def optional_text(key: str) -> Optional[str]:
        value = values.get(key)
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    def optional_path(key: str) -> Optional[Path]:
        text = optional_text(key)
        if text is None:
            return None
        candidate = Path(text).expanduser()
        return candidate if candidate.is_absolute() else (base_dir / candidate).resolve()

    timeout_value = values.get("request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS)
    try:
        timeout = float(timeout_value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"request_timeout_seconds must be a number, got {timeout_value!r}") from e
    if timeout <= 0:
        raise ValidationError(f"request_timeout_seconds must be positive, got {timeout}")

    log_level = (optional_text("log_level") or "INFO").upper()
    if log_level not in _VALID_LOG_LEVELS:
        raise ValidationError(f"log_level must be one of {', '.join(_VALID_LOG_LEVELS)}, got {log_level}")

    return Settings(
        rest_api_endpoint=optional_text("rest_api_endpoint"),
        access_token=optional_text("access_token"),
        storage_access_token=optional_text("storage_access_token"),
        callback_endpoint=optional_text("callback_endpoint"),
        output_container=optional_text("output_container"),
        preset_file=optional_path("preset_file"),
        local_blob_root=optional_path("local_blob_root"),
        request_timeout_seconds=timeout,
        log_level=log_level,
    )
