"""Configuration loading: bundled local config plus the error-message table."""

import functools
import hashlib
import logging
import os
import shutil
import time
import urllib.parse
from pathlib import Path
from importlib.resources import files
from typing import Any, Dict, Optional

import jsonschema
import requests
import yaml

logger = logging.getLogger(__name__)

PACKAGE = "field_validation"
LOCAL_CONFIG_FILENAME = "local-config.yaml"
ERROR_MESSAGES_FILENAME = "error-messages.yaml"

LOCAL_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "error_messages_location": {"type": "string"},
        "error_separator": {"type": "string"},
        "remote_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
        "batch_parallelism": {"type": "boolean"},
        "batch_max_workers": {"type": ["integer", "null"], "minimum": 1},
        "sanitize": {
            "type": "object",
            "properties": {
                "tags": {"type": "array", "items": {"type": "string"}},
                "attributes": {
                    "type": "object",
                    "additionalProperties": {"type": "array", "items": {"type": "string"}},
                },
                "strip": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
    },
}

ERROR_MESSAGES_SCHEMA = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}


def _check_schema(document: Any, schema: Dict[str, Any], source: str) -> None:
    try:
        jsonschema.validate(instance=document, schema=schema)
    except jsonschema.ValidationError as e:
        error_path = " -> ".join(str(p) for p in e.path) if e.path else "root"
        raise ValueError(f"Invalid configuration in {source} at {error_path}: {e.message}") from e


@functools.lru_cache(maxsize=None)
def _bundled_error_messages() -> Dict[str, str]:
    resource = files(PACKAGE).joinpath(ERROR_MESSAGES_FILENAME)
    with resource.open("r") as f:
        messages = yaml.safe_load(f)
    _check_schema(messages, ERROR_MESSAGES_SCHEMA, ERROR_MESSAGES_FILENAME)
    return messages


def load_default_error_messages() -> Dict[str, str]:
    """Return a fresh copy of the bundled rule name -> template table."""
    return dict(_bundled_error_messages())


class ConfigLoader:
    """Loads local-config.yaml and the error-message table it points at."""

    # Cache directory for remotely fetched message tables
    CACHE_DIR = Path.home() / ".cache" / "field-validation"

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to a local config YAML. Defaults to the
                local-config.yaml bundled with the package.

        Raises:
            ValueError: If the config does not match the expected structure
        """
        if config_path:
            self.local_config_path = str(Path(config_path).resolve())
            self.local_config = self._load_yaml(self.local_config_path) or {}
        else:
            config_file = files(PACKAGE).joinpath(LOCAL_CONFIG_FILENAME)
            self.local_config_path = str(config_file)
            with config_file.open("r") as f:
                self.local_config = yaml.safe_load(f) or {}

        _check_schema(self.local_config, LOCAL_CONFIG_SCHEMA, self.local_config_path)

        self.cache_dir = self.CACHE_DIR

        location = self.local_config.get("error_messages_location")
        if location:
            self.error_messages = self._load_config_from_uri(location)
            _check_schema(self.error_messages, ERROR_MESSAGES_SCHEMA, location)
        else:
            self.error_messages = load_default_error_messages()

        self.loaded_at = time.time()
        logger.info(
            "Configuration loaded",
            extra={
                "config_path": self.local_config_path,
                "error_messages_location": location or ERROR_MESSAGES_FILENAME,
                "templates": len(self.error_messages),
            },
        )

    def _load_yaml(self, path: str) -> Any:
        """Load YAML file from disk."""
        with open(path) as f:
            return yaml.safe_load(f)

    def _load_config_from_uri(self, uri: str) -> Any:
        """
        Load a YAML document from a URI (with caching for remote ones).

        Supports:
        - Relative paths - resolved against the local config's directory
        - file:// - Local filesystem (absolute paths)
        - https:// and http:// - Fetched once and cached under CACHE_DIR

        Args:
            uri: Document URI or relative path

        Returns:
            Parsed YAML document
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            config_dir = os.path.dirname(os.path.abspath(self.local_config_path))
            return self._load_yaml(os.path.join(config_dir, uri))

        if parsed.scheme == "file":
            return self._load_yaml(urllib.parse.unquote(parsed.path))

        if parsed.scheme in ("http", "https"):
            cache_key = hashlib.sha256(uri.encode()).hexdigest()
            cache_path = self.cache_dir / f"messages_{cache_key}.yaml"

            if cache_path.exists():
                logger.debug(f"Using cached document for {uri}")
                return self._load_yaml(str(cache_path))

            content = self._fetch_uri(uri)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(content)
            return yaml.safe_load(content)

        raise ValueError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

    def _fetch_uri(self, uri: str) -> str:
        """Fetch content from an HTTP/HTTPS URI."""
        try:
            response = requests.get(uri, timeout=self.get_remote_timeout())
            response.raise_for_status()
            return response.text
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Failed to fetch config from {uri}: {e}") from e

    def clear_cache(self) -> None:
        """Remove remotely fetched documents so the next load refetches them."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            logger.info(f"Cleared config cache at {self.cache_dir}")

    def get_local_config(self) -> Dict[str, Any]:
        return self.local_config

    def get_error_messages(self) -> Dict[str, str]:
        """Return a copy of the error-message table so sessions cannot alter it."""
        return dict(self.error_messages)

    def get_error_separator(self) -> str:
        return self.local_config.get("error_separator", "<br>")

    def get_sanitize_config(self) -> Dict[str, Any]:
        return self.local_config.get("sanitize", {})

    def get_remote_timeout(self) -> float:
        return self.local_config.get("remote_timeout_seconds", 10)

    def get_batch_parallelism(self) -> bool:
        return bool(self.local_config.get("batch_parallelism", False))

    def get_batch_max_workers(self) -> Optional[int]:
        """None means os.cpu_count()."""
        return self.local_config.get("batch_max_workers")

    def get_config_age(self) -> float:
        """Seconds since the configuration was loaded."""
        return time.time() - self.loaded_at
