"""Configuration file loader for the Salesforce connector.

Supports loading the extraction configuration from YAML and JSON files,
with ``${ENV_VAR}`` references expanded so credentials can stay out of
the file itself.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import ExtractionConfig

logger = logging.getLogger(__name__)

ENV_REFERENCE_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        message = super().__str__()
        if not self.errors:
            return message
        details = "; ".join(
            f"{error.get('field', '-')}: {error.get('error')}" for error in self.errors
        )
        return f"{message} ({details})"


class ConfigLoader:
    """Loads and validates the extraction configuration from files."""

    def __init__(self, environ: dict[str, str] | None = None):
        """Initialize the config loader.

        Args:
            environ: Environment used for ``${VAR}`` expansion.
                     Defaults to ``os.environ``.
        """
        self.environ = environ if environ is not None else os.environ

    def load_file(self, file_path: str | Path) -> ExtractionConfig:
        """Load the extraction configuration from a single file.

        Args:
            file_path: Path to YAML or JSON config file

        Returns:
            Validated ExtractionConfig

        Raises:
            ConfigValidationError: If validation fails
            FileNotFoundError: If file doesn't exist
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        # Detect format from extension
        suffix = path.suffix.lower()

        try:
            if suffix in (".yaml", ".yml"):
                with open(path) as f:
                    data = yaml.safe_load(f)
            elif suffix == ".json":
                with open(path) as f:
                    data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigValidationError(
                f"Could not parse {path}",
                errors=[{"file": str(path), "error": str(e)}],
            ) from e

        return self.parse(data, str(path))

    def parse(self, data: Any, source: str = "<config>") -> ExtractionConfig:
        """Validate already-parsed configuration data.

        Args:
            data: Parsed YAML/JSON mapping
            source: Source name for error messages

        Returns:
            Validated ExtractionConfig

        Raises:
            ConfigValidationError: If validation fails
        """
        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"Invalid config format in {source}",
                errors=[{"file": source, "error": "Expected a mapping"}],
            )

        # Allow the settings to be nested under a "salesforce" key
        if "salesforce" in data and isinstance(data["salesforce"], dict):
            data = data["salesforce"]

        errors: list[dict[str, Any]] = []
        expanded = self._expand_env(data, source, errors)
        if errors:
            raise ConfigValidationError(
                f"Unresolved environment variables in {source}", errors=errors
            )

        try:
            config = ExtractionConfig(**expanded)
        except ValidationError as e:
            raise ConfigValidationError(
                f"Validation failed for {source}",
                errors=[
                    {
                        "file": source,
                        "field": ".".join(str(part) for part in error["loc"]) or None,
                        "error": error["msg"],
                    }
                    for error in e.errors()
                ],
            ) from e

        logger.info(
            f"Loaded {config.source_shape.value} configuration from {source}"
            f" (incremental={config.is_incremental}, one_shot={config.is_one_shot})"
        )
        return config

    def _expand_env(
        self, value: Any, source: str, errors: list[dict[str, Any]], path: str = ""
    ) -> Any:
        """Recursively replace ``${VAR}`` references in string values."""
        if isinstance(value, dict):
            return {
                key: self._expand_env(item, source, errors, f"{path}{key}.")
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [
                self._expand_env(item, source, errors, f"{path}{idx}.")
                for idx, item in enumerate(value)
            ]
        if not isinstance(value, str):
            return value

        def replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in self.environ:
                errors.append(
                    {
                        "file": source,
                        "field": path.rstrip("."),
                        "error": f"Environment variable not set: {name}",
                    }
                )
                return match.group(0)
            return self.environ[name]

        return ENV_REFERENCE_PATTERN.sub(replace, value)


def load_config(file_path: str | Path) -> ExtractionConfig:
    """Convenience function to load a configuration file.

    Args:
        file_path: Path to YAML or JSON config file

    Returns:
        Validated ExtractionConfig
    """
    return ConfigLoader().load_file(file_path)


# Example configuration template
EXAMPLE_INCREMENTAL_CONFIG = """
# Incremental Lead extraction every five minutes
client_id: "${SFDC_CLIENT_ID}"
client_secret: "${SFDC_CLIENT_SECRET}"
username: integration@example.com
password: "${SFDC_PASSWORD}"
security_token: "${SFDC_SECURITY_TOKEN}"

sfdc_object_name: Lead
sfdc_fields: [Id, Name, Email, LastModifiedDate]
sfdc_filters: "Email LIKE '%@example.com'"

tracking_field: LastModifiedDate
tracking_field_value_file: ./data/lead_watermark.txt
changed_data_filter: "LastModifiedDate > %{last_tracking_field_value}"

key_casing: snake_case
interval: 300
"""
