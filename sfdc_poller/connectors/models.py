"""Pydantic models for the Salesforce connector.

Defines the extraction configuration, its validation invariants and
the result models returned by connection tests and schema discovery.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Placeholder substituted with the last watermark in changed_data_filter
TRACKING_PLACEHOLDER = "%{last_tracking_field_value}"

# Salesforce API names: letters, digits, underscores (custom suffix __c etc.)
SOBJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

API_VERSION_PATTERN = re.compile(r"^\d+\.\d$")


class KeyCasing(str, Enum):
    """How output event keys are derived from Salesforce field names."""

    VERBATIM = "verbatim"
    SNAKE_CASE = "snake_case"


class SourceShape(str, Enum):
    """Which of the mutually exclusive source options is configured."""

    OBJECT = "object"
    OBJECTS = "objects"
    RAW_QUERY = "raw_query"


class ExtractionConfig(BaseModel):
    """Validated configuration for one Salesforce extraction connector.

    Exactly one of ``sfdc_object_name``, ``sfdc_object_names`` and
    ``sfdc_soql_query`` selects the source. Incremental extraction needs
    ``tracking_field``, ``tracking_field_value_file`` and
    ``changed_data_filter`` together.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Credentials (never dumped or logged)
    client_id: str = Field(..., min_length=1, repr=False)
    client_secret: str = Field(..., exclude=True, repr=False)
    username: str = Field(..., min_length=1)
    password: str = Field(..., exclude=True, repr=False)
    security_token: str = Field(default="", exclude=True, repr=False)

    # Endpoint selection
    use_test_sandbox: bool = False
    sfdc_instance_url: str | None = None
    use_tooling_api: bool = False
    api_version: str | None = None
    timeout: float | None = Field(default=None, gt=0)

    # Source
    sfdc_object_name: str | None = None
    sfdc_object_names: list[str] | None = None
    sfdc_soql_query: str | None = None
    include_deleted: bool = False

    # Query shaping
    sfdc_fields: list[str] = Field(default_factory=list)
    sfdc_filters: str = ""

    # Incremental extraction
    tracking_field: str | None = None
    tracking_field_value_file: str | None = None
    changed_data_filter: str | None = None

    # Output
    key_casing: KeyCasing = KeyCasing.VERBATIM
    sobject_tag_field: str | None = None

    # Scheduling
    interval: float | None = None
    stop_on_error: bool = False

    @field_validator("sfdc_object_name", "tracking_field")
    @classmethod
    def validate_api_name(cls, v: str | None) -> str | None:
        """Validate Salesforce API names to keep them out of SOQL injection."""
        if v is None:
            return v
        if not SOBJECT_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid Salesforce API name: '{v}'. "
                "Only letters, digits and underscores allowed."
            )
        return v

    @field_validator("sfdc_object_names")
    @classmethod
    def validate_api_names(cls, v: list[str] | None) -> list[str] | None:
        """Validate each object name in a multi-object configuration."""
        if v is None:
            return v
        if not v:
            raise ValueError("sfdc_object_names must not be empty")
        for name in v:
            if not SOBJECT_NAME_PATTERN.match(name):
                raise ValueError(f"Invalid Salesforce API name: '{name}'")
        return v

    @field_validator("api_version")
    @classmethod
    def validate_api_version(cls, v: str | None) -> str | None:
        """API versions look like ``59.0``."""
        if v is None:
            return v
        if not API_VERSION_PATTERN.match(v):
            raise ValueError(f"Invalid api_version: '{v}'. Expected e.g. '59.0'")
        return v

    @field_validator("changed_data_filter")
    @classmethod
    def validate_changed_data_filter(cls, v: str | None) -> str | None:
        """The template must carry exactly one watermark placeholder."""
        if v is None:
            return v
        if v.count(TRACKING_PLACEHOLDER) != 1:
            raise ValueError(
                f"changed_data_filter must contain {TRACKING_PLACEHOLDER} exactly once"
            )
        return v

    @model_validator(mode="after")
    def validate_combinations(self) -> "ExtractionConfig":
        """Reject mutually exclusive or incomplete option combinations."""
        if self.sfdc_instance_url and self.use_test_sandbox:
            raise ValueError(
                'Both "use_test_sandbox" and "sfdc_instance_url" can\'t be set '
                'simultaneously. Please specify either "use_test_sandbox" or '
                '"sfdc_instance_url"'
            )

        sources = [
            self.sfdc_object_name,
            self.sfdc_object_names,
            self.sfdc_soql_query,
        ]
        if sum(source is not None for source in sources) != 1:
            raise ValueError(
                "Exactly one of sfdc_object_name, sfdc_object_names or "
                "sfdc_soql_query must be set"
            )

        incremental = [
            self.tracking_field,
            self.tracking_field_value_file,
            self.changed_data_filter,
        ]
        present = sum(option is not None for option in incremental)
        if present not in (0, 3):
            raise ValueError(
                "tracking_field, tracking_field_value_file and changed_data_filter "
                "must be set together"
            )

        if present and self.source_shape != SourceShape.OBJECT:
            raise ValueError(
                "Incremental extraction is only supported with sfdc_object_name"
            )

        if self.sfdc_soql_query is not None and (self.sfdc_fields or self.sfdc_filters):
            raise ValueError(
                "sfdc_fields and sfdc_filters cannot be combined with sfdc_soql_query"
            )

        if self.sobject_tag_field and self.source_shape != SourceShape.OBJECTS:
            raise ValueError("sobject_tag_field requires sfdc_object_names")

        return self

    @property
    def source_shape(self) -> SourceShape:
        """Which source option this configuration uses."""
        if self.sfdc_soql_query is not None:
            return SourceShape.RAW_QUERY
        if self.sfdc_object_names is not None:
            return SourceShape.OBJECTS
        return SourceShape.OBJECT

    @property
    def object_names(self) -> list[str]:
        """Objects queried per cycle, in order (empty for a raw query)."""
        if self.sfdc_object_names is not None:
            return list(self.sfdc_object_names)
        if self.sfdc_object_name is not None:
            return [self.sfdc_object_name]
        return []

    @property
    def is_incremental(self) -> bool:
        return self.tracking_field is not None

    @property
    def is_one_shot(self) -> bool:
        """No interval, or a negative one, means run a single cycle."""
        return self.interval is None or self.interval < 0

    def client_options(self) -> dict[str, Any]:
        """Options for the REST client, including secrets."""
        options: dict[str, Any] = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "username": self.username,
            "password": self.password,
            "security_token": self.security_token,
            "use_tooling_api": self.use_tooling_api,
            "include_deleted": self.include_deleted,
        }
        if self.sfdc_instance_url:
            options["host"] = self.sfdc_instance_url
        elif self.use_test_sandbox:
            options["sandbox"] = True
        if self.api_version:
            options["api_version"] = self.api_version
        if self.timeout:
            options["timeout"] = self.timeout
        return options


class ConnectionTestResult(BaseModel):
    """Result of testing a connector connection."""

    success: bool
    message: str
    latency_ms: float | None = None
    details: dict[str, Any] = {}


class SchemaDiscoveryResult(BaseModel):
    """Result of describing Salesforce objects."""

    objects: list[str] = []
    columns: dict[str, list[dict[str, str]]] = {}  # object -> [{name, type}]
