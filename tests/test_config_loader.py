"""Tests for configuration file loading."""

from __future__ import annotations

import json

import pytest
import yaml

from sfdc_poller.connectors.config_loader import (
    EXAMPLE_INCREMENTAL_CONFIG,
    ConfigLoader,
    ConfigValidationError,
)
from sfdc_poller.connectors.models import KeyCasing

ENVIRON = {
    "SFDC_CLIENT_ID": "env-client",
    "SFDC_CLIENT_SECRET": "env-secret",
    "SFDC_PASSWORD": "env-password",
    "SFDC_SECURITY_TOKEN": "env-token",
}


class TestLoadFile:
    """Tests for ConfigLoader.load_file."""

    def test_yaml(self, tmp_path, credentials):
        path = tmp_path / "lead.yaml"
        path.write_text(yaml.safe_dump({**credentials, "sfdc_object_name": "Lead"}))

        config = ConfigLoader(environ={}).load_file(path)

        assert config.sfdc_object_name == "Lead"
        assert config.password == "hunter2"

    def test_json(self, tmp_path, credentials):
        path = tmp_path / "lead.json"
        path.write_text(json.dumps({**credentials, "sfdc_soql_query": "SELECT Id FROM Lead"}))

        config = ConfigLoader(environ={}).load_file(path)

        assert config.sfdc_soql_query == "SELECT Id FROM Lead"

    def test_example_config(self, tmp_path):
        """The bundled example loads once its variables are set."""
        path = tmp_path / "example.yml"
        path.write_text(EXAMPLE_INCREMENTAL_CONFIG)

        config = ConfigLoader(environ=ENVIRON).load_file(path)

        assert config.client_id == "env-client"
        assert config.security_token == "env-token"
        assert config.is_incremental is True
        assert config.key_casing == KeyCasing.SNAKE_CASE
        assert config.interval == 300

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader().load_file(tmp_path / "absent.yaml")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "lead.toml"
        path.write_text("sfdc_object_name = 'Lead'")
        with pytest.raises(ValueError, match="Unsupported config format"):
            ConfigLoader().load_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("sfdc_object_name: [Lead\n")
        with pytest.raises(ConfigValidationError, match="Could not parse"):
            ConfigLoader().load_file(path)


class TestParse:
    """Tests for ConfigLoader.parse."""

    def test_nested_salesforce_key(self, credentials):
        data = {"salesforce": {**credentials, "sfdc_object_names": ["Account", "Contact"]}}
        config = ConfigLoader(environ={}).parse(data)
        assert config.object_names == ["Account", "Contact"]

    def test_env_expansion_inside_strings(self, credentials):
        data = {
            **credentials,
            "sfdc_object_name": "Lead",
            "tracking_field": "LastModifiedDate",
            "tracking_field_value_file": "${STATE_DIR}/lead.wm",
            "changed_data_filter": "LastModifiedDate > %{last_tracking_field_value}",
        }
        config = ConfigLoader(environ={"STATE_DIR": "/var/lib/sfdc"}).parse(data)
        assert config.tracking_field_value_file == "/var/lib/sfdc/lead.wm"

    def test_placeholder_not_expanded(self, credentials):
        """The watermark placeholder uses %{} and is left for the query builder."""
        data = {
            **credentials,
            "sfdc_object_name": "Lead",
            "tracking_field": "LastModifiedDate",
            "tracking_field_value_file": "/tmp/lead.wm",
            "changed_data_filter": "LastModifiedDate > %{last_tracking_field_value}",
        }
        config = ConfigLoader(environ={}).parse(data)
        assert config.changed_data_filter == "LastModifiedDate > %{last_tracking_field_value}"

    def test_missing_env_var(self, credentials):
        data = {**credentials, "password": "${SFDC_PASSWORD}", "sfdc_object_name": "Lead"}

        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigLoader(environ={}).parse(data, "lead.yaml")

        assert exc_info.value.errors == [
            {
                "file": "lead.yaml",
                "field": "password",
                "error": "Environment variable not set: SFDC_PASSWORD",
            }
        ]

    def test_not_a_mapping(self):
        with pytest.raises(ConfigValidationError, match="Invalid config format"):
            ConfigLoader().parse(["Lead"])

    def test_validation_errors_listed(self, credentials):
        data = {**credentials, "sfdc_object_name": "Lead", "sobject_tag_field": "sobject"}

        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigLoader(environ={}).parse(data, "lead.yaml")

        error = exc_info.value
        assert "Validation failed for lead.yaml" in str(error)
        assert "requires sfdc_object_names" in str(error)
        assert error.errors[0]["file"] == "lead.yaml"

    def test_secret_values_not_in_errors(self, credentials):
        data = {**credentials, "sfdc_object_name": "Lead", "timeout": -5}

        with pytest.raises(ConfigValidationError) as exc_info:
            ConfigLoader(environ={}).parse(data)

        assert "hunter2" not in str(exc_info.value)
