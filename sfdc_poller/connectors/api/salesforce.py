"""Salesforce REST connector.

Describes sObjects and runs SOQL queries through the REST (or Tooling)
API, following ``nextRecordsUrl`` until the result set is exhausted.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

import httpx

from ..base import SchemaDiscoveryError
from .base_api import BaseAPIConnector, SalesforceAPIError

logger = logging.getLogger(__name__)


class SalesforceConnector(BaseAPIConnector):
    """Connector for the Salesforce REST API.

    Supports:
    - Production, sandbox and My Domain logins
    - Standard and Tooling API endpoints
    - ``query`` and ``queryAll`` (include deleted/archived records)
    - Transparent pagination over large result sets
    """

    def __init__(
        self,
        connector_id: str,
        name: str,
        config: dict[str, Any],
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize Salesforce connector.

        Args:
            connector_id: Unique identifier
            name: Human-readable name
            config: Options from ``ExtractionConfig.client_options()``;
                ``include_deleted`` selects the queryAll resource
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(connector_id, name, config, transport=transport)

    @property
    def include_deleted(self) -> bool:
        return bool(self.config.get("include_deleted"))

    def describe(self, object_name: str) -> list[tuple[str, str]]:
        """Describe an sObject's fields.

        Args:
            object_name: sObject API name (e.g. ``Lead``)

        Returns:
            (field_name, field_type) pairs in the order Salesforce returns them

        Raises:
            SchemaDiscoveryError: If the describe call fails
        """
        try:
            response = self._get(f"{self.data_path}/sobjects/{object_name}/describe")
        except SalesforceAPIError as e:
            raise SchemaDiscoveryError(
                f"Describe {object_name} failed: {e}", self.connector_id
            ) from e

        fields = [
            (field["name"], field.get("type", "string"))
            for field in response.json().get("fields", [])
        ]
        self._log("debug", f"Described {object_name}: {len(fields)} fields")
        return fields

    def query(self, soql: str) -> Iterator[dict[str, Any]]:
        """Run a SOQL query and iterate over all result rows.

        Uses the ``queryAll`` resource when deleted records are included.

        Args:
            soql: SOQL query string

        Yields:
            Record mappings, including Salesforce's ``attributes`` metadata
        """
        resource = "queryAll" if self.include_deleted else "query"
        self._log("debug", f"Running {resource}: {soql}")

        response = self._get(f"{self.data_path}/{resource}", params={"q": soql})
        total_rows = 0

        while True:
            result = response.json()
            records = result.get("records", [])
            total_rows += len(records)
            yield from records

            next_records_url = result.get("nextRecordsUrl")
            if result.get("done", True) or not next_records_url:
                break

            logger.debug(f"Following nextRecordsUrl: {next_records_url}")
            response = self._get(next_records_url)

        self._log("info", f"{resource} returned {total_rows} rows")
