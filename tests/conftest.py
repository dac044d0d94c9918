"""Pytest configuration and fixtures."""

from __future__ import annotations

import re
from typing import Any, Callable, Iterator

import pytest

from sfdc_poller.connectors.base import BaseConnector, ExtractionError
from sfdc_poller.connectors.models import ConnectionTestResult, ExtractionConfig

CREDENTIALS: dict[str, Any] = {
    "client_id": "consumer-key",
    "client_secret": "consumer-secret",
    "username": "integration@example.com",
    "password": "hunter2",
    "security_token": "tok3n",
}

LEAD_FIELD_TYPES: list[tuple[str, str]] = [
    ("Id", "id"),
    ("IsDeleted", "boolean"),
    ("LastName", "string"),
    ("FirstName", "string"),
    ("Salutation", "picklist"),
    ("OwnerId", "reference"),
    ("LastModifiedDate", "datetime"),
]

_FROM_PATTERN = re.compile(r"\sFROM\s+(\w+)", re.IGNORECASE)


class FakeConnector(BaseConnector):
    """In-memory connector serving rows per object name.

    ``rows`` maps object name to the rows every query against it returns;
    ``fail_after`` makes a query raise after yielding that many rows.
    """

    def __init__(
        self,
        rows: dict[str, list[dict[str, Any]]] | None = None,
        field_types: dict[str, list[tuple[str, str]]] | None = None,
        fail_after: int | None = None,
    ) -> None:
        super().__init__("fake", "Fake Salesforce", {})
        self.rows = rows or {}
        self.field_types = field_types or {"Lead": LEAD_FIELD_TYPES}
        self.fail_after = fail_after
        self.queries: list[str] = []
        self.describe_calls: list[str] = []
        self.connect_calls = 0

    def connect(self) -> None:
        self.connect_calls += 1
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def test_connection(self) -> ConnectionTestResult:
        return ConnectionTestResult(success=True, message="ok")

    def describe(self, object_name: str) -> list[tuple[str, str]]:
        self.describe_calls.append(object_name)
        return list(self.field_types.get(object_name, []))

    def query(self, soql: str) -> Iterator[dict[str, Any]]:
        self.queries.append(soql)
        match = _FROM_PATTERN.search(soql)
        object_name = match.group(1) if match else ""
        for idx, row in enumerate(self.rows.get(object_name, [])):
            if self.fail_after is not None and idx >= self.fail_after:
                raise ExtractionError("connection reset mid-query", self.connector_id)
            yield row


def lead(record_id: str, modified: str | None, **extra: Any) -> dict[str, Any]:
    """Build a Lead row shaped like the REST API returns it."""
    row: dict[str, Any] = {
        "attributes": {
            "type": "Lead",
            "url": f"/services/data/v59.0/sobjects/Lead/{record_id}",
        },
        "Id": record_id,
        "LastName": f"Last-{record_id}",
        "FirstName": None,
        "LastModifiedDate": modified,
    }
    row.update(extra)
    return row


@pytest.fixture
def credentials() -> dict[str, Any]:
    """Raw credential options as they appear in a config file."""
    return dict(CREDENTIALS)


@pytest.fixture
def make_config() -> Callable[..., ExtractionConfig]:
    """Factory building an ExtractionConfig with test credentials."""

    def factory(**overrides: Any) -> ExtractionConfig:
        return ExtractionConfig(**{**CREDENTIALS, **overrides})

    return factory


@pytest.fixture
def lead_rows() -> list[dict[str, Any]]:
    """Three Lead rows in ascending LastModifiedDate order."""
    return [
        lead("00Q1", "2024-01-01T10:00:00.000+0000"),
        lead("00Q2", "2024-01-02T10:00:00.000+0000"),
        lead("00Q3", "2024-01-03T10:00:00.000+0000"),
    ]


@pytest.fixture
def make_connector() -> type[FakeConnector]:
    """The fake connector class, for tests that need custom rows."""
    return FakeConnector


@pytest.fixture
def make_lead() -> Callable[..., dict[str, Any]]:
    """Factory building Lead rows."""
    return lead


@pytest.fixture
def fake_connector(lead_rows: list[dict[str, Any]]) -> FakeConnector:
    """Fake connector serving the sample Lead rows."""
    return FakeConnector(rows={"Lead": lead_rows})
