"""Abstract query connector.

Defines the capability interface the extraction cycle consumes: login,
object description and SOQL queries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from .models import ConnectionTestResult, SchemaDiscoveryResult

logger = logging.getLogger(__name__)


class BaseConnector(ABC):
    """Abstract base class for query-capable data source connectors.

    Connectors handle:
    - Session management (connect, disconnect, test)
    - Schema discovery (describe objects into field name/type pairs)
    - Data extraction (iterate rows returned by a query)

    Records are plain ``dict[str, Any]`` mappings. Relationship fields
    arrive as nested mappings.
    """

    def __init__(
        self,
        connector_id: str,
        name: str,
        config: dict[str, Any],
    ) -> None:
        """Initialize the connector.

        Args:
            connector_id: Identifier used in logs and errors
            name: Human-readable name
            config: Client options (credentials, endpoint selection)
        """
        self.connector_id = connector_id
        self.name = name
        self.config = config
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether a session is open."""
        return self._connected

    @abstractmethod
    def connect(self) -> None:
        """Log in and open a session.

        Raises:
            ConnectionError: If connection fails
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the session; safe to call when not connected."""
        pass

    @abstractmethod
    def test_connection(self) -> "ConnectionTestResult":
        """Log in, check access, then close the session.

        Returns:
            ConnectionTestResult with success status and details
        """
        pass

    @abstractmethod
    def describe(self, object_name: str) -> list[tuple[str, str]]:
        """Describe an object's fields.

        Args:
            object_name: Object (table) name

        Returns:
            List of (field_name, field_type) pairs in source order
        """
        pass

    @abstractmethod
    def query(self, soql: str) -> Iterator[dict[str, Any]]:
        """Run a query and iterate over the returned rows.

        Args:
            soql: Query string

        Yields:
            One record mapping per row
        """
        pass

    def discover_schema(self, object_names: list[str]) -> "SchemaDiscoveryResult":
        """Describe several objects at once.

        Args:
            object_names: Objects to describe

        Returns:
            SchemaDiscoveryResult keyed by object name
        """
        from .models import SchemaDiscoveryResult

        columns: dict[str, list[dict[str, str]]] = {}
        for object_name in object_names:
            columns[object_name] = [
                {"name": name, "type": field_type}
                for name, field_type in self.describe(object_name)
            ]
        return SchemaDiscoveryResult(objects=list(object_names), columns=columns)

    def __enter__(self) -> "BaseConnector":
        """Open a session for the with-block."""
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Close the session on leaving the with-block."""
        self.disconnect()

    def _log(self, level: str, message: str, **context: Any) -> None:
        """Log a message with connector context.

        Args:
            level: Log level (debug, info, warning, error)
            message: Log message
            **context: Additional context to include
        """
        log_fn = getattr(logger, level.lower(), logger.info)
        log_fn(
            f"[{self.name}] {message}",
            extra={"connector_id": self.connector_id, **context},
        )


class ConnectorError(Exception):
    """Base exception for connector failures."""

    def __init__(self, message: str, connector_id: str | None = None) -> None:
        super().__init__(message)
        self.connector_id = connector_id


class ConnectionError(ConnectorError):
    """Login or session setup failed."""

    pass


class ExtractionError(ConnectorError):
    """A query failed while rows were being read."""

    pass


class SchemaDiscoveryError(ConnectorError):
    """An object could not be described."""

    pass
