"""Extract stage for ETL pipeline.

Handles data extraction from the Salesforce connector including:
- Batching rows streamed from a paginated query
- Tracking-field capture for watermark advancement
- Progress logging
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator

from ...connectors.base import BaseConnector
from .transform import MISSING, resolve_field_path

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result from an extraction operation."""

    records: list[dict[str, Any]]
    batch_number: int
    total_in_batch: int
    watermark_value: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ExtractStage:
    """Extract stage for pulling rows from the connector.

    Rows arrive in query order. When a tracking field is configured the
    query orders ascending by it, so the last non-null value seen in a
    batch is the highest value so far.
    """

    def __init__(
        self,
        connector: BaseConnector,
        batch_size: int = 200,
        tracking_field: str | None = None,
    ) -> None:
        """Initialize the extract stage.

        Args:
            connector: Source connector instance
            batch_size: Records per batch
            tracking_field: Field whose value drives the watermark
        """
        self.connector = connector
        self.batch_size = batch_size
        self.tracking_field = tracking_field

    def extract(self, soql: str) -> Iterator[ExtractionResult]:
        """Run a query and yield its rows in batches.

        Args:
            soql: Query to run

        Yields:
            ExtractionResult for each batch
        """
        if not self.connector.is_connected:
            self.connector.connect()

        batch_number = 0
        total_extracted = 0
        batch: list[dict[str, Any]] = []

        try:
            for row in self.connector.query(soql):
                batch.append(row)
                if len(batch) >= self.batch_size:
                    batch_number += 1
                    total_extracted += len(batch)
                    yield self._result(batch, batch_number, total_extracted)
                    batch = []

            # Yield remaining records
            if batch:
                batch_number += 1
                total_extracted += len(batch)
                yield self._result(batch, batch_number, total_extracted)

        finally:
            logger.info(
                f"Extraction complete: {batch_number} batches, {total_extracted} records"
            )

    def _result(
        self,
        batch: list[dict[str, Any]],
        batch_number: int,
        total_extracted: int,
    ) -> ExtractionResult:
        logger.debug(
            f"Extracted batch {batch_number}: {len(batch)} records, "
            f"total: {total_extracted}"
        )
        return ExtractionResult(
            records=batch,
            batch_number=batch_number,
            total_in_batch=len(batch),
            watermark_value=self._last_tracking_value(batch),
            metadata={"total_extracted": total_extracted},
        )

    def _last_tracking_value(self, batch: list[dict[str, Any]]) -> str | None:
        """Get the last non-null tracking value in a batch."""
        if not self.tracking_field:
            return None
        for record in reversed(batch):
            value = resolve_field_path(record, self.tracking_field)
            if value is not MISSING and value is not None:
                return str(value)
        return None
