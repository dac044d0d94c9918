"""Extraction cycle orchestrator.

Coordinates one build-query / extract / project / emit pass across the
configured objects and advances the watermark when the pass completes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..connectors.base import BaseConnector
from ..connectors.models import ExtractionConfig, SourceShape
from .query_builder import build_query, extract_query_fields, select_fields
from .stages.extract import ExtractStage
from .stages.load import EventSink, LoadStage
from .stages.transform import TransformStage
from .watermark import WatermarkStore

logger = logging.getLogger(__name__)


@dataclass
class QueryPlan:
    """One query to run within a cycle."""

    object_name: str | None
    soql: str
    fields: list[str]
    field_types: dict[str, str]


@dataclass
class CycleResult:
    """Result from one extraction cycle."""

    success: bool
    status: str  # success, partial, failed
    extracted_count: int = 0
    emitted_count: int = 0
    failed_count: int = 0
    queries: list[str] = field(default_factory=list)
    previous_watermark: str | None = None
    final_watermark: str | None = None
    watermark_saved: bool = False
    error_message: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    per_object: dict[str, int] = field(default_factory=dict)


@dataclass
class _PlanOutcome:
    emitted: int = 0
    watermark_value: str | None = None


class ExtractionCycle:
    """Runs extraction cycles for one configured connector.

    The connector is connected and every object is described once in
    ``prepare``; later cycles reuse both.
    """

    def __init__(
        self,
        connector: BaseConnector,
        config: ExtractionConfig,
        sink: EventSink,
        watermark_store: WatermarkStore | None = None,
        batch_size: int = 200,
    ) -> None:
        """Initialize the cycle.

        Args:
            connector: Connector providing describe and query
            config: Validated extraction configuration
            sink: Destination for normalized events
            watermark_store: Watermark persistence (defaults to the
                configured tracking_field_value_file)
            batch_size: Rows per extract/transform/load batch
        """
        self.connector = connector
        self.config = config
        self.batch_size = batch_size
        self.watermark_store = watermark_store or WatermarkStore(
            config.tracking_field_value_file
        )
        self._load_stage = LoadStage(sink)
        self._field_types: dict[str, dict[str, str]] | None = None

    @property
    def sink(self) -> EventSink:
        return self._load_stage.sink

    @property
    def is_prepared(self) -> bool:
        return self._field_types is not None

    def prepare(self) -> None:
        """Connect and describe every configured object.

        Raises:
            ConnectorError: If login or describe fails
        """
        if not self.connector.is_connected:
            self.connector.connect()

        field_types: dict[str, dict[str, str]] = {}
        for object_name in self.config.object_names:
            field_types[object_name] = dict(self.connector.describe(object_name))
            logger.info(
                f"Loaded {len(field_types[object_name])} field types for {object_name}"
            )
        self._field_types = field_types

    def field_types(self, object_name: str) -> dict[str, str]:
        """Field type map for an object described in ``prepare``."""
        if self._field_types is None:
            raise RuntimeError("Cycle not prepared. Call prepare() first.")
        return self._field_types.get(object_name, {})

    def current_watermark(self) -> str | None:
        """Load the stored watermark.

        Trailing CR/LF characters (e.g. from a hand-edited file) are
        removed; an empty value counts as no watermark.
        """
        raw = self.watermark_store.load()
        if raw is None:
            return None
        value = raw.rstrip("\r\n")
        return value or None

    def plan(self, watermark: str | None = None) -> list[QueryPlan]:
        """Build the queries for one cycle, in execution order."""
        if self.config.source_shape == SourceShape.RAW_QUERY:
            soql = build_query(self.config, {})
            return [QueryPlan(None, soql, extract_query_fields(soql), {})]

        plans = []
        for object_name in self.config.object_names:
            field_types = self.field_types(object_name)
            plans.append(
                QueryPlan(
                    object_name=object_name,
                    soql=build_query(self.config, field_types, watermark, object_name),
                    fields=select_fields(self.config, field_types),
                    field_types=field_types,
                )
            )
        return plans

    def run(self) -> CycleResult:
        """Run one extraction cycle.

        Any failure aborts the cycle without advancing the watermark;
        events already emitted stay emitted.

        Returns:
            CycleResult with execution summary
        """
        result = CycleResult(
            success=False,
            status="running",
            started_at=datetime.now(timezone.utc).isoformat(),
        )

        try:
            if not self.is_prepared:
                self.prepare()

            watermark = self.current_watermark()
            result.previous_watermark = watermark
            if watermark is not None:
                logger.info(f"Using watermark: {watermark}")

            final_watermark: str | None = None

            for plan in self.plan(watermark):
                result.queries.append(plan.soql)
                extracted = self._run_plan(plan, result)
                if extracted.watermark_value is not None:
                    final_watermark = extracted.watermark_value

        except Exception as e:
            logger.exception(f"Extraction cycle failed: {e}")
            result.status = "failed"
            result.error_message = str(e)
            result.completed_at = datetime.now(timezone.utc).isoformat()
            return result

        # Zero rows, or no non-null tracking values, leaves the watermark alone
        result.final_watermark = final_watermark or result.previous_watermark
        if final_watermark is not None and self.watermark_store.enabled:
            result.watermark_saved = self.watermark_store.save(final_watermark)
            if not result.watermark_saved:
                logger.error("Watermark not saved; next cycle will re-deliver this window")

        result.success = True
        partial = result.failed_count > 0 or (
            final_watermark is not None
            and self.watermark_store.enabled
            and not result.watermark_saved
        )
        result.status = "partial" if partial else "success"
        result.completed_at = datetime.now(timezone.utc).isoformat()

        logger.info(
            f"Extraction cycle completed: extracted={result.extracted_count}, "
            f"emitted={result.emitted_count}, failed={result.failed_count}"
        )
        return result

    def _run_plan(self, plan: QueryPlan, result: CycleResult) -> _PlanOutcome:
        """Run one query through extract, transform and load."""
        extract_stage = ExtractStage(
            self.connector,
            batch_size=self.batch_size,
            tracking_field=self.config.tracking_field,
        )
        transform_stage = TransformStage(
            fields=plan.fields,
            field_types=plan.field_types,
            key_casing=self.config.key_casing,
            include_nulls=self.config.source_shape == SourceShape.RAW_QUERY,
            tag_field=self.config.sobject_tag_field,
            tag_value=plan.object_name,
        )

        outcome = _PlanOutcome()
        for extraction in extract_stage.extract(plan.soql):
            result.extracted_count += extraction.total_in_batch

            transformed = transform_stage.transform(extraction.records)
            result.failed_count += transformed.failed_count

            loaded = self._load_stage.load(transformed.records)
            result.emitted_count += loaded.loaded_count
            result.failed_count += loaded.failed_count
            outcome.emitted += loaded.loaded_count

            if extraction.watermark_value is not None:
                outcome.watermark_value = extraction.watermark_value

        result.per_object[plan.object_name or "query"] = outcome.emitted
        return outcome

    def close(self) -> None:
        """Disconnect the connector and close the sink."""
        try:
            self.connector.disconnect()
        finally:
            self.sink.close()


def create_cycle(
    connector: BaseConnector,
    config: ExtractionConfig,
    sink: EventSink,
    batch_size: int = 200,
) -> ExtractionCycle:
    """Create and prepare an extraction cycle.

    Args:
        connector: Connector providing describe and query
        config: Validated extraction configuration
        sink: Destination for normalized events
        batch_size: Rows per batch

    Returns:
        Prepared ExtractionCycle
    """
    cycle = ExtractionCycle(connector, config, sink, batch_size=batch_size)
    cycle.prepare()
    return cycle

