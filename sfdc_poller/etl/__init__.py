"""Extraction pipeline for Salesforce records.

Provides query construction, watermark persistence and the
extract/transform/load stages run by each extraction cycle.
"""

from .pipeline import CycleResult, ExtractionCycle, QueryPlan, create_cycle
from .query_builder import build_query, extract_query_fields, select_fields
from .stages.extract import ExtractStage
from .stages.load import EventSink, JSONLinesSink, LoadStage, QueueSink
from .stages.transform import TransformStage, project, to_snake_case
from .watermark import WatermarkStore, load_watermark, save_watermark

__all__ = [
    "CycleResult",
    "ExtractionCycle",
    "QueryPlan",
    "create_cycle",
    "build_query",
    "extract_query_fields",
    "select_fields",
    "ExtractStage",
    "TransformStage",
    "LoadStage",
    "EventSink",
    "QueueSink",
    "JSONLinesSink",
    "project",
    "to_snake_case",
    "WatermarkStore",
    "load_watermark",
    "save_watermark",
]
