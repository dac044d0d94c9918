"""SOQL construction for extraction cycles.

Builds the SELECT statement from the configured object, fields, static
filter and incremental filter template, and recovers the field list
from a raw query string.
"""

from __future__ import annotations

import logging
import re

from ..connectors.models import TRACKING_PLACEHOLDER, ExtractionConfig

logger = logging.getLogger(__name__)

# Default ordering for non-incremental queries when the field is selected
LAST_MODIFIED_FIELD = "LastModifiedDate"

_SELECT_FROM_PATTERN = re.compile(r"SELECT\s+(.+?)\s+FROM\s", re.IGNORECASE | re.DOTALL)


def select_fields(config: ExtractionConfig, field_types: dict[str, str]) -> list[str]:
    """Resolve the ordered field list a query selects.

    Explicit ``sfdc_fields`` are used verbatim. Otherwise every described
    field is selected, in describe order (not guaranteed stable between
    runs). The tracking field is appended when missing.

    Args:
        config: Extraction configuration
        field_types: Field name to type map from describe

    Returns:
        Field paths in SELECT order
    """
    fields = list(config.sfdc_fields) if config.sfdc_fields else list(field_types)
    if config.tracking_field and config.tracking_field not in fields:
        fields.append(config.tracking_field)
    return fields


def build_query(
    config: ExtractionConfig,
    field_types: dict[str, str],
    watermark: str | None = None,
    object_name: str | None = None,
) -> str:
    """Build the SOQL query for one object.

    Args:
        config: Extraction configuration
        field_types: Field name to type map from describe
        watermark: Last tracking-field value, if any
        object_name: Object to query (defaults to ``sfdc_object_name``)

    Returns:
        SOQL query string

    Raises:
        ValueError: If no object or no fields can be resolved
    """
    if config.sfdc_soql_query is not None:
        return config.sfdc_soql_query

    target = object_name or config.sfdc_object_name
    if not target:
        raise ValueError("An object name is required to build a query")

    fields = select_fields(config, field_types)
    if not fields:
        raise ValueError(f"No fields to select for {target}")

    query = f"SELECT {','.join(fields)} FROM {target}"

    predicates: list[str] = []
    if config.sfdc_filters:
        predicates.append(config.sfdc_filters)
    if config.changed_data_filter and watermark is not None:
        predicates.append(config.changed_data_filter.replace(TRACKING_PLACEHOLDER, watermark))
    if predicates:
        query += " WHERE " + " AND ".join(predicates)

    if config.tracking_field:
        query += f" ORDER BY {config.tracking_field} ASC"
    elif LAST_MODIFIED_FIELD in fields:
        query += f" ORDER BY {LAST_MODIFIED_FIELD} DESC"

    logger.debug(f"Built query: {query}")
    return query


def extract_query_fields(soql: str) -> list[str]:
    """Recover the selected field list from a raw SOQL string.

    Splits the text between ``SELECT`` and ``FROM`` on commas. This is not
    a SOQL parser: subqueries and function calls containing commas are
    not supported.

    Args:
        soql: Raw query string

    Returns:
        Field expressions with surrounding whitespace removed
    """
    match = _SELECT_FROM_PATTERN.search(soql)
    if not match:
        raise ValueError(f"Could not find SELECT ... FROM in query: {soql[:100]}")

    fields = [item.strip() for item in match.group(1).split(",")]
    fields = [field for field in fields if field]
    logger.debug(f"Extracted fields: {fields}")
    return fields
