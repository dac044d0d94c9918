"""Transform stage for ETL pipeline.

Projects raw Salesforce records into normalized events:
- Field path resolution (including relationship traversal)
- Function/alias stripping for field expressions
- Date and datetime coercion from describe metadata
- Optional snake_case output keys
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ...connectors.models import KeyCasing
from ...utils.date_parser import parse_flexible_datetime

logger = logging.getLogger(__name__)

# Transport metadata Salesforce attaches to every record and relationship
METADATA_KEY = "attributes"

DATE_TYPES = frozenset({"date", "datetime"})

MISSING = object()

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
_FUNCTION_CALL = re.compile(r"^\w+\((.*)\)$")


def to_snake_case(name: str) -> str:
    """Convert a CamelCase field name to snake_case.

    Examples:
        >>> to_snake_case("CreatedBy")
        'created_by'
        >>> to_snake_case("USAField")
        'usa_field'
        >>> to_snake_case("ABCD_ABCDE_Threshold__c")
        'abcd_abcde_threshold__c'
    """
    word = name.replace("::", "/")
    word = _ACRONYM_BOUNDARY.sub(r"\1_\2", word)
    word = _WORD_BOUNDARY.sub(r"\1_\2", word)
    word = word.replace("/", "_").replace(".", "_").replace("-", "_")
    return word.lower()


def bare_field_name(expression: str) -> str:
    """Strip function syntax and aliases from a SELECT field expression.

    ``COUNT(Id) total`` -> ``total``, ``toLabel(Status)`` -> ``Status``,
    ``Owner.Name`` -> ``Owner.Name``.
    """
    name = expression.strip().split()[-1] if expression.strip() else expression
    match = _FUNCTION_CALL.match(name)
    while match:
        name = match.group(1).strip()
        match = _FUNCTION_CALL.match(name)
    return name


def resolve_field_path(record: Mapping[str, Any], path: str) -> Any:
    """Look up a dotted field path in a record.

    Returns ``MISSING`` when an intermediate or the leaf is absent; a
    null relationship (``Owner: None``) resolves to None.
    """
    value: Any = record
    for part in path.split("."):
        if value is None:
            return None
        if not isinstance(value, Mapping) or part not in value:
            return MISSING
        value = value[part]
    return value


def strip_metadata(value: Any) -> Any:
    """Remove Salesforce ``attributes`` wrappers from nested values."""
    if isinstance(value, Mapping):
        return {
            key: strip_metadata(item)
            for key, item in value.items()
            if key != METADATA_KEY
        }
    if isinstance(value, list):
        return [strip_metadata(item) for item in value]
    return value


def coerce_value(value: Any, field_type: str | None) -> Any:
    """Convert a raw value according to its describe type.

    Date and datetime values that cannot be parsed are returned unchanged.
    """
    if field_type not in DATE_TYPES or not isinstance(value, str):
        return value
    parsed = parse_flexible_datetime(value)
    if parsed is None:
        logger.warning(f"Unparseable {field_type} value {value!r}, emitting as is")
        return value
    return parsed


def project(
    record: Mapping[str, Any],
    fields: list[str],
    field_types: Mapping[str, str],
    key_casing: KeyCasing = KeyCasing.VERBATIM,
    include_nulls: bool = False,
) -> dict[str, Any]:
    """Project a Salesforce record into a normalized event.

    Args:
        record: Raw record mapping
        fields: Field expressions, in output order
        field_types: Field name to describe type (may be empty)
        key_casing: Output key casing
        include_nulls: Emit absent/null fields as None instead of omitting
            them (raw-query variant)

    Returns:
        Event mapping of output key to coerced value
    """
    event: dict[str, Any] = {}

    for expression in fields:
        name = bare_field_name(expression)
        key = to_snake_case(name) if key_casing == KeyCasing.SNAKE_CASE else name

        value = resolve_field_path(record, name)
        if value is MISSING:
            value = None

        value = coerce_value(value, field_types.get(name))

        if value is None:
            if include_nulls:
                event[key] = None
            continue

        event[key] = strip_metadata(value)

    return event


@dataclass
class TransformationResult:
    """Result from a transformation operation."""

    records: list[dict[str, Any]]
    transformed_count: int
    failed_count: int
    errors: list[dict[str, Any]] = field(default_factory=list)


class TransformStage:
    """Transform stage projecting rows for one object.

    Holds the field list, type map and output options so each row can be
    projected with a single call.
    """

    def __init__(
        self,
        fields: list[str],
        field_types: Mapping[str, str] | None = None,
        key_casing: KeyCasing = KeyCasing.VERBATIM,
        include_nulls: bool = False,
        tag_field: str | None = None,
        tag_value: str | None = None,
    ) -> None:
        """Initialize the transform stage.

        Args:
            fields: Field expressions to project, in order
            field_types: Field name to describe type
            key_casing: Output key casing
            include_nulls: Emit absent fields as None
            tag_field: Event key stamped with ``tag_value`` (multi-object)
            tag_value: Source object name for ``tag_field``
        """
        self.fields = fields
        self.field_types = field_types or {}
        self.key_casing = key_casing
        self.include_nulls = include_nulls
        self.tag_field = tag_field
        self.tag_value = tag_value

    def transform_record(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Project a single record."""
        event = project(
            record,
            self.fields,
            self.field_types,
            key_casing=self.key_casing,
            include_nulls=self.include_nulls,
        )
        if self.tag_field:
            event[self.tag_field] = self.tag_value
        return event

    def transform(
        self,
        records: list[Mapping[str, Any]],
        on_error: Callable[[Mapping[str, Any], Exception], None] | None = None,
    ) -> TransformationResult:
        """Transform a batch of records.

        A record that fails to project is skipped and reported; the rest
        of the batch continues.

        Args:
            records: Source records to transform
            on_error: Optional callback for transformation errors

        Returns:
            TransformationResult with transformed records
        """
        transformed = []
        failed = 0
        errors = []

        for idx, record in enumerate(records):
            try:
                transformed.append(self.transform_record(record))
            except Exception as e:
                failed += 1
                errors.append({"record_index": idx, "error": str(e)})

                if on_error:
                    on_error(record, e)

                logger.warning(f"Transform error at index {idx}: {e}")

        return TransformationResult(
            records=transformed,
            transformed_count=len(transformed),
            failed_count=failed,
            errors=errors,
        )
