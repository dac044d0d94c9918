"""Load stage for ETL pipeline.

Hands normalized events to an append-only sink:
- In-memory queue for embedding and tests
- JSON Lines output to a stream or file
"""

from __future__ import annotations

import json
import logging
import queue
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import IO, Any

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Result from a load operation."""

    loaded_count: int
    failed_count: int
    errors: list[dict[str, Any]] = field(default_factory=list)


class EventSink(ABC):
    """Append-only, order-preserving destination for events."""

    @abstractmethod
    def put(self, event: dict[str, Any]) -> None:
        """Accept one event. Ownership passes to the sink."""
        pass

    def close(self) -> None:
        """Release any resources held by the sink."""
        pass


class QueueSink(EventSink):
    """Sink backed by a ``queue.Queue``."""

    def __init__(self, events: queue.Queue | None = None) -> None:
        self.events: queue.Queue = events if events is not None else queue.Queue()

    def put(self, event: dict[str, Any]) -> None:
        self.events.put(event)

    def drain(self) -> list[dict[str, Any]]:
        """Remove and return every queued event, in order."""
        drained = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                return drained


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JSONLinesSink(EventSink):
    """Sink writing one JSON object per line.

    Datetimes are serialized in ISO 8601.
    """

    def __init__(self, stream: IO[str] | None = None, path: str | Path | None = None) -> None:
        """Initialize the sink.

        Args:
            stream: Text stream to write to (e.g. ``sys.stdout``)
            path: File to append to; opened lazily, closed by ``close``
        """
        if (stream is None) == (path is None):
            raise ValueError("Exactly one of stream or path is required")
        self._stream = stream
        self._path = Path(path) if path else None
        self._owns_stream = False

    def _get_stream(self) -> IO[str]:
        if self._stream is None:
            assert self._path is not None
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._stream = open(self._path, "a", encoding="utf-8")
            self._owns_stream = True
        return self._stream

    def put(self, event: dict[str, Any]) -> None:
        stream = self._get_stream()
        stream.write(json.dumps(event, default=_json_default) + "\n")
        stream.flush()

    def close(self) -> None:
        if self._owns_stream and self._stream is not None:
            self._stream.close()
            self._stream = None
            self._owns_stream = False


class LoadStage:
    """Load stage writing transformed events to a sink."""

    def __init__(self, sink: EventSink) -> None:
        """Initialize the load stage.

        Args:
            sink: Destination for events
        """
        self.sink = sink

    def load(self, records: list[dict[str, Any]]) -> LoadResult:
        """Write a batch of events in order.

        Args:
            records: Events to write

        Returns:
            LoadResult with counts
        """
        loaded = 0
        failed = 0
        errors = []

        for idx, record in enumerate(records):
            try:
                self.sink.put(record)
                loaded += 1
            except (TypeError, ValueError) as e:
                # Unserializable event; the sink itself is still usable
                failed += 1
                errors.append({"record_index": idx, "error": str(e)})
                logger.warning(f"Load error at index {idx}: {e}")

        return LoadResult(loaded_count=loaded, failed_count=failed, errors=errors)
