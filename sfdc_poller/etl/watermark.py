"""Watermark persistence for incremental extraction.

The watermark is the tracking-field value of the last record seen,
stored as the raw string in a plain-text file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def load_watermark(path: str | Path | None) -> str | None:
    """Read the watermark file.

    Args:
        path: Watermark file path, or None when not configured

    Returns:
        The file's full contents verbatim, or None if the path is unset or
        the file does not exist
    """
    if not path:
        return None

    file_path = Path(path)
    if not file_path.exists():
        return None

    with open(file_path, encoding="utf-8", newline="") as f:
        return f.read()


def save_watermark(path: str | Path, value: str) -> bool:
    """Overwrite the watermark file with a new value.

    Writes a temporary file in the same directory and renames it over the
    target, so a crash leaves either the old or the new value.

    Args:
        path: Watermark file path
        value: Tracking-field value to store

    Returns:
        True if written, False if the write failed (logged)
    """
    file_path = Path(path)
    tmp_name: str | None = None

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            dir=file_path.parent,
            prefix=f".{file_path.name}.",
            delete=False,
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(value)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, file_path)
        return True

    except OSError as e:
        logger.error(f"Failed to write watermark to {file_path}: {e}")
        if tmp_name and os.path.exists(tmp_name):
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.debug(f"Could not remove temporary watermark file {tmp_name}")
        return False


class WatermarkStore:
    """File-backed watermark for one connector instance.

    Single writer: only the owning extraction cycle saves to the path.
    """

    def __init__(self, path: str | Path | None) -> None:
        self.path = Path(path) if path else None

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def load(self) -> str | None:
        """Load the stored value, or None if nothing has been stored."""
        return load_watermark(self.path)

    def save(self, value: str) -> bool:
        """Store a new value; a no-op returning False when disabled."""
        if self.path is None:
            return False
        saved = save_watermark(self.path, value)
        if saved:
            logger.info(f"Watermark advanced to {value}")
        return saved
