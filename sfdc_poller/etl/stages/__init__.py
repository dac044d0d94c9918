"""ETL pipeline stages.

Each stage handles a specific part of an extraction cycle:
- Extract: Run the query and batch rows from the connector
- Transform: Project rows into normalized events
- Load: Hand events to the sink
"""

from .extract import ExtractStage
from .transform import TransformStage
from .load import LoadStage

__all__ = [
    "ExtractStage",
    "TransformStage",
    "LoadStage",
]
