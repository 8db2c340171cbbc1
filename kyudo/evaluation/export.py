"""JSON export of per-frame angle records."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from kyudo.pose.geometry import AngleRecord

logger = logging.getLogger(__name__)


def records_to_document(records: Sequence[AngleRecord]) -> Dict[str, Any]:
    """Build the `{"frames": [...]}` export document."""
    return {"frames": [record.to_dict() for record in records]}


def dumps(records: Sequence[AngleRecord]) -> str:
    """Serialize angle records to pretty-printed JSON."""
    return json.dumps(records_to_document(records), indent=2, ensure_ascii=False)


def export_records(records: Sequence[AngleRecord], path: Union[str, Path]) -> Path:
    """
    Write angle records to a JSON file.

    Args:
        records: Angle records in frame order.
        path: Output file path (parent directories are created).

    Returns:
        Path of the written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(dumps(records))
    logger.info(f"Exported {len(records)} frames to {path}")
    return path


def load_export(path: Union[str, Path]) -> List[AngleRecord]:
    """
    Read angle records back from an export file.

    Raises:
        ValueError: If the document has no "frames" list.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    frames = data.get("frames") if isinstance(data, dict) else None
    if not isinstance(frames, list):
        raise ValueError(f"Not an angle export (missing 'frames' list): {path}")

    records = [AngleRecord.from_dict(frame) for frame in frames]
    logger.debug(f"Loaded {len(records)} frames from {path}")
    return records
