"""
Utility functions for CRM Pulse.
Atomic file writes and raw export loading for the snapshot runner.

Usage:
    from analytics.lib.utils import atomic_write_json, find_latest_export, load_records
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from analytics.lib.errors import DataFetchError
from analytics.lib.logger import setup_logger

logger = setup_logger(__name__)


def atomic_write_json(data: Any, file_path: str | Path, indent: int = 2) -> bool:
    """
    Write JSON data to file atomically using temp file + rename.
    Prevents a half-written snapshot if the process dies during the write.

    Args:
        data: JSON-serializable value.
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        True if successful, False otherwise.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    try:
        ensure_directory(file_path.parent)

        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=indent, default=str)

        os.replace(temp_path, file_path)
        logger.debug("Atomically wrote JSON to %s", file_path)
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        return False


def find_latest_export(raw_dir: Path, object_type: str) -> Optional[Path]:
    """Find the most recent date-stamped export for a CRM module.

    Pattern: crm_{object_type}_YYYY-MM-DD.json
    """
    raw_dir = Path(raw_dir)
    date_re = re.compile(r"crm_" + re.escape(object_type) + r"_(\d{4}-\d{2}-\d{2})\.json$")
    files = sorted(raw_dir.glob(f"crm_{object_type}_*.json"))
    if not files:
        logger.warning("No export found for '%s' in %s", object_type, raw_dir)
        return None

    dated: List[Tuple[str, Path]] = []
    for fp in files:
        m = date_re.search(fp.name)
        if m:
            dated.append((m.group(1), fp))

    if not dated:
        # Fall back to first match if no date pattern found
        return files[0]

    dated.sort(key=lambda x: x[0], reverse=True)
    return dated[0][1]


def load_records(raw_dir: Path, object_type: str) -> List[Dict[str, Any]]:
    """Load the records of the latest export for a CRM module.

    Accepts a bare JSON list or an API envelope with a ``data`` (or
    ``results``) list. A missing export yields an empty list.
    """
    path = find_latest_export(raw_dir, object_type)
    if path is None:
        return []
    logger.info("Loading %s from %s", object_type, path)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise DataFetchError(f"Could not read {path}: {e}", source=str(path)) from e

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        records = payload.get("data", payload.get("results", []))
        if isinstance(records, list):
            return records
    raise DataFetchError(
        f"Export {path.name} holds neither a record list nor a data envelope",
        source=str(path),
    )


def ensure_directory(path: str | Path) -> Path:
    """Ensure directory exists, create if needed."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
