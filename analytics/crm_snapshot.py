"""
CRM Snapshot Runner
====================
Reads raw CRM JSON exports from data/raw/ and writes the dashboard outputs
to data/processed/:

    metrics.json            main dashboard snapshot
    call_analysis.json      standalone call analysis
    duration_insights.json  {generatedAt, summary, agents}: duration vs outcome

Exports are expected as crm_{leads,calls,deals,tasks}_YYYY-MM-DD.json; the
most recent file per module is used.

Exports:
    run_snapshot
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from analytics.config import BASE_DIR, EngineConfig, load_config
from analytics.lib.errors import DataError
from analytics.lib.logger import setup_logger
from analytics.lib.utils import atomic_write_json, load_records
from analytics.snapshot import SnapshotAssembler

RAW_DIR = BASE_DIR / "data" / "raw"
PROCESSED_DIR = BASE_DIR / "data" / "processed"

METRICS_FILE = "metrics.json"
CALL_ANALYSIS_FILE = "call_analysis.json"
DURATION_INSIGHTS_FILE = "duration_insights.json"

logger = setup_logger(__name__)


def run_snapshot(
    raw_dir: Optional[str | Path] = None,
    processed_dir: Optional[str | Path] = None,
    config: Optional[EngineConfig] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Load the latest exports, build all three outputs and save them.

    Returns the main dashboard snapshot.

    Raises:
        DataError: an export is unreadable, a record collection is malformed
            or an output file could not be written.
    """
    raw_dir = Path(raw_dir or RAW_DIR)
    processed_dir = Path(processed_dir or PROCESSED_DIR)
    config = config or load_config()
    logger.info("Starting CRM snapshot build from %s", raw_dir)

    # ------------------------------------------------------------------
    # 1. Load raw data
    # ------------------------------------------------------------------
    leads = load_records(raw_dir, "leads")
    calls = load_records(raw_dir, "calls")
    deals = load_records(raw_dir, "deals")
    tasks = load_records(raw_dir, "tasks")
    logger.info(
        "Loaded: %d leads, %d calls, %d deals, %d tasks",
        len(leads), len(calls), len(deals), len(tasks),
    )

    # ------------------------------------------------------------------
    # 2. Build snapshots against one fixed "now"
    # ------------------------------------------------------------------
    assembler = SnapshotAssembler(config, now)
    snapshot = assembler.build(leads, calls, deals, tasks)
    call_analysis = assembler.build_call_snapshot(calls)
    duration_insights = assembler.build_duration_insights(leads, calls)

    # ------------------------------------------------------------------
    # 3. Save to processed directory
    # ------------------------------------------------------------------
    outputs = {
        METRICS_FILE: snapshot,
        CALL_ANALYSIS_FILE: call_analysis,
        DURATION_INSIGHTS_FILE: duration_insights,
    }
    for name, payload in outputs.items():
        path = processed_dir / name
        if not atomic_write_json(payload, path):
            raise DataError(f"Failed to write {path}", details={"path": str(path)})
        logger.info("Wrote %s", path)

    logger.info("Snapshot complete. Outputs saved to %s", processed_dir)
    return snapshot


# ============================================================================
# Standalone entry point
# ============================================================================

if __name__ == "__main__":
    result = run_snapshot()
    print(f"\nSnapshot complete. {result['kpis']['todaysLeadsCount']} leads today.")
    print(f"Output: {PROCESSED_DIR / METRICS_FILE}")
