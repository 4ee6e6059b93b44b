"""
Flat JSON snapshot files for batch runs.

Layout under the output directory:
    processed_data/<SYMBOL>.json   one processed chain per symbol
    batch_rules.json               list of RulesOutput ([] when none fired)
"""

import json
from pathlib import Path
from typing import Any, Iterable

from loguru import logger

from chainwatch.alerts.models import RulesOutput
from chainwatch.core.models import ProcessResult

PROCESSED_DIR = "processed_data"
RULES_FILE = "batch_rules.json"


class SnapshotWriter:
    """Write processed chains and rule outputs as JSON files."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)
        self.processed_dir = self.output_dir / PROCESSED_DIR

    def write_processed(
        self,
        symbol: str,
        timestamp: str,
        underlying_value: float,
        result: ProcessResult,
    ) -> Path:
        payload = {
            "record": {
                "symbol": symbol,
                "timestamp": timestamp,
                "underlying_value": underlying_value,
                "spread": result.spread,
                "days_to_expiry": result.days_to_expiry,
                "ce_oi": result.ce_oi_total,
                "pe_oi": result.pe_oi_total,
            },
            "data": [record.to_dict() for record in result.strikes],
        }
        self.processed_dir.mkdir(parents=True, exist_ok=True)
        path = self.processed_dir / f"{_safe_name(symbol)}.json"
        _write_json(path, payload)
        return path

    def write_rules(self, outputs: Iterable[RulesOutput]) -> Path:
        payload = [output.to_dict() for output in outputs]
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / RULES_FILE
        _write_json(path, payload)
        logger.info(f"✓ Wrote {len(payload)} rule outputs to {path}")
        return path


def _write_json(path: Path, payload: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    tmp.replace(path)


def _safe_name(symbol: str) -> str:
    return "".join(c if c.isalnum() or c in "-_&" else "_" for c in symbol)
