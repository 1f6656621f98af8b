# =============================================================================
# POLYMARKET LADDER TRADER - CYCLE LOGGER
# =============================================================================
#
# APPEND-ONLY audit trail of every decision cycle.
#
# FILES (one per UTC day):
# - logs/monitoring/monitoring_YYYY-MM-DD.jsonl   raw observations
# - logs/decisions/decisions_YYYY-MM-DD.jsonl     model outputs and actions
#
# CORRELATION:
# Each monitoring line carries a snapshotId, each decision line a decisionId
# plus the snapshotId it was derived from. Positions opened in the cycle
# carry both.
#
# =============================================================================

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.candidate_selector import CandidateSelection
from core.ladder_coherence import LadderStats
from core.market_snapshot import MarketSnapshot
from paper_trader.models import DecisionActionRecord

_logger = logging.getLogger(__name__)


LOGS_DIR = Path(__file__).parent.parent / "logs"


def generate_id() -> str:
    return str(uuid.uuid4())


def utc_date_key(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


class CycleLogger:
    """Writes the monitoring and decision JSONL files."""

    def __init__(self, logs_dir: Optional[Path] = None):
        self.logs_dir = Path(logs_dir) if logs_dir else LOGS_DIR
        self.monitoring_dir = self.logs_dir / "monitoring"
        self.decisions_dir = self.logs_dir / "decisions"
        self.monitoring_dir.mkdir(parents=True, exist_ok=True)
        self.decisions_dir.mkdir(parents=True, exist_ok=True)

    def monitoring_path(self, moment: datetime) -> Path:
        return self.monitoring_dir / f"monitoring_{utc_date_key(moment)}.jsonl"

    def decisions_path(self, moment: datetime) -> Path:
        return self.decisions_dir / f"decisions_{utc_date_key(moment)}.jsonl"

    def _append_json(self, path: Path, data: Dict[str, Any]):
        """Append a JSON object as a single line."""
        with open(path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(data, ensure_ascii=False) + '\n')
            f.flush()
            os.fsync(f.fileno())

    def append_monitoring_snapshot(
        self,
        forecasts: Sequence[Any],
        snapshots: Sequence[MarketSnapshot],
        model_temps_by_date: Mapping[str, float],
        best_candidates: Sequence[CandidateSelection],
        now: datetime,
    ) -> str:
        """Log raw observations. Returns the snapshotId."""
        snapshot_id = generate_id()
        record = {
            "snapshotId": snapshot_id,
            "timestamp": now.isoformat(),
            "entryType": "market_check",
            "weatherForecasts": [f.to_dict() for f in forecasts],
            "markets": [s.to_observation_dict() for s in snapshots],
            "modelTempsByDate": dict(model_temps_by_date),
            "bestCandidatesByDate": [c.to_dict() for c in best_candidates],
        }
        try:
            self._append_json(self.monitoring_path(now), record)
        except (IOError, OSError, TypeError, ValueError) as e:
            _logger.error(f"Failed to log monitoring snapshot: {e}")
        return snapshot_id

    def append_decision_record(
        self,
        snapshot_id: str,
        snapshots: Sequence[MarketSnapshot],
        ladder_stats: Mapping[str, LadderStats],
        best_candidates: Sequence[CandidateSelection],
        actions: Sequence[DecisionActionRecord],
        now: datetime,
    ) -> str:
        """Log model outputs and per-date actions. Returns the decisionId."""
        decision_id = generate_id()
        record = {
            "decisionId": decision_id,
            "snapshotId": snapshot_id,
            "timestamp": now.isoformat(),
            "decisions": [s.to_decision_dict() for s in snapshots if s.date_key],
            "ladderStats": [ladder_stats[k].to_dict() for k in sorted(ladder_stats)],
            "bestCandidatesByDate": [c.to_dict() for c in best_candidates],
            "actions": [a.to_dict() for a in sorted(actions, key=lambda a: a.date_key)],
        }
        try:
            self._append_json(self.decisions_path(now), record)
        except (IOError, OSError, TypeError, ValueError) as e:
            _logger.error(f"Failed to log decision record: {e}")
        return decision_id

    def _read_jsonl(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        entries = []
        with open(path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    _logger.warning(f"Skipping malformed log line | path={path}")
        return entries

    def read_monitoring_snapshots(self, moment: Optional[datetime] = None) -> List[Dict[str, Any]]:
        return self._read_jsonl(self.monitoring_path(moment or datetime.now(timezone.utc)))

    def read_decision_records(self, moment: Optional[datetime] = None) -> List[Dict[str, Any]]:
        return self._read_jsonl(self.decisions_path(moment or datetime.now(timezone.utc)))
