# =============================================================================
# POLYMARKET LADDER TRADER - POSITIONS REPOSITORY
# =============================================================================
#
# File persistence for the paper trading state.
#
# FILES (under the logs directory):
# - trading/positions.json         PositionsState, rewritten on every mutation
# - reports/daily_reports.json     append-only list of EarlyCloseReports
# - trading/settlement_log.json    append-only list of SettlementRecords
#
# ATOMICITY:
# Every write goes to a temp file in the target directory, then os.replace().
# An interrupted write never leaves a partial file behind.
#
# FAILURE POLICY:
# - Save failures are logged; the caller keeps its in-memory state and the
#   next successful save carries the latest state.
# - Unreadable / corrupt files load as the empty default with a warning.
# - A corrupt settlement log is moved aside (.corrupt-<timestamp>) before
#   the next append, never overwritten.
#
# =============================================================================

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from paper_trader.models import EarlyCloseReport, PositionsState, SettlementRecord

logger = logging.getLogger(__name__)


LOGS_DIR = Path(__file__).parent.parent / "logs"

POSITIONS_FILE = Path("trading") / "positions.json"
SETTLEMENT_LOG_FILE = Path("trading") / "settlement_log.json"
DAILY_REPORTS_FILE = Path("reports") / "daily_reports.json"


def read_json(path: Path, default: Any) -> Any:
    """Parsed JSON content of path, or default if missing/unreadable."""
    if not path.exists():
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning(f"Unreadable JSON file, using default | path={path} | error={e}")
        return default


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON via temp file + rename. Raises on failure."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class PositionsRepository:
    """
    Single-writer store for positions, daily reports and the settlement log.
    """

    def __init__(self, logs_dir: Optional[Path] = None):
        self.logs_dir = Path(logs_dir) if logs_dir else LOGS_DIR
        self.positions_path = self.logs_dir / POSITIONS_FILE
        self.settlement_log_path = self.logs_dir / SETTLEMENT_LOG_FILE
        self.daily_reports_path = self.logs_dir / DAILY_REPORTS_FILE

    # -------------------------------------------------------------------------
    # POSITIONS
    # -------------------------------------------------------------------------

    def load_state(self) -> PositionsState:
        data = read_json(self.positions_path, None)
        if not isinstance(data, dict):
            if data is not None:
                logger.warning(f"Positions file has unexpected shape, starting empty | path={self.positions_path}")
            return PositionsState()

        state = PositionsState.from_dict(data)
        decided = sum(1 for d in state.decided_dates.values() if d.is_decided)
        logger.info(
            f"Positions loaded | open={len(state.open_positions())} | "
            f"decided_dates={decided} | reported_dates={len(state.reported_dates)}"
        )
        return state

    def save_state(self, state: PositionsState) -> bool:
        """Persist state. Returns False (and logs) if the write failed."""
        try:
            write_json_atomic(self.positions_path, state.to_dict())
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save positions | path={self.positions_path} | error={e}")
            return False

    # -------------------------------------------------------------------------
    # DAILY REPORTS
    # -------------------------------------------------------------------------

    def load_daily_reports(self) -> List[dict]:
        data = read_json(self.daily_reports_path, [])
        return data if isinstance(data, list) else []

    def append_daily_report(self, report: EarlyCloseReport) -> bool:
        reports = self.load_daily_reports()
        reports.append(report.to_dict())
        try:
            write_json_atomic(self.daily_reports_path, reports)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to append daily report | date={report.date_key} | error={e}")
            return False

    # -------------------------------------------------------------------------
    # SETTLEMENT LOG
    # -------------------------------------------------------------------------

    def load_settlements(self) -> List[SettlementRecord]:
        data = read_json(self.settlement_log_path, [])
        if not isinstance(data, list):
            return []
        return [SettlementRecord.from_dict(entry) for entry in data if isinstance(entry, dict)]

    def append_settlement(self, record: SettlementRecord) -> bool:
        path = self.settlement_log_path
        if path.exists() and not isinstance(read_json(path, None), list):
            backup = path.with_name(
                f"{path.name}.corrupt-{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}"
            )
            try:
                os.replace(str(path), str(backup))
            except OSError as e:
                logger.error(f"Failed to back up corrupt settlement log | path={path} | error={e}")
                return False
            logger.error(f"Corrupt settlement log moved aside, starting a new one | backup={backup}")

        entries = [r.to_dict() for r in self.load_settlements()]
        entries.append(record.to_dict())
        try:
            write_json_atomic(path, entries)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to append settlement | market={record.market_id} | error={e}")
            return False
