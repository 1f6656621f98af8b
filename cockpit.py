#!/usr/bin/env python3
# =============================================================================
# POLYMARKET LADDER TRADER - COCKPIT
# =============================================================================
#
# PAPER TRADING ENTRY POINT
#
# No real orders, no wallet, no real money.
#
# Usage:
#   python cockpit.py --run-once         # Run one cycle, exit
#   python cockpit.py --status           # Show positions and last run
#   python cockpit.py --pnl              # Show settled daily P&L
#   python cockpit.py --scheduler        # Run at the configured minutes
#
# =============================================================================

import sys
import os
import atexit
import argparse
import logging
import signal
from pathlib import Path
from datetime import datetime

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent
sys.path.insert(0, str(BASE_DIR))

# Load .env early so all modules see the API keys
load_dotenv(BASE_DIR / ".env", override=False)

LOCKFILE = BASE_DIR / "cockpit.lock"
HEARTBEAT_FILE = BASE_DIR / "logs" / "heartbeat.txt"


# =============================================================================
# SINGLE INSTANCE
# =============================================================================

def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def acquire_lock() -> bool:
    """Prevent duplicate scheduler instances via an atomic PID lockfile."""
    if LOCKFILE.exists():
        try:
            old_pid = int(LOCKFILE.read_text().strip())
            if old_pid != os.getpid() and _pid_alive(old_pid):
                print(f"Trader already running (PID {old_pid})")
                return False
        except (ValueError, OSError) as e:
            logger.warning(f"Unreadable lockfile, replacing it: {e}")
        LOCKFILE.unlink(missing_ok=True)

    try:
        fd = os.open(str(LOCKFILE), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        print("Trader already running (lock taken concurrently)")
        return False
    os.write(fd, str(os.getpid()).encode())
    os.close(fd)
    atexit.register(release_lock)
    return True


def release_lock():
    try:
        if LOCKFILE.exists() and int(LOCKFILE.read_text().strip()) == os.getpid():
            LOCKFILE.unlink(missing_ok=True)
    except (ValueError, OSError) as e:
        logger.warning(f"Failed to remove lockfile: {e}")


def write_heartbeat():
    try:
        HEARTBEAT_FILE.parent.mkdir(parents=True, exist_ok=True)
        HEARTBEAT_FILE.write_text(datetime.now().isoformat(), encoding="utf-8")
    except OSError as e:
        logger.warning(f"Heartbeat write failed: {e}")


# =============================================================================
# OUTPUT HELPERS
# =============================================================================

class C:
    """Terminal colors."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    CYAN = "\033[96m"

    @classmethod
    def disable(cls):
        for attr in dir(cls):
            if attr.isupper() and not attr.startswith('_'):
                setattr(cls, attr, "")


def print_header():
    print(f"\n{C.BOLD}{C.CYAN}{'='*50}{C.RESET}")
    print(f"{C.BOLD}{C.CYAN}   POLYMARKET LADDER TRADER{C.RESET}")
    print(f"{C.DIM}   Paper trading on daily temperature ladders{C.RESET}")
    print(f"{C.BOLD}{C.CYAN}{'='*50}{C.RESET}")
    print(f"{C.DIM}   {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}{C.RESET}")
    print()


def print_run_result(result):
    state = result.state.value
    summary = result.summary
    color = {"OK": C.GREEN, "DEGRADED": C.YELLOW}.get(state, C.RED)
    print(f"\n{color}{C.BOLD}  CYCLE COMPLETE: {state}  {C.RESET}")

    print(f"\n{C.BOLD}Summary:{C.RESET}")
    print(f"  Markets fetched:      {summary.get('markets_fetched', 0)}")
    print(f"  Forecast dates:       {summary.get('forecast_dates', 0)}")
    print(f"  Tradeable snapshots:  {summary.get('tradeable', 0)} / {summary.get('snapshots', 0)}")
    print(f"  Best candidates:      {summary.get('best_candidates', 0)}")
    print(f"  Positions opened:     {C.GREEN}{summary.get('positions_opened', 0)}{C.RESET}")
    print(f"  Stop exits:           {summary.get('stop_exits', 0)}")
    print(f"  Early closes:         {summary.get('early_closes', 0)}")
    print(f"  Settled:              {summary.get('settled', 0)}")
    print(f"  Open positions:       {summary.get('open_positions', 0)}")

    errors = [s for s in result.steps if not s.success]
    if errors:
        print(f"\n{C.YELLOW}Warnings:{C.RESET}")
        for e in errors:
            print(f"  {C.YELLOW}!{C.RESET} {e.name}: {e.error[:60] if e.error else 'Failed'}")
    print()


def print_status(status: dict):
    print(f"\n{C.BOLD}Status:{C.RESET}")
    print(f"  Last run:        {status.get('last_run', 'Never')}")
    print(f"  State:           {status.get('last_state', 'UNKNOWN')}")
    print(f"  Open positions:  {status.get('open_count', 0)}")
    print(f"  Total positions: {status.get('total_positions', 0)}")
    print(f"  Settled:         {status.get('settled_count', 0)}")
    print(f"  Decided dates:   {', '.join(status.get('decided_dates', [])) or '-'}")
    print(f"  Logs:            {status.get('logs_path', 'N/A')}")

    for position in status.get("open_positions", []):
        print(
            f"    {position['dateKey']} {position['entrySide']:>3} @ "
            f"{position['entryYesPrice']:.2f}  {position['question'][:50]}"
        )
    print()


def print_pnl(pnl: dict):
    print(f"\n{C.BOLD}Settled P&L:{C.RESET}")
    for day in pnl.get("days", []):
        value = day["dailyPnl"]
        color = C.GREEN if value >= 0 else C.RED
        print(f"  {day['date']}  trades={day['trades']:<3} {color}{value:+.4f}{C.RESET}")
    print(f"  {'-' * 36}")
    print(f"  Total       trades={pnl.get('total_trades', 0):<3} {pnl.get('total_pnl', 0.0):+.4f}")
    print()


# =============================================================================
# MAIN FUNCTIONS
# =============================================================================

def run_once() -> int:
    """Run one cycle and return the exit code."""
    from app.orchestrator import get_orchestrator

    print_header()
    try:
        result = get_orchestrator().run_cycle()
    except Exception as e:
        logger.exception("Cycle failed")
        print(f"{C.RED}Cycle failed: {e}{C.RESET}")
        return 1

    print_run_result(result)
    write_heartbeat()
    if result.state.value == "OK":
        return 0
    elif result.state.value == "DEGRADED":
        return 2
    return 1


def run_scheduler() -> int:
    """Run cycles at the configured minutes until SIGINT/SIGTERM."""
    from app.orchestrator import get_orchestrator
    from app.scheduler import ClockAlignedScheduler

    orchestrator = get_orchestrator()
    minutes = orchestrator.config["MARKET_CHECK_MINUTES"]

    def cycle():
        result = orchestrator.run_cycle()
        print_run_result(result)
        write_heartbeat()

    scheduler = ClockAlignedScheduler(minutes, cycle, name="cycle")

    def handle_signal(signum, frame):
        print(f"\n{C.YELLOW}Stopping after the current cycle...{C.RESET}")
        scheduler.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    start_time = datetime.now()
    print_header()
    print(f"{C.BOLD}Scheduler Mode{C.RESET}")
    print(f"  Minutes:  {', '.join(f':{m:02d}' for m in minutes)}")
    print(f"  Started:  {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  PID:      {os.getpid()}")
    print(f"\n{C.DIM}Press Ctrl+C to stop{C.RESET}\n")

    write_heartbeat()
    runs = scheduler.run(run_immediately=True)

    print(f"\n{C.YELLOW}Scheduler stopped{C.RESET}")
    print(f"  Total runs: {runs}")
    print(f"  Duration:   {str(datetime.now() - start_time).split('.')[0]}")
    return 0


def show_status() -> int:
    from app.orchestrator import get_status

    print_header()
    try:
        print_status(get_status())
        return 0
    except Exception as e:
        print(f"{C.RED}Error: {e}{C.RESET}")
        return 1


def show_pnl() -> int:
    from app.orchestrator import get_orchestrator

    print_header()
    try:
        print_pnl(get_orchestrator().daily_pnl())
        return 0
    except Exception as e:
        print(f"{C.RED}Error: {e}{C.RESET}")
        return 1


def main():
    parser = argparse.ArgumentParser(
        description="Polymarket Ladder Trader - Cockpit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cockpit.py --run-once         Run one cycle, exit
  python cockpit.py --status           Show positions and last run
  python cockpit.py --pnl              Show settled daily P&L
  python cockpit.py --scheduler        Run at the configured minutes
"""
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--run-once', action='store_true',
                      help='Run one cycle and exit')
    mode.add_argument('--status', action='store_true',
                      help='Show status only')
    mode.add_argument('--pnl', action='store_true',
                      help='Show settled daily P&L')
    mode.add_argument('--scheduler', action='store_true',
                      help='Run cycles at the configured minutes')
    parser.add_argument('--log-level', default='INFO',
                        help='Log level (default: INFO)')
    parser.add_argument('--no-color', action='store_true',
                        help='Disable colors')

    args = parser.parse_args()

    if args.no_color:
        C.disable()

    from shared.logging_config import setup_logging
    try:
        setup_logging(level=args.log_level, console_output=True, file_output=True)
    except ValueError as e:
        parser.error(str(e))

    if args.scheduler:
        if not acquire_lock():
            sys.exit(1)
        sys.exit(run_scheduler())
    elif args.status:
        sys.exit(show_status())
    elif args.pnl:
        sys.exit(show_pnl())
    else:
        sys.exit(run_once())


if __name__ == "__main__":
    main()
