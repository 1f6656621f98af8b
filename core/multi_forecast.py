# =============================================================================
# MULTI-SOURCE DAILY FORECAST FETCHER
# =============================================================================
#
# Best-effort merge across the available providers:
#   1. OpenWeather  (required key)
#   2. Tomorrow.io  (optional key)
#
# MERGE:
# For each requested date, max/min are the average over the providers that
# returned data for it, rounded to 0.1 °C. A date without any provider data
# is omitted. Only when every provider failed does the fetch raise.
#
# CHANGE DETECTION:
# An unchanged forecast set is a no-op for logging; changes are reported
# per date and field.
#
# ISOLATION:
# - READ-ONLY: Fetches forecasts, does not modify anything
#
# =============================================================================

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core.forecast_sources import DailyForecast, ForecastSourceBase, round_temp

logger = logging.getLogger(__name__)


def merge_forecasts(date: str, per_source: Dict[str, DailyForecast]) -> DailyForecast:
    """Average the providers' forecasts for one date."""
    highs = [f.max_temperature for f in per_source.values()]
    lows = [f.min_temperature for f in per_source.values()]
    description = next((f.description for f in per_source.values() if f.description), "")
    return DailyForecast(
        date=date,
        max_temperature=round_temp(sum(highs) / len(highs)),
        min_temperature=round_temp(sum(lows) / len(lows)),
        description=description,
        provider_temps={
            name: {"max": f.max_temperature, "min": f.min_temperature}
            for name, f in per_source.items()
        },
    )


def fetch_forecasts_for_dates(
    dates: Sequence[str],
    sources: Sequence[ForecastSourceBase],
) -> List[DailyForecast]:
    """
    Merged forecasts for the requested dates, sorted by date.

    Raises:
        RuntimeError: If no source is available or every source failed
    """
    if not dates:
        return []

    available = [s for s in sources if s.is_available()]
    if not available:
        raise RuntimeError("No forecast source available (missing API keys?)")

    by_date: Dict[str, Dict[str, DailyForecast]] = {}
    errors = []
    for source in available:
        try:
            results = source.fetch_daily(dates)
        except RuntimeError as e:
            errors.append(f"{source.source_name}: {e}")
            logger.warning(f"Forecast source failed | source={source.source_name} | error={e}")
            continue
        for date, forecast in results.items():
            by_date.setdefault(date, {})[source.source_name] = forecast

    if len(errors) == len(available):
        raise RuntimeError(f"All forecast sources failed: {'; '.join(errors)}")

    merged = []
    for date in sorted(set(dates)):
        per_source = by_date.get(date)
        if not per_source:
            logger.info(f"No forecast available, skipping date | date={date}")
            continue
        merged.append(merge_forecasts(date, per_source))
    return merged


def forecasts_identical(old: Sequence[DailyForecast], new: Sequence[DailyForecast]) -> bool:
    """Same dates with the same max/min. An empty old set never matches."""
    if not old or len(old) != len(new):
        return False
    old_by_date = {f.date: f for f in old}
    for forecast in new:
        previous = old_by_date.get(forecast.date)
        if previous is None:
            return False
        if (previous.max_temperature != forecast.max_temperature
                or previous.min_temperature != forecast.min_temperature):
            return False
    return True


def forecast_changes(
    old: Sequence[DailyForecast],
    new: Sequence[DailyForecast],
    now: Optional[datetime] = None,
) -> List[str]:
    """Human-readable change lines between two forecast sets."""
    time_str = (now or datetime.now()).strftime("%H:%M")
    old_by_date = {f.date: f for f in old}
    changes = []
    for forecast in new:
        previous = old_by_date.get(forecast.date)
        if previous is None:
            changes.append(
                f"{forecast.date}: max {forecast.max_temperature}°C, "
                f"min {forecast.min_temperature}°C (new)"
            )
            continue
        if previous.max_temperature != forecast.max_temperature:
            changes.append(
                f"{forecast.date} max: {previous.max_temperature} --> "
                f"{forecast.max_temperature} at {time_str}"
            )
        if previous.min_temperature != forecast.min_temperature:
            changes.append(
                f"{forecast.date} min: {previous.min_temperature} --> "
                f"{forecast.min_temperature} at {time_str}"
            )
    return changes


class ForecastTracker:
    """Keeps the latest forecast set and logs what changed."""

    def __init__(self):
        self.latest: List[DailyForecast] = []

    def update(self, forecasts: List[DailyForecast], now: Optional[datetime] = None) -> bool:
        """Store the new set. Returns True if anything changed."""
        if forecasts_identical(self.latest, forecasts):
            logger.info(
                f"Forecasts unchanged | dates={', '.join(f.date for f in forecasts)}"
            )
            return False

        if self.latest:
            for change in forecast_changes(self.latest, forecasts, now):
                logger.info(f"Forecast change | {change}")
        else:
            for forecast in forecasts:
                providers = ", ".join(
                    f"{name} {t['max']}/{t['min']}" for name, t in forecast.provider_temps.items()
                )
                logger.info(
                    f"Forecast | date={forecast.date} | max={forecast.max_temperature} | "
                    f"min={forecast.min_temperature} | providers={providers or 'n/a'}"
                )
        self.latest = list(forecasts)
        return True
