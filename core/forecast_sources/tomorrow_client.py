# =============================================================================
# TOMORROW.IO FORECAST SOURCE (requires API key)
# =============================================================================
#
# Daily timeline, metric units: temperatureMax / temperatureMin per day.
#
# ISOLATION: READ-ONLY, no trading imports
# =============================================================================

import logging
import os
from typing import Dict, List, Optional, Sequence

from shared.http_retry import get_json

from . import DailyForecast, ForecastSourceBase, round_temp

logger = logging.getLogger(__name__)

FORECAST_ENDPOINT = "https://api.tomorrow.io/v4/weather/forecast"


def daily_from_timeline(days: List[Dict], date: str) -> Optional[DailyForecast]:
    for day in days:
        if not isinstance(day, dict) or str(day.get("time", ""))[:10] != date:
            continue
        values = day.get("values") or {}
        high = values.get("temperatureMax")
        low = values.get("temperatureMin")
        if high is None or low is None:
            return None
        return DailyForecast(
            date=date,
            max_temperature=round_temp(float(high)),
            min_temperature=round_temp(float(low)),
        )
    return None


class TomorrowIoSource(ForecastSourceBase):
    """Tomorrow.io API forecast source (requires key)."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        api_key: Optional[str] = None,
        timeout: int = 15,
    ):
        self.latitude = latitude
        self.longitude = longitude
        self.api_key = api_key if api_key is not None else os.environ.get("TOMORROW_API_KEY", "")
        self.timeout = timeout

    @property
    def source_name(self) -> str:
        return "tomorrow"

    @property
    def requires_api_key(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self.api_key)

    def fetch_daily(self, dates: Sequence[str]) -> Dict[str, DailyForecast]:
        data = get_json(
            FORECAST_ENDPOINT,
            params={
                "location": f"{self.latitude},{self.longitude}",
                "timesteps": "1d",
                "units": "metric",
                "apikey": self.api_key,
            },
            timeout=self.timeout,
        )
        days = (data.get("timelines") or {}).get("daily") if isinstance(data, dict) else None
        if not isinstance(days, list):
            raise RuntimeError("Tomorrow.io returned no daily timeline")

        result = {}
        for date in dates:
            forecast = daily_from_timeline(days, date)
            if forecast is not None:
                result[date] = forecast
        return result
