# =============================================================================
# OPENWEATHER FORECAST SOURCE (requires API key)
# =============================================================================
#
# 5-day / 3-hour forecast, metric units.
# Daily max/min = max(temp_max) / min(temp_min) over the 3h slots whose
# timestamp falls on the target UTC date. Description from the first slot.
#
# ISOLATION: READ-ONLY, no trading imports
# =============================================================================

import logging
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from shared.http_retry import get_json

from . import DailyForecast, ForecastSourceBase, round_temp

logger = logging.getLogger(__name__)

FORECAST_ENDPOINT = "https://api.openweathermap.org/data/2.5/forecast"


def daily_from_slots(slots: List[Dict], date: str) -> Optional[DailyForecast]:
    """Aggregate 3h slots of one UTC date. None if the date has no data."""
    day_slots = []
    for slot in slots:
        if not isinstance(slot, dict) or not isinstance(slot.get("dt"), (int, float)):
            continue
        slot_date = datetime.fromtimestamp(slot["dt"], tz=timezone.utc).strftime("%Y-%m-%d")
        if slot_date == date:
            day_slots.append(slot)

    temps = [
        (s["main"]["temp_max"], s["main"]["temp_min"])
        for s in day_slots
        if s.get("main", {}).get("temp_max") is not None
        and s.get("main", {}).get("temp_min") is not None
    ]
    if not temps:
        return None

    weather = day_slots[0].get("weather") or [{}]
    return DailyForecast(
        date=date,
        max_temperature=round_temp(max(t[0] for t in temps)),
        min_temperature=round_temp(min(t[1] for t in temps)),
        description=weather[0].get("description", "No description"),
    )


class OpenWeatherSource(ForecastSourceBase):
    """OpenWeather API forecast source (requires key)."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        api_key: Optional[str] = None,
        timeout: int = 15,
    ):
        self.latitude = latitude
        self.longitude = longitude
        self.api_key = api_key if api_key is not None else os.environ.get("OPENWEATHER_API_KEY", "")
        self.timeout = timeout

    @property
    def source_name(self) -> str:
        return "openweather"

    @property
    def requires_api_key(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self.api_key)

    def fetch_daily(self, dates: Sequence[str]) -> Dict[str, DailyForecast]:
        data = get_json(
            FORECAST_ENDPOINT,
            params={
                "lat": self.latitude,
                "lon": self.longitude,
                "units": "metric",
                "appid": self.api_key,
            },
            timeout=self.timeout,
        )
        slots = data.get("list") if isinstance(data, dict) else None
        if not isinstance(slots, list) or not slots:
            raise RuntimeError("OpenWeather returned invalid or empty data")

        result = {}
        for date in dates:
            forecast = daily_from_slots(slots, date)
            if forecast is None:
                logger.debug(f"OpenWeather has no data | date={date}")
                continue
            result[date] = forecast
        return result
