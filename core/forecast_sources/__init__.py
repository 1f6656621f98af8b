# =============================================================================
# FORECAST SOURCES - Daily Temperature Forecast Package
# =============================================================================
#
# Normalised interface for all weather forecast providers.
# Each source implements ForecastSourceBase and returns DailyForecast
# objects keyed by UTC date (YYYY-MM-DD), temperatures in Celsius.
#
# ISOLATION:
# - READ-ONLY: Fetches forecasts, does not modify anything
# - NO imports from paper_trader or app
#
# =============================================================================

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Sequence

logger = logging.getLogger(__name__)


def round_temp(value: float) -> float:
    """Round to 0.1 °C."""
    return round(value * 10) / 10


# =============================================================================
# DAILY FORECAST DATA MODEL
# =============================================================================

@dataclass
class DailyForecast:
    """
    Forecast for one UTC calendar date.

    provider_temps maps source name -> {"max": .., "min": ..} for merged
    forecasts.
    """
    date: str
    max_temperature: float
    min_temperature: float
    description: str = ""
    provider_temps: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        result = {
            "date": self.date,
            "maxTemperature": self.max_temperature,
            "minTemperature": self.min_temperature,
            "description": self.description,
        }
        if self.provider_temps:
            result["providerTemps"] = {k: dict(v) for k, v in self.provider_temps.items()}
        return result


# =============================================================================
# FORECAST SOURCE BASE CLASS
# =============================================================================

class ForecastSourceBase(ABC):
    """Abstract base class for all forecast sources."""

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique name for this source (e.g. 'openweather')."""
        ...

    @property
    def requires_api_key(self) -> bool:
        """Whether this source needs an API key."""
        return False

    @abstractmethod
    def fetch_daily(self, dates: Sequence[str]) -> Dict[str, DailyForecast]:
        """
        Forecasts for the requested dates.

        Dates the provider has no data for are missing from the result.

        Raises:
            RuntimeError: If the provider could not be reached
        """
        ...

    def is_available(self) -> bool:
        """Check if this source can be used (e.g. API key present)."""
        return True


from .openweather_client import OpenWeatherSource  # noqa: E402
from .tomorrow_client import TomorrowIoSource  # noqa: E402

__all__ = [
    "DailyForecast",
    "ForecastSourceBase",
    "GLOBAL_CITY_COORDINATES",
    "OpenWeatherSource",
    "TomorrowIoSource",
    "get_coords",
    "round_temp",
]
