from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .gradient import Palette


SENTINEL_CITY = "Fetching location..."


@dataclass(frozen=True)
class Coordinates:
    """A single device position fix."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class CityRef:
    """City reference used as the weather lookup key.

    ``name`` is passed to the weather provider verbatim. ``country`` is only
    known for search results; a city resolved from the device position has
    none.
    """

    name: str
    country: Optional[str] = None


@dataclass(frozen=True)
class WeatherSnapshot:
    """Normalized current conditions for one city.

    Temperatures are whole degrees Celsius truncated toward zero, humidity is
    a percentage. A snapshot is never updated in place; every successful fetch
    produces a new one.
    """

    temperature_c: int
    feels_like_c: int
    temp_min_c: int
    temp_max_c: int
    humidity_pct: int
    description: str


class AuthorizationState(Enum):
    UNDETERMINED = "undetermined"
    DENIED = "denied"
    RESTRICTED = "restricted"
    AUTHORIZED = "authorized"

    @property
    def is_denied(self) -> bool:
        return self in (AuthorizationState.DENIED, AuthorizationState.RESTRICTED)


class FlowPhase(Enum):
    AWAITING_LOCATION = "awaiting_location"
    RESOLVING_CITY = "resolving_city"
    FETCHING_WEATHER = "fetching_weather"
    READY = "ready"
    LOCATION_ERROR = "location_error"
    WEATHER_ERROR = "weather_error"


@dataclass
class OrchestratorState:
    """View state shared with the presentation layer.

    Only :class:`~breeze.services.orchestrator.WeatherOrchestrator` writes to
    it. ``weather`` and ``weather_error`` are never set at the same time.
    """

    city_name: str = SENTINEL_CITY
    weather: Optional[WeatherSnapshot] = None
    location_error: Optional[str] = None
    weather_error: Optional[str] = None
    is_loading: bool = False
    phase: FlowPhase = FlowPhase.AWAITING_LOCATION
    palette: Palette = field(default=Palette.HOT)

    @property
    def has_location(self) -> bool:
        return self.city_name != SENTINEL_CITY


__all__ = [
    "SENTINEL_CITY",
    "Coordinates",
    "CityRef",
    "WeatherSnapshot",
    "AuthorizationState",
    "FlowPhase",
    "OrchestratorState",
]
