"""Display strings derived from the orchestrator state."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Tuple

from .entities import FlowPhase, OrchestratorState

TEMPERATURE_PLACEHOLDER = "--°C"
HUMIDITY_PLACEHOLDER = "--%"


def format_temperature(value: Optional[int]) -> str:
    if value is None:
        return TEMPERATURE_PLACEHOLDER
    return f"{value}°C"


def format_humidity(value: Optional[int]) -> str:
    if value is None:
        return HUMIDITY_PLACEHOLDER
    return f"{value}%"


@dataclass(frozen=True)
class WeatherDisplay:
    headline: str
    temperature: str
    description: str
    feels_like: str
    temp_min: str
    temp_max: str
    humidity: str
    colors: Tuple[str, ...]
    is_error: bool

    @classmethod
    def from_state(cls, state: OrchestratorState) -> "WeatherDisplay":
        # A location error replaces the primary content.
        headline = state.location_error or state.city_name
        weather = state.weather
        if weather is not None:
            description = weather.description
        elif state.phase is FlowPhase.WEATHER_ERROR:
            description = "Failed to fetch weather"
        else:
            description = "Fetching weather..."
        return cls(
            headline=headline,
            temperature=format_temperature(weather.temperature_c if weather else None),
            description=description,
            feels_like=format_temperature(weather.feels_like_c if weather else None),
            temp_min=format_temperature(weather.temp_min_c if weather else None),
            temp_max=format_temperature(weather.temp_max_c if weather else None),
            humidity=format_humidity(weather.humidity_pct if weather else None),
            colors=state.palette.colors,
            is_error=bool(state.location_error or state.weather_error),
        )

    def as_dict(self) -> Dict[str, object]:
        payload = asdict(self)
        payload["colors"] = list(self.colors)
        return payload


__all__ = ["WeatherDisplay", "format_temperature", "format_humidity"]
