"""OpenWeather current weather gateway."""
from __future__ import annotations

import logging
import string
from typing import Optional

from pydantic import ValidationError

from .base import (
    HttpGateway,
    WeatherDecodeError,
    WeatherInvalidRequest,
    WeatherTransportError,
)
from .schemas import CurrentWeatherPayload
from ..config import OPENWEATHER_URL
from ..entities import WeatherSnapshot


DEFAULT_DESCRIPTION = "Sunny"


def _truncate(value: float) -> int:
    # int() truncates toward zero: 19.9 -> 19, -0.9 -> 0
    return int(value)


def format_description(description: Optional[str]) -> str:
    if not description:
        return DEFAULT_DESCRIPTION
    return string.capwords(description)


class OpenWeatherGateway(HttpGateway):
    """Current conditions by city name, in metric units."""

    base_url = OPENWEATHER_URL
    transport_error = WeatherTransportError
    decode_error = WeatherDecodeError
    invalid_request_error = WeatherInvalidRequest

    def __init__(self, api_key: str, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url or self.base_url
        self._log = logging.getLogger(self.__class__.__name__)

    def fetch_current(self, city_name: str) -> WeatherSnapshot:
        if not city_name or not city_name.strip():
            raise WeatherInvalidRequest("city name is empty")
        # requests percent-encodes the query string
        params = {"q": city_name, "appid": self.api_key, "units": "metric"}
        response = self._request("GET", self.base_url, params=params)
        data = self._json(response)
        try:
            payload = CurrentWeatherPayload.model_validate(data)
        except ValidationError as exc:
            self._log.error("Unexpected weather payload for %s: %s", city_name, exc)
            raise WeatherDecodeError("unexpected weather payload") from exc

        main = payload.main
        snapshot = WeatherSnapshot(
            temperature_c=_truncate(main.temp),
            feels_like_c=_truncate(main.feels_like),
            temp_min_c=_truncate(main.temp_min),
            temp_max_c=_truncate(main.temp_max),
            humidity_pct=main.humidity,
            description=format_description(payload.first_description()),
        )
        self._log.debug("Fetched weather for %s: %s", city_name, snapshot)
        return snapshot


__all__ = ["OpenWeatherGateway", "DEFAULT_DESCRIPTION", "format_description"]
