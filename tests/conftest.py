from __future__ import annotations

from typing import Any, Dict

import pytest

from requests_mock import Mocker

from breeze.config import BreezeConfig
from breeze.entities import WeatherSnapshot


OWM_URL = "https://owm.test/data/2.5/weather"
GEONAMES_URL = "https://geonames.test"
IPAPI_URL = "http://ipapi.test/json/"


@pytest.fixture
def requests_mock():
    with Mocker() as mock:
        yield mock


@pytest.fixture
def config() -> BreezeConfig:
    return BreezeConfig(
        openweather_api_key="owm-key",
        geonames_username="demo",
        openweather_url=OWM_URL,
        geonames_url=GEONAMES_URL,
        ipapi_url=IPAPI_URL,
        request_timeout=1.0,
        fetch_timeout=2.0,
    )


def make_snapshot(temp: int = 10, description: str = "Clear Sky") -> WeatherSnapshot:
    return WeatherSnapshot(
        temperature_c=temp,
        feels_like_c=temp - 1,
        temp_min_c=temp - 2,
        temp_max_c=temp + 2,
        humidity_pct=50,
        description=description,
    )


def owm_payload(
    temp: float = 17.8,
    feels_like: float = 16.2,
    temp_min: float = 15.0,
    temp_max: float = 19.0,
    humidity: int = 72,
    description: str | None = "light rain",
    name: str = "London",
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "main": {
            "temp": temp,
            "feels_like": feels_like,
            "temp_min": temp_min,
            "temp_max": temp_max,
            "humidity": humidity,
        },
        "name": name,
    }
    if description is not None:
        payload["weather"] = [{"description": description}]
    return payload
