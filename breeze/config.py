"""Runtime configuration for the weather client."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
GEONAMES_URL = "https://secure.geonames.org"
IPAPI_URL = "http://ip-api.com/json/"

_FALSE_VALUES = {"0", "false", "no", "off"}


def env(name: str, default: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> str:
    """Fetch environment variables while allowing explicit defaults.

    Credentials are optional at startup: a missing key only shows up later as
    a provider error, so callers pass an empty default for them.
    """

    source = os.environ if environ is None else environ
    value = source.get(name, default)
    if value is None:
        raise KeyError(f"Environment variable {name} is required")
    return value


@dataclass(frozen=True)
class BreezeConfig:
    openweather_api_key: str = ""
    geonames_username: str = ""
    openweather_url: str = OPENWEATHER_URL
    geonames_url: str = GEONAMES_URL
    ipapi_url: str = IPAPI_URL
    location_consent: bool = True
    request_timeout: float = 5.0
    fetch_timeout: float = 15.0
    search_max_rows: int = 10
    min_query_length: int = 3

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "BreezeConfig":
        values = {
            "openweather_api_key": env("OW_API_KEY", "", environ),
            "geonames_username": env("GEONAMES_USERNAME", "", environ),
            "openweather_url": env("OPENWEATHER_URL", OPENWEATHER_URL, environ),
            "geonames_url": env("GEONAMES_URL", GEONAMES_URL, environ),
            "ipapi_url": env("IPAPI_URL", IPAPI_URL, environ),
            "location_consent": env("BREEZE_LOCATION_CONSENT", "1", environ).strip().lower() not in _FALSE_VALUES,
            "request_timeout": float(env("BREEZE_REQUEST_TIMEOUT", "5.0", environ)),
            "fetch_timeout": float(env("BREEZE_FETCH_TIMEOUT", "15.0", environ)),
        }
        values.update(overrides)
        return cls(**values)


__all__ = ["BreezeConfig", "env", "OPENWEATHER_URL", "GEONAMES_URL", "IPAPI_URL"]
