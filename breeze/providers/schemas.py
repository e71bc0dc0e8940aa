"""Wire payload schemas for the HTTP providers."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "MainReading",
    "Condition",
    "CurrentWeatherPayload",
    "GeoName",
    "GeoNamesStatus",
    "GeoNamesPayload",
    "IpApiPayload",
]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MainReading(_Payload):
    temp: float
    feels_like: float
    temp_min: float
    temp_max: float
    humidity: int


class Condition(_Payload):
    description: Optional[str] = None


class CurrentWeatherPayload(_Payload):
    main: MainReading
    weather: Optional[List[Condition]] = None
    name: Optional[str] = None

    def first_description(self) -> Optional[str]:
        if not self.weather:
            return None
        description = (self.weather[0].description or "").strip()
        return description or None


class GeoName(_Payload):
    name: Optional[str] = None
    country_name: Optional[str] = Field(default=None, alias="countryName")


class GeoNamesStatus(_Payload):
    message: str = ""
    value: Optional[int] = None


class GeoNamesPayload(_Payload):
    geonames: Optional[List[GeoName]] = None
    status: Optional[GeoNamesStatus] = None


class IpApiPayload(_Payload):
    status: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    message: Optional[str] = None
