from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from .base import (
    GatewayError,
    GeocodeNotFound,
    GeocodeProviderError,
    HttpGateway,
    SearchDecodeError,
    SearchProviderError,
)
from .schemas import GeoNamesPayload
from ..config import GEONAMES_URL
from ..entities import CityRef, Coordinates


class GeoNamesGateway(HttpGateway):
    """Reverse geocoding and city name suggestions backed by GeoNames."""

    base_url = GEONAMES_URL
    transport_error = GeocodeProviderError
    decode_error = GeocodeProviderError
    invalid_request_error = GeocodeProviderError

    def __init__(self, username: str, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.username = username
        self.base_url = (base_url or self.base_url).rstrip("/")
        self._log = logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def reverse_geocode(self, coordinates: Coordinates) -> CityRef:
        params = {
            "lat": coordinates.latitude,
            "lng": coordinates.longitude,
            "username": self.username,
        }
        payload = self._fetch(
            "findNearbyPlaceNameJSON", params, error=GeocodeProviderError, decode_error=GeocodeProviderError
        )
        placemarks = payload.geonames or []
        if not placemarks:
            raise GeocodeNotFound("no placemark for coordinates")
        locality = (placemarks[0].name or "").strip()
        if not locality:
            raise GeocodeNotFound("no locality in placemark")
        return CityRef(name=locality)

    def search_cities(self, query: str, max_results: int = 10) -> List[CityRef]:
        params = {
            "name_startsWith": query,
            "maxRows": max_results,
            "username": self.username,
        }
        payload = self._fetch("searchJSON", params, error=SearchProviderError, decode_error=SearchDecodeError)
        if payload.geonames is None:
            raise SearchDecodeError("decode failure")
        result: List[CityRef] = []
        for entry in payload.geonames:
            if not entry.name:
                raise SearchDecodeError("decode failure")
            result.append(CityRef(name=entry.name, country=entry.country_name))
        return result

    # Helpers ------------------------------------------------------------
    def _fetch(self, endpoint: str, params: dict, *, error: type, decode_error: type) -> GeoNamesPayload:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self._request("GET", url, params=params)
        except GatewayError as exc:
            raise error(str(exc)) from exc
        try:
            payload = GeoNamesPayload.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            self._log.error("Unexpected GeoNames payload: %s", exc)
            raise decode_error("decode failure") from exc
        if payload.status is not None:
            # GeoNames reports account and quota problems with HTTP 200
            self._log.warning("GeoNames error %s: %s", payload.status.value, payload.status.message)
            raise error(payload.status.message or "provider error")
        return payload


__all__ = ["GeoNamesGateway"]
