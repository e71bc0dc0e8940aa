"""Approximate device location through IP geolocation."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from pydantic import ValidationError

from .base import GatewayError, HttpGateway, LocationUnavailable
from .schemas import IpApiPayload
from ..config import IPAPI_URL
from ..entities import AuthorizationState, Coordinates
from ..location import LocationBackend


class IpApiLocationBackend(HttpGateway, LocationBackend):
    """Location backend for hosts without a positioning service.

    Authorization is the user's consent flag; there is no prompt to show, so
    :meth:`request_authorization` answers immediately. The lookup runs on a
    daemon thread and reports through the bound source's callbacks.
    """

    base_url = IPAPI_URL
    transport_error = LocationUnavailable
    decode_error = LocationUnavailable
    invalid_request_error = LocationUnavailable

    def __init__(self, consent: bool = True, base_url: Optional[str] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.consent = consent
        self.base_url = base_url or self.base_url
        self._stopped = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._log = logging.getLogger(self.__class__.__name__)

    @property
    def authorization_status(self) -> AuthorizationState:
        return AuthorizationState.AUTHORIZED if self.consent else AuthorizationState.DENIED

    def request_authorization(self) -> None:
        if self.delegate is not None:
            self.delegate.on_authorization_changed(self.authorization_status)

    def start_updates(self) -> None:
        self._stopped.clear()
        self._worker = threading.Thread(target=self._run, name="ipapi-location", daemon=True)
        self._worker.start()

    def stop_updates(self) -> None:
        self._stopped.set()

    def locate(self) -> Coordinates:
        response = self._request("GET", self.base_url, params={"fields": "status,message,lat,lon"})
        data = self._json(response)
        try:
            payload = IpApiPayload.model_validate(data)
        except ValidationError as exc:
            raise LocationUnavailable("unexpected geolocation payload") from exc
        if payload.status != "success" or payload.lat is None or payload.lon is None:
            raise LocationUnavailable(payload.message or "position unavailable")
        return Coordinates(latitude=payload.lat, longitude=payload.lon)

    def _run(self) -> None:
        try:
            coordinates = self.locate()
        except GatewayError as exc:
            self._log.warning("IP geolocation failed: %s", exc)
            if self.delegate is not None and not self._stopped.is_set():
                self.delegate.on_error(str(exc))
            return
        if self.delegate is not None and not self._stopped.is_set():
            self.delegate.on_position(coordinates)


__all__ = ["IpApiLocationBackend"]
