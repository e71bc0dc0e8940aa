from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Type

import requests
from requests import Response


class GatewayError(RuntimeError):
    """Base error for every external data source."""


class LocationError(GatewayError):
    """Raised or emitted when no device position can be obtained."""


class PermissionDenied(LocationError):
    def __init__(self, message: str = "permission denied") -> None:
        super().__init__(message)


class LocationUnavailable(LocationError):
    """Any location failure other than a permission denial."""


class GeocodeError(GatewayError):
    """Base error for reverse geocoding and city search."""


class GeocodeNotFound(GeocodeError):
    """The provider returned no locality for the coordinates."""


class GeocodeProviderError(GeocodeError):
    """Transport or decoding failure talking to the geocoding provider."""


class SearchProviderError(GeocodeProviderError):
    """Transport or decoding failure during a city search."""


class SearchDecodeError(SearchProviderError):
    """The search response body is not the expected GeoNames payload."""


class WeatherError(GatewayError):
    """Base error for the current weather lookup."""


class WeatherInvalidRequest(WeatherError):
    """The request could not be built from the given input."""


class WeatherTransportError(WeatherError):
    """Network failure, timeout or HTTP error status."""


class WeatherDecodeError(WeatherError):
    """The response body is not the expected current weather payload."""


@dataclass
class RequestConfig:
    timeout: float = 5.0
    user_agent: str = "breeze/0.1 (+weather client)"


class HttpGateway:
    """Base class that adds timeouts and error mapping for HTTP gateways.

    Subclasses choose which :class:`GatewayError` subclasses they raise by
    overriding the ``*_error`` class attributes. Requests are never retried.
    """

    transport_error: Type[GatewayError] = GatewayError
    decode_error: Type[GatewayError] = GatewayError
    invalid_request_error: Type[GatewayError] = GatewayError

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or self._build_session(self.request_config)
        self._log = logging.getLogger(self.__class__.__name__)

    def _build_session(self, config: RequestConfig) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": config.user_agent})
        return session

    def _handle_response(self, response: Response) -> Response:
        if response.status_code >= 400:
            self._log.error("Provider returned %s: %s", response.status_code, response.text[:200])
            raise self.transport_error(f"HTTP {response.status_code}")
        return response

    def _request(self, method: str, url: str, **kwargs) -> Response:
        try:
            response = self.session.request(
                method,
                url,
                timeout=self.request_config.timeout,
                **kwargs,
            )
        except (requests.exceptions.MissingSchema, requests.exceptions.InvalidSchema, requests.exceptions.InvalidURL) as exc:
            self._log.error("Invalid request for %s", url, exc_info=exc)
            raise self.invalid_request_error("invalid request") from exc
        except requests.Timeout as exc:
            self._log.error("Request timed out", exc_info=exc)
            raise self.transport_error("timeout") from exc
        except requests.RequestException as exc:
            self._log.error("Request failed", exc_info=exc)
            raise self.transport_error("request failed") from exc
        return self._handle_response(response)

    def _json(self, response: Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            self._log.error("Failed to decode JSON", exc_info=exc)
            raise self.decode_error("invalid json") from exc


__all__ = [
    "GatewayError",
    "LocationError",
    "PermissionDenied",
    "LocationUnavailable",
    "GeocodeError",
    "GeocodeNotFound",
    "GeocodeProviderError",
    "SearchProviderError",
    "SearchDecodeError",
    "WeatherError",
    "WeatherInvalidRequest",
    "WeatherTransportError",
    "WeatherDecodeError",
    "RequestConfig",
    "HttpGateway",
]
