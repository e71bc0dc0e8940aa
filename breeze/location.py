"""Device location: authorization handling and single-shot position fixes.

A :class:`LocationSource` sits between a platform :class:`LocationBackend` and
its subscribers. Backends report what the platform tells them by calling the
source's ``on_*`` callbacks, from any thread. The source turns those reports
into typed events:

* :class:`AuthorizationChanged` for every authorization change,
* :class:`PositionUpdated` for the first fix after updates start,
* :class:`LocationFailed` for denials and platform errors.

Failures are terminal for the current request. Nothing is retried until
:meth:`LocationSource.request_authorization` is called again.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .entities import AuthorizationState, Coordinates
from .providers.base import LocationError, LocationUnavailable, PermissionDenied


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationChanged:
    state: AuthorizationState


@dataclass(frozen=True)
class PositionUpdated:
    coordinates: Coordinates


@dataclass(frozen=True)
class LocationFailed:
    error: LocationError

    @property
    def reason(self) -> str:
        return str(self.error)


LocationEvent = Union[AuthorizationChanged, PositionUpdated, LocationFailed]
LocationListener = Callable[[LocationEvent], None]


class LocationBackend:
    """Platform side of a location source.

    Implementations prompt for permission and produce fixes, then report back
    through the ``on_*`` methods of :attr:`delegate`.
    """

    delegate: Optional["LocationSource"] = None

    def bind(self, delegate: "LocationSource") -> None:
        self.delegate = delegate

    @property
    def authorization_status(self) -> AuthorizationState:
        raise NotImplementedError

    def request_authorization(self) -> None:
        raise NotImplementedError

    def start_updates(self) -> None:
        raise NotImplementedError

    def stop_updates(self) -> None:
        raise NotImplementedError


class LocationSource:
    def __init__(self, backend: LocationBackend) -> None:
        self.backend = backend
        self.backend.bind(self)
        self._listeners: List[LocationListener] = []
        self._updating = False
        self._lock = threading.Lock()

    def subscribe(self, listener: LocationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def request_authorization(self) -> None:
        self.backend.request_authorization()

    # Backend callbacks --------------------------------------------------
    def on_authorization_changed(self, state: AuthorizationState) -> None:
        logger.debug("Location authorization changed to %s", state.value)
        self._emit(AuthorizationChanged(state))
        if state is AuthorizationState.UNDETERMINED:
            self.backend.request_authorization()
        elif state.is_denied:
            self._emit(LocationFailed(PermissionDenied()))
        elif state is AuthorizationState.AUTHORIZED:
            with self._lock:
                self._updating = True
            self.backend.start_updates()

    def on_position(self, coordinates: Coordinates) -> None:
        with self._lock:
            if not self._updating:
                logger.debug("Ignoring fix received while updates are stopped")
                return
            self._updating = False
        self.backend.stop_updates()
        self._emit(PositionUpdated(coordinates))

    def on_error(self, reason: str) -> None:
        with self._lock:
            self._updating = False
        if self.backend.authorization_status.is_denied:
            error: LocationError = PermissionDenied()
        else:
            error = LocationUnavailable(reason)
        logger.warning("Location failed: %s", error)
        self._emit(LocationFailed(error))

    def _emit(self, event: LocationEvent) -> None:
        for listener in list(self._listeners):
            listener(event)


class StaticLocationBackend(LocationBackend):
    """Backend with a fixed position, for manual coordinates and tests.

    Without coordinates the backend reports ``error`` (or a generic message)
    once updates start.
    """

    def __init__(
        self,
        coordinates: Optional[Coordinates] = None,
        status: AuthorizationState = AuthorizationState.AUTHORIZED,
        error: Optional[str] = None,
    ) -> None:
        self.coordinates = coordinates
        self.status = status
        self.error = error
        self.authorization_requests = 0
        self.updating = False

    @property
    def authorization_status(self) -> AuthorizationState:
        return self.status

    def request_authorization(self) -> None:
        self.authorization_requests += 1
        if self.status is not AuthorizationState.UNDETERMINED and self.delegate is not None:
            self.delegate.on_authorization_changed(self.status)

    def start_updates(self) -> None:
        self.updating = True
        if self.delegate is None:
            return
        if self.coordinates is None:
            self.delegate.on_error(self.error or "position unavailable")
        else:
            self.delegate.on_position(self.coordinates)

    def stop_updates(self) -> None:
        self.updating = False


__all__ = [
    "AuthorizationChanged",
    "PositionUpdated",
    "LocationFailed",
    "LocationEvent",
    "LocationBackend",
    "LocationSource",
    "StaticLocationBackend",
]
