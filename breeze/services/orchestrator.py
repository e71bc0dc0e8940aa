from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Set

from ..config import BreezeConfig
from ..entities import CityRef, Coordinates, FlowPhase, OrchestratorState, SENTINEL_CITY
from ..gradient import select_palette
from ..location import (
    AuthorizationChanged,
    LocationEvent,
    LocationFailed,
    LocationSource,
    PositionUpdated,
)
from ..providers.base import GatewayError, GeocodeNotFound, LocationError, PermissionDenied


DENIED_MESSAGE = "Location access denied. Please enable location permissions in settings."
CITY_NOT_FOUND_MESSAGE = "City not found"

StateListener = Callable[[OrchestratorState], None]

_SETTLED_PHASES = (FlowPhase.READY, FlowPhase.LOCATION_ERROR, FlowPhase.WEATHER_ERROR)


class WeatherOrchestrator:
    """Drives location -> city -> weather and owns the resulting view state.

    All state changes happen on the event loop that called :meth:`start`.
    Location events may arrive from any thread; they are queued onto the loop
    and applied one at a time. Commands (:meth:`select_city`, :meth:`refresh`)
    are coroutines and must run on the same loop.

    Every weather fetch and every city resolution is stamped with a
    generation number. A result whose generation is no longer current is
    dropped, so a slow response can not overwrite a newer one.
    """

    def __init__(
        self,
        *,
        location_source: LocationSource,
        geocoder: Any,
        weather: Any,
        config: Optional[BreezeConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.location_source = location_source
        self.geocoder = geocoder
        self.weather = weather
        self.config = config or BreezeConfig()
        self.state = OrchestratorState()
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._listeners: List[StateListener] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional["asyncio.Queue[LocationEvent]"] = None
        self._pump: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._settled: Optional[asyncio.Event] = None
        self._location_generation = 0
        self._weather_generation = 0

    # Public API ---------------------------------------------------------
    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._settled = asyncio.Event()
        self._update(city_name=SENTINEL_CITY, phase=FlowPhase.AWAITING_LOCATION)
        self._unsubscribe = self.location_source.subscribe(self._on_location_event)
        self._pump = self._loop.create_task(self._pump_events())
        self.request_authorization()

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pending = list(self._tasks)
        if self._pump is not None:
            pending.append(self._pump)
            self._pump = None
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def request_authorization(self) -> None:
        self.location_source.request_authorization()

    async def select_city(self, city: CityRef) -> None:
        # A manual choice wins over any reverse geocode still in flight.
        self._location_generation += 1
        self._update(city_name=city.name, location_error=None)
        await self._fetch_weather()

    async def refresh(self) -> None:
        if self.state.is_loading:
            self._log.debug("Refresh ignored, fetch for %s in flight", self.state.city_name)
            return
        await self._fetch_weather()

    async def wait_settled(self) -> OrchestratorState:
        """Wait until the flow reaches ``READY`` or an error phase."""
        if self._settled is None:
            raise RuntimeError("orchestrator not started")
        await self._settled.wait()
        return self.state

    # Location events ----------------------------------------------------
    def _on_location_event(self, event: LocationEvent) -> None:
        if self._loop is None or self._events is None:
            return
        self._loop.call_soon_threadsafe(self._events.put_nowait, event)

    async def _pump_events(self) -> None:
        assert self._events is not None
        while True:
            event = await self._events.get()
            self._handle_location_event(event)

    def _handle_location_event(self, event: LocationEvent) -> None:
        if isinstance(event, PositionUpdated):
            self._location_generation += 1
            self._update(phase=FlowPhase.RESOLVING_CITY)
            self._spawn(self._resolve_city(event.coordinates, self._location_generation))
        elif isinstance(event, LocationFailed):
            self._fail_location(event.error)
        elif isinstance(event, AuthorizationChanged):
            if event.state.is_denied:
                self._fail_location(PermissionDenied())
            else:
                self._log.debug("Location authorization is %s", event.state.value)

    def _fail_location(self, error: LocationError) -> None:
        self._location_generation += 1
        if isinstance(error, PermissionDenied):
            message = DENIED_MESSAGE
        else:
            message = f"Failed to fetch location: {error}"
        self._log.warning("Location error: %s", message)
        self._update(location_error=message, phase=FlowPhase.LOCATION_ERROR)

    async def _resolve_city(self, coordinates: Coordinates, generation: int) -> None:
        if generation != self._location_generation:
            self._log.info("Skipping superseded city resolution for %s", coordinates)
            return
        try:
            city = await asyncio.to_thread(self.geocoder.reverse_geocode, coordinates)
        except GeocodeNotFound as exc:
            self._log.warning("No city for %s: %s", coordinates, exc)
            if generation == self._location_generation:
                self._update(location_error=CITY_NOT_FOUND_MESSAGE, phase=FlowPhase.LOCATION_ERROR)
            return
        except GatewayError as exc:
            self._log.error("Reverse geocoding failed for %s: %s", coordinates, exc)
            if generation == self._location_generation:
                self._update(location_error=f"Failed to fetch city: {exc}", phase=FlowPhase.LOCATION_ERROR)
            return

        if generation != self._location_generation:
            self._log.info("Discarding stale city resolution %s", city.name)
            return
        self._update(city_name=city.name, location_error=None)
        await self._fetch_weather()

    # Weather ------------------------------------------------------------
    async def _fetch_weather(self) -> None:
        if not self.state.has_location:
            self._log.debug("Weather fetch skipped, no city resolved yet")
            return
        self._weather_generation += 1
        generation = self._weather_generation
        city_name = self.state.city_name
        self._update(is_loading=True, phase=FlowPhase.FETCHING_WEATHER)

        try:
            snapshot = await asyncio.wait_for(
                asyncio.to_thread(self.weather.fetch_current, city_name),
                timeout=self.config.fetch_timeout,
            )
        except asyncio.TimeoutError:
            self._log.error("Weather fetch for %s timed out", city_name)
            self._finish_failed_fetch(generation, "Failed to fetch weather: timed out")
            return
        except GatewayError as exc:
            self._log.error("Weather fetch for %s failed: %s", city_name, exc)
            self._finish_failed_fetch(generation, f"Failed to fetch weather: {exc}")
            return

        if generation != self._weather_generation:
            self._log.info("Discarding stale weather for %s", city_name)
            return
        self._update(
            weather=snapshot,
            weather_error=None,
            palette=select_palette(snapshot.temperature_c),
            is_loading=False,
            phase=FlowPhase.READY,
        )

    def _finish_failed_fetch(self, generation: int, message: str) -> None:
        if generation != self._weather_generation:
            self._log.info("Discarding stale weather error: %s", message)
            return
        self._update(
            weather=None,
            weather_error=message,
            is_loading=False,
            phase=FlowPhase.WEATHER_ERROR,
        )

    # Helpers ------------------------------------------------------------
    def _update(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self.state, name, value)
        self._log.debug("State %s: %s", self.state.phase.value, changes)
        if self._settled is not None:
            if self.state.phase in _SETTLED_PHASES and not self.state.is_loading:
                self._settled.set()
            else:
                self._settled.clear()
        for listener in list(self._listeners):
            listener(self.state)

    def _spawn(self, coro) -> asyncio.Task:
        assert self._loop is not None
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("Background task failed", exc_info=exc)


__all__ = ["WeatherOrchestrator", "DENIED_MESSAGE", "CITY_NOT_FOUND_MESSAGE"]
