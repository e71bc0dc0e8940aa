from __future__ import annotations

import asyncio
import threading
from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from breeze.entities import (
    SENTINEL_CITY,
    AuthorizationState,
    CityRef,
    Coordinates,
    FlowPhase,
    WeatherSnapshot,
)
from breeze.gradient import Palette
from breeze.location import LocationSource, PositionUpdated, StaticLocationBackend
from breeze.providers.base import GeocodeProviderError, WeatherTransportError
from breeze.providers.geonames import GeoNamesGateway
from breeze.providers.openweather import OpenWeatherGateway
from breeze.services.orchestrator import (
    CITY_NOT_FOUND_MESSAGE,
    DENIED_MESSAGE,
    WeatherOrchestrator,
)

from conftest import GEONAMES_URL, OWM_URL, make_snapshot, owm_payload


LONDON = Coordinates(51.5, -0.12)


class StubGeocoder:
    def __init__(self, city: Optional[CityRef] = None, error: Optional[Exception] = None) -> None:
        self.city = city
        self.error = error
        self.gate: Optional[threading.Event] = None
        self.calls: List[Coordinates] = []

    def reverse_geocode(self, coordinates: Coordinates) -> CityRef:
        self.calls.append(coordinates)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        assert self.city is not None
        return self.city


class StubWeather:
    def __init__(self, snapshot: Optional[WeatherSnapshot] = None, error: Optional[Exception] = None) -> None:
        self.snapshot = snapshot or make_snapshot()
        self.error = error
        self.gates: Dict[str, threading.Event] = {}
        self.snapshots: Dict[str, WeatherSnapshot] = {}
        self.calls: List[str] = []

    def fetch_current(self, city_name: str) -> WeatherSnapshot:
        self.calls.append(city_name)
        gate = self.gates.get(city_name)
        if gate is not None:
            gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.snapshots.get(city_name, self.snapshot)


def make_orchestrator(backend, geocoder, weather, config) -> WeatherOrchestrator:
    return WeatherOrchestrator(
        location_source=LocationSource(backend),
        geocoder=geocoder,
        weather=weather,
        config=config,
    )


def manual_backend() -> StaticLocationBackend:
    return StaticLocationBackend(status=AuthorizationState.UNDETERMINED)


async def wait_for_phase(orchestrator: WeatherOrchestrator, phase: FlowPhase) -> None:
    for _ in range(500):
        if orchestrator.state.phase is phase:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"phase {phase} never reached, state={orchestrator.state}")


async def drain(orchestrator: WeatherOrchestrator) -> None:
    await asyncio.gather(*list(orchestrator._tasks), return_exceptions=True)


@pytest.mark.asyncio
async def test_location_to_weather_end_to_end(requests_mock, config):
    requests_mock.get(f"{GEONAMES_URL}/findNearbyPlaceNameJSON", json={"geonames": [{"name": "London"}]})
    requests_mock.get(OWM_URL, json=owm_payload())
    orchestrator = make_orchestrator(
        StaticLocationBackend(LONDON),
        GeoNamesGateway(username=config.geonames_username, base_url=GEONAMES_URL),
        OpenWeatherGateway(api_key=config.openweather_api_key, base_url=OWM_URL),
        config,
    )
    phases: List[FlowPhase] = []
    orchestrator.subscribe(lambda state: phases.append(state.phase))

    await orchestrator.start()
    state = await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    await orchestrator.stop()

    assert state.city_name == "London"
    assert state.weather is not None
    assert state.weather.temperature_c == 17
    assert state.weather.feels_like_c == 16
    assert state.weather.description == "Light Rain"
    assert state.is_loading is False
    assert state.weather_error is None
    assert state.location_error is None
    assert state.palette is Palette.WARM1
    assert state.phase is FlowPhase.READY
    resolving = phases.index(FlowPhase.RESOLVING_CITY)
    fetching = phases.index(FlowPhase.FETCHING_WEATHER)
    assert resolving < fetching < phases.index(FlowPhase.READY)


@pytest.mark.asyncio
async def test_denied_before_any_fix(config):
    geocoder = StubGeocoder(CityRef("London"))
    weather = StubWeather()
    orchestrator = make_orchestrator(
        StaticLocationBackend(LONDON, status=AuthorizationState.DENIED), geocoder, weather, config
    )

    await orchestrator.start()
    state = await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    await orchestrator.stop()

    assert state.location_error == DENIED_MESSAGE
    assert state.location_error.startswith("Location access denied")
    assert state.city_name == SENTINEL_CITY
    assert state.phase is FlowPhase.LOCATION_ERROR
    assert geocoder.calls == []
    assert weather.calls == []


@pytest.mark.asyncio
async def test_platform_location_failure_message(config):
    weather = StubWeather()
    orchestrator = make_orchestrator(
        StaticLocationBackend(None, error="no satellites"), StubGeocoder(), weather, config
    )

    await orchestrator.start()
    state = await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    await orchestrator.stop()

    assert state.location_error == "Failed to fetch location: no satellites"
    assert weather.calls == []


@pytest.mark.asyncio
async def test_no_placemark_leaves_city_unchanged(requests_mock, config):
    requests_mock.get(f"{GEONAMES_URL}/findNearbyPlaceNameJSON", json={"geonames": []})
    weather = StubWeather()
    orchestrator = make_orchestrator(
        StaticLocationBackend(Coordinates(0.0, -160.0)),
        GeoNamesGateway(username="demo", base_url=GEONAMES_URL),
        weather,
        config,
    )

    await orchestrator.start()
    state = await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    await orchestrator.stop()

    assert state.location_error == CITY_NOT_FOUND_MESSAGE
    assert state.city_name == SENTINEL_CITY
    assert state.phase is FlowPhase.LOCATION_ERROR
    assert weather.calls == []


@pytest.mark.asyncio
async def test_geocode_provider_failure_message(config):
    geocoder = StubGeocoder(error=GeocodeProviderError("HTTP 503"))
    orchestrator = make_orchestrator(StaticLocationBackend(LONDON), geocoder, StubWeather(), config)

    await orchestrator.start()
    state = await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    await orchestrator.stop()

    assert state.location_error == "Failed to fetch city: HTTP 503"


@pytest.mark.asyncio
async def test_refresh_before_location_is_ignored(config):
    weather = StubWeather()
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), weather, config)
    await orchestrator.start()

    await orchestrator.refresh()
    await orchestrator.stop()

    assert weather.calls == []
    assert orchestrator.state.is_loading is False
    assert orchestrator.state.phase is FlowPhase.AWAITING_LOCATION


@pytest.mark.asyncio
async def test_refresh_while_in_flight_is_a_noop(config):
    weather = StubWeather()
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), weather, config)
    await orchestrator.start()
    await orchestrator.select_city(CityRef("Paris", "France"))
    gate = weather.gates["Paris"] = threading.Event()

    first = asyncio.create_task(orchestrator.refresh())
    await asyncio.sleep(0)
    assert orchestrator.state.is_loading is True
    await orchestrator.refresh()

    gate.set()
    await first
    await orchestrator.stop()

    assert weather.calls == ["Paris", "Paris"]
    assert orchestrator.state.is_loading is False
    assert orchestrator.state.phase is FlowPhase.READY


@pytest.mark.asyncio
async def test_select_city_clears_location_error(config):
    weather = StubWeather(make_snapshot(3))
    orchestrator = make_orchestrator(
        StaticLocationBackend(LONDON, status=AuthorizationState.DENIED), StubGeocoder(), weather, config
    )
    await orchestrator.start()
    await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    assert orchestrator.state.location_error == DENIED_MESSAGE

    await orchestrator.select_city(CityRef("Oslo", "Norway"))
    await orchestrator.stop()

    state = orchestrator.state
    assert state.location_error is None
    assert state.city_name == "Oslo"
    assert weather.calls == ["Oslo"]
    assert state.palette is Palette.COLD2
    assert state.phase is FlowPhase.READY


@pytest.mark.asyncio
async def test_weather_failure_is_soft(config):
    weather = StubWeather(error=WeatherTransportError("HTTP 401"))
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), weather, config)
    await orchestrator.start()

    await orchestrator.select_city(CityRef("London"))
    state = orchestrator.state
    assert state.weather is None
    assert state.weather_error == "Failed to fetch weather: HTTP 401"
    assert state.is_loading is False
    assert state.city_name == "London"
    assert state.phase is FlowPhase.WEATHER_ERROR

    weather.error = None
    await orchestrator.refresh()
    await orchestrator.stop()

    assert state.weather_error is None
    assert state.weather == weather.snapshot
    assert state.phase is FlowPhase.READY


@pytest.mark.asyncio
async def test_weather_failure_clears_previous_snapshot(config):
    weather = StubWeather()
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), weather, config)
    await orchestrator.start()
    await orchestrator.select_city(CityRef("London"))
    assert orchestrator.state.weather is not None

    weather.error = WeatherTransportError("timeout")
    await orchestrator.refresh()
    await orchestrator.stop()

    assert orchestrator.state.weather is None
    assert orchestrator.state.weather_error is not None


@pytest.mark.asyncio
async def test_stale_weather_result_is_discarded(config):
    weather = StubWeather()
    weather.snapshots = {"Slow": make_snapshot(2, "Snow"), "Fast": make_snapshot(31, "Clear Sky")}
    slow_gate = weather.gates["Slow"] = threading.Event()
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), weather, config)
    await orchestrator.start()

    slow = asyncio.create_task(orchestrator.select_city(CityRef("Slow")))
    await asyncio.sleep(0)
    await orchestrator.select_city(CityRef("Fast"))
    slow_gate.set()
    await slow
    await orchestrator.stop()

    state = orchestrator.state
    assert sorted(weather.calls) == ["Fast", "Slow"]
    assert state.city_name == "Fast"
    assert state.weather.description == "Clear Sky"
    assert state.palette is Palette.HOT
    assert state.is_loading is False


@pytest.mark.asyncio
async def test_hung_fetch_times_out(config):
    weather = StubWeather()
    gate = weather.gates["Nowhere"] = threading.Event()
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), weather, replace(config, fetch_timeout=0.05))
    await orchestrator.start()

    try:
        await orchestrator.select_city(CityRef("Nowhere"))
    finally:
        gate.set()
    await orchestrator.stop()

    assert orchestrator.state.is_loading is False
    assert orchestrator.state.weather_error == "Failed to fetch weather: timed out"
    assert orchestrator.state.phase is FlowPhase.WEATHER_ERROR


@pytest.mark.asyncio
async def test_location_failure_supersedes_resolution(config):
    geocoder = StubGeocoder(CityRef("London"))
    geocoder.gate = threading.Event()
    weather = StubWeather()
    backend = StaticLocationBackend(LONDON)
    orchestrator = make_orchestrator(backend, geocoder, weather, config)

    await orchestrator.start()
    await wait_for_phase(orchestrator, FlowPhase.RESOLVING_CITY)
    orchestrator.location_source.on_error("signal lost")
    await wait_for_phase(orchestrator, FlowPhase.LOCATION_ERROR)
    geocoder.gate.set()
    await drain(orchestrator)
    await orchestrator.stop()

    assert orchestrator.state.location_error == "Failed to fetch location: signal lost"
    assert orchestrator.state.city_name == SENTINEL_CITY
    assert weather.calls == []


@pytest.mark.asyncio
async def test_manual_city_wins_over_pending_resolution(config):
    geocoder = StubGeocoder(CityRef("London"))
    geocoder.gate = threading.Event()
    weather = StubWeather()
    orchestrator = make_orchestrator(StaticLocationBackend(LONDON), geocoder, weather, config)

    await orchestrator.start()
    await wait_for_phase(orchestrator, FlowPhase.RESOLVING_CITY)
    await orchestrator.select_city(CityRef("Madrid", "Spain"))
    geocoder.gate.set()
    await drain(orchestrator)
    await orchestrator.stop()

    assert orchestrator.state.city_name == "Madrid"
    assert weather.calls == ["Madrid"]


@pytest.mark.asyncio
async def test_failure_queued_behind_fix_stays_an_error(config):
    geocoder = StubGeocoder(CityRef("London"))
    weather = StubWeather()
    orchestrator = make_orchestrator(StaticLocationBackend(LONDON), geocoder, weather, config)

    await orchestrator.start()
    # Both events are queued before the pump gets to run.
    orchestrator.location_source.on_error("signal lost")
    state = await asyncio.wait_for(orchestrator.wait_settled(), timeout=5)
    await drain(orchestrator)
    await orchestrator.stop()

    assert state.phase is FlowPhase.LOCATION_ERROR
    assert state.location_error == "Failed to fetch location: signal lost"
    assert state.city_name == SENTINEL_CITY
    assert geocoder.calls == []
    assert weather.calls == []


@pytest.mark.asyncio
async def test_manual_city_before_resolution_starts(config):
    geocoder = StubGeocoder(CityRef("London"))
    weather = StubWeather()
    orchestrator = make_orchestrator(manual_backend(), geocoder, weather, config)

    await orchestrator.start()
    orchestrator._handle_location_event(PositionUpdated(LONDON))
    await orchestrator.select_city(CityRef("Madrid", "Spain"))
    await drain(orchestrator)
    await orchestrator.stop()

    assert geocoder.calls == []
    assert orchestrator.state.phase is FlowPhase.READY
    assert orchestrator.state.city_name == "Madrid"
    assert weather.calls == ["Madrid"]


@pytest.mark.asyncio
async def test_request_authorization_is_forwarded(config):
    backend = manual_backend()
    orchestrator = make_orchestrator(backend, StubGeocoder(), StubWeather(), config)
    await orchestrator.start()

    orchestrator.request_authorization()
    await orchestrator.stop()

    assert backend.authorization_requests == 2


@pytest.mark.asyncio
async def test_listeners_see_every_mutation(config):
    orchestrator = make_orchestrator(manual_backend(), StubGeocoder(), StubWeather(), config)
    seen: List[tuple] = []
    unsubscribe = orchestrator.subscribe(lambda state: seen.append((state.city_name, state.is_loading)))
    await orchestrator.start()

    await orchestrator.select_city(CityRef("Rome"))
    unsubscribe()
    await orchestrator.refresh()
    await orchestrator.stop()

    assert seen == [
        (SENTINEL_CITY, False),
        ("Rome", False),
        ("Rome", True),
        ("Rome", False),
    ]
