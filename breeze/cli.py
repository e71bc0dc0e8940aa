"""Command line access to the weather client."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Sequence

from .config import BreezeConfig
from .display import WeatherDisplay
from .entities import AuthorizationState, CityRef, Coordinates
from .location import LocationBackend, LocationSource, StaticLocationBackend
from .providers.base import RequestConfig
from .providers.geonames import GeoNamesGateway
from .providers.ipapi import IpApiLocationBackend
from .providers.openweather import OpenWeatherGateway
from .services.orchestrator import WeatherOrchestrator
from .services.search import CitySearch


class CommandError(Exception):
    """Raised for invalid invocations or unusable results."""


def build_orchestrator(config: BreezeConfig, backend: LocationBackend) -> WeatherOrchestrator:
    request_config = RequestConfig(timeout=config.request_timeout)
    geocoder = GeoNamesGateway(
        username=config.geonames_username,
        base_url=config.geonames_url,
        request_config=request_config,
    )
    weather = OpenWeatherGateway(
        api_key=config.openweather_api_key,
        base_url=config.openweather_url,
        request_config=request_config,
    )
    return WeatherOrchestrator(
        location_source=LocationSource(backend),
        geocoder=geocoder,
        weather=weather,
        config=config,
    )


def _location_backend(args: argparse.Namespace, config: BreezeConfig) -> LocationBackend:
    if args.city:
        # Manual city: location is never consulted.
        return StaticLocationBackend(status=AuthorizationState.UNDETERMINED)
    if args.lat is not None:
        return StaticLocationBackend(Coordinates(latitude=args.lat, longitude=args.lon))
    return IpApiLocationBackend(
        consent=config.location_consent,
        base_url=config.ipapi_url,
        request_config=RequestConfig(timeout=config.request_timeout),
    )


async def run_current(args: argparse.Namespace, config: BreezeConfig) -> WeatherDisplay:
    orchestrator = build_orchestrator(config, _location_backend(args, config))
    await orchestrator.start()
    try:
        if args.city:
            await orchestrator.select_city(CityRef(name=args.city))
        else:
            deadline = config.fetch_timeout + 2 * config.request_timeout
            try:
                await asyncio.wait_for(orchestrator.wait_settled(), timeout=deadline)
            except asyncio.TimeoutError as exc:
                raise CommandError("Timed out waiting for location") from exc
    finally:
        await orchestrator.stop()
    return WeatherDisplay.from_state(orchestrator.state)


async def run_search(args: argparse.Namespace, config: BreezeConfig) -> List[CityRef]:
    geocoder = GeoNamesGateway(
        username=config.geonames_username,
        base_url=config.geonames_url,
        request_config=RequestConfig(timeout=config.request_timeout),
    )
    search = CitySearch(
        geocoder,
        min_query_length=config.min_query_length,
        max_results=config.search_max_rows if args.max_rows is None else args.max_rows,
    )
    if len(args.query) < search.min_query_length:
        raise CommandError(f"Query must be at least {search.min_query_length} characters")
    cities = await search.update_query(args.query)
    if search.state.error_message:
        raise CommandError(search.state.error_message)
    return cities


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="breeze", description="Current weather for your location")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    current = commands.add_parser("current", help="Show current weather")
    current.add_argument("--city", type=str, help="City name, skips location lookup")
    current.add_argument("--lat", type=float, help="Latitude")
    current.add_argument("--lon", type=float, help="Longitude")

    search = commands.add_parser("search", help="Suggest cities by name prefix")
    search.add_argument("query", type=str)
    search.add_argument("--max-rows", type=int, default=None, help="Maximum number of suggestions")
    return parser


def main(argv: Optional[Sequence[str]] = None, config: Optional[BreezeConfig] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "current" and (args.lat is None) != (args.lon is None):
        parser.error("--lat and --lon must be given together")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = config or BreezeConfig.from_env()

    try:
        if args.command == "current":
            display = asyncio.run(run_current(args, config))
            sys.stdout.write(json.dumps(display.as_dict(), ensure_ascii=False) + "\n")
            return 1 if display.is_error else 0
        cities = asyncio.run(run_search(args, config))
    except CommandError as exc:
        sys.stderr.write(f"breeze: {exc}\n")
        return 1
    payload = [{"name": city.name, "country": city.country} for city in cities]
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    return 0


__all__ = ["main", "build_parser", "build_orchestrator", "CommandError"]
