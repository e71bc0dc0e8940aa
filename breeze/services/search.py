from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..entities import CityRef
from ..providers.base import GatewayError, SearchDecodeError
from .orchestrator import WeatherOrchestrator


@dataclass
class SearchState:
    query: str = ""
    cities: List[CityRef] = field(default_factory=list)
    is_loading: bool = False
    error_message: Optional[str] = None


class CitySearch:
    """Incremental city lookup feeding :meth:`WeatherOrchestrator.select_city`.

    Queries shorter than ``min_query_length`` never reach the provider. Only
    the response to the latest query is kept.
    """

    def __init__(
        self,
        geocoder: Any,
        orchestrator: Optional[WeatherOrchestrator] = None,
        *,
        min_query_length: int = 3,
        max_results: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.geocoder = geocoder
        self.orchestrator = orchestrator
        self.min_query_length = min_query_length
        self.max_results = max_results
        self.state = SearchState()
        self._generation = 0
        self._log = logger or logging.getLogger(self.__class__.__name__)

    @classmethod
    def for_orchestrator(cls, orchestrator: WeatherOrchestrator) -> "CitySearch":
        config = orchestrator.config
        return cls(
            orchestrator.geocoder,
            orchestrator,
            min_query_length=config.min_query_length,
            max_results=config.search_max_rows,
        )

    async def update_query(self, query: str) -> List[CityRef]:
        self._generation += 1
        generation = self._generation
        self.state.query = query
        if len(query) < self.min_query_length:
            self.state.cities = []
            self.state.is_loading = False
            self.state.error_message = None
            return []

        self.state.is_loading = True
        self.state.error_message = None
        try:
            cities = await asyncio.to_thread(self.geocoder.search_cities, query, self.max_results)
        except GatewayError as exc:
            if generation != self._generation:
                return self.state.cities
            self._log.error("City search for %r failed: %s", query, exc)
            self.state.is_loading = False
            self.state.cities = []
            if isinstance(exc, SearchDecodeError):
                self.state.error_message = "Failed to decode response."
            else:
                self.state.error_message = f"Error: {exc}"
            return []

        if generation != self._generation:
            self._log.debug("Dropping results for superseded query %r", query)
            return self.state.cities
        self.state.is_loading = False
        self.state.cities = list(cities)
        return self.state.cities

    async def select(self, city: CityRef) -> None:
        if self.orchestrator is None:
            raise RuntimeError("no orchestrator attached")
        self.state.query = ""
        self.state.cities = []
        await self.orchestrator.select_city(city)


__all__ = ["CitySearch", "SearchState"]
