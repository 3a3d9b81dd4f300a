"""Pickup point list, search and selection for the destination country."""

import logging
from typing import Optional, Protocol

from .models import PickupPoint
from .shipping import is_carrier_served

logger = logging.getLogger(__name__)


class PickupPointFetcher(Protocol):
    async def fetch_pickup_points(self, country: str) -> list[PickupPoint]: ...


class PickupPointSelector:
    """
    Tracks the pickup points for the current destination and the customer's choice.

    Responses for a country the customer has already moved away from are
    discarded using a request generation counter.
    """

    def __init__(self, fetcher: PickupPointFetcher) -> None:
        self.fetcher = fetcher
        self.country: Optional[str] = None
        self.points: list[PickupPoint] = []
        self.loading = False
        self.search_query = ""
        self.selected: Optional[PickupPoint] = None
        self._generation = 0

    async def set_country(self, country: str) -> None:
        """Switch destination country; fetches points when the carrier serves it."""
        country = (country or "").strip().upper()
        if country == self.country:
            return

        self.country = country
        self.points = []
        self.selected = None
        self.search_query = ""
        self._generation += 1
        generation = self._generation

        if not is_carrier_served(country):
            self.loading = False
            return

        self.loading = True
        points: list[PickupPoint] = []
        try:
            points = await self.fetcher.fetch_pickup_points(country)
        except Exception as e:
            logger.error(f"Failed to fetch pickup points for {country}: {e}")
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation:
            logger.info(f"Discarding stale pickup points for {country}")
            return

        self.points = points

    async def reload(self) -> None:
        """Fetch the list again for the current country, e.g. after a failure."""
        country = self.country
        selected = self.selected
        self.country = None
        await self.set_country(country or "")
        if selected is not None and self.country == selected.country:
            self.selected = selected

    @property
    def filtered_points(self) -> list[PickupPoint]:
        """Case-insensitive substring match on name, address, city and postal code."""
        query = self.search_query.strip().lower()
        if not query:
            return list(self.points)
        return [
            point
            for point in self.points
            if query in point.name.lower()
            or query in point.address.lower()
            or query in point.city.lower()
            or query in point.zip.lower()
        ]

    @property
    def grouped_by_city(self) -> dict[str, list[PickupPoint]]:
        """Filtered points grouped by city, cities in ascending order."""
        groups: dict[str, list[PickupPoint]] = {}
        for point in self.filtered_points:
            groups.setdefault(point.city or "Unknown", []).append(point)
        return {city: groups[city] for city in sorted(groups)}

    def search(self, query: str) -> list[PickupPoint]:
        self.search_query = query or ""
        return self.filtered_points

    def find(self, point_id: str) -> Optional[PickupPoint]:
        return next((p for p in self.points if p.id == str(point_id)), None)

    def select(self, point_id: str) -> PickupPoint:
        """Select a loaded point by id. Raises ValueError for unknown ids."""
        point = self.find(point_id)
        if point is None:
            raise ValueError(f"Unknown pickup point: {point_id}")
        self.selected = point
        self.search_query = ""
        return point

    def restore(self, point: PickupPoint) -> None:
        """Re-select a point from a saved checkout session."""
        if self.country and point.country.upper() != self.country:
            logger.warning(f"Ignoring saved pickup point {point.id} from {point.country}, destination is {self.country}")
            return
        self.selected = point

    def clear_selection(self) -> None:
        self.selected = None

    @property
    def can_satisfy_requirement(self) -> bool:
        """Whether a pickup point is selected or at least one can be chosen."""
        return self.selected is not None or bool(self.points)
