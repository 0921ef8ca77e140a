"""Adapter to an external OSRM-compatible walking-directions service."""

import logging
from typing import List, Optional, Sequence, Union

import requests

from . import settings
from .errors import OutdoorRouteFailure, UnresolvedEntity
from .failover import first_success
from .geo import LngLat, as_lnglat
from .graph_loader import BuildingEntry
from .schemas import OutdoorSegment

log = logging.getLogger(__name__)

Place = Union[LngLat, str]


class OutdoorRouter:
    def __init__(
        self,
        buildings: Optional[List[BuildingEntry]] = None,
        base_urls: Optional[Sequence[str]] = None,
        timeout_s: float = settings.OUTDOOR_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        self.buildings = list(buildings or [])
        self.base_urls = list(base_urls or settings.OSRM_BASE_URLS)
        self.timeout_s = timeout_s
        # None: plain requests.get per call, no session shared between API threads
        self.session = session

    def _request(self, base: str, a: LngLat, b: LngLat) -> List[LngLat]:
        url = f"{base.rstrip('/')}/route/v1/foot/{a[0]},{a[1]};{b[0]},{b[1]}"
        http = self.session or requests
        r = http.get(url, params={"overview": "full", "geometries": "geojson"}, timeout=self.timeout_s)
        r.raise_for_status()
        body = r.json()
        if not isinstance(body, dict):
            raise ValueError("provider returned a non-object JSON body")
        if body.get("code", "Ok") != "Ok":
            raise ValueError(f"provider returned code {body.get('code')}: {body.get('message', '')}")
        routes = body.get("routes") or []
        coords = (routes[0].get("geometry") or {}).get("coordinates") if routes else None
        if not coords:
            raise ValueError("provider returned an empty route geometry")
        return [as_lnglat(c) for c in coords]

    def walking_route(self, a: LngLat, b: LngLat) -> OutdoorSegment:
        """One pedestrian polyline from `a` to `b`.

        Raises OutdoorRouteFailure when no provider yields a route; a
        timeout counts as a failure of that provider.
        """
        line = first_success(
            self.base_urls,
            lambda base: self._request(base, a, b),
            dataset=f"walking route {a} -> {b}",
            retry_on=(requests.RequestException, ValueError),
            failure=OutdoorRouteFailure,
        )
        return OutdoorSegment(line=line)

    def resolve_building(self, name: str) -> BuildingEntry:
        q = name.strip().lower()
        for b in self.buildings:
            if b.name.lower() == q:
                return b
        for b in self.buildings:
            if b.ref and b.ref.lower() == q:
                return b
        raise UnresolvedEntity("building", name, f"Unknown building: {name}")

    def _to_point(self, place: Place) -> LngLat:
        if isinstance(place, str):
            return self.resolve_building(place).center
        return as_lnglat(place)

    def route_outdoor_to_outdoor(self, a: Place, b: Place) -> List[OutdoorSegment]:
        start = self._to_point(a)
        end = self._to_point(b)
        return [self.walking_route(start, end)]
