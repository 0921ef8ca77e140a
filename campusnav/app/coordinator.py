"""Stitches outdoor and indoor legs into one ordered list of route segments.

Every public method returns segments whose boundaries are continuous:
the last point of segment i equals the first point of segment i+1.
Errors from either router propagate unchanged; no fallback strategy is
attempted.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from .errors import OutdoorRouteFailure, UnresolvedEntity
from .geo import LngLat, as_lnglat
from .graph_loader import BuildingEntry, CampusGraph
from .outdoor import OutdoorRouter
from .routing import IndoorRouter
from .schemas import IndoorSegment, OutdoorSegment, RouteSegment

log = logging.getLogger(__name__)

ROMAN_RE = re.compile(r"^[IVXLCDM]+$")


def is_roman_numeral(value: str) -> bool:
    return bool(ROMAN_RE.match(value.strip()))


def building_label(name: str) -> str:
    # "II" -> "Building II", matching how numbered building polygons are named
    name = name.strip()
    return f"Building {name}" if is_roman_numeral(name) else name


def building_candidates(name: str) -> List[str]:
    """Names to try for a user-supplied building, raw form first."""
    name = name.strip()
    label = building_label(name)
    return [name] if label == name else [name, label]


def stitch(outdoor: Sequence[OutdoorSegment], indoor: Sequence[IndoorSegment]) -> List[RouteSegment]:
    """Outdoor segments followed by indoor segments, joined end to start."""
    segments: List[RouteSegment] = [s.model_copy(deep=True) for s in outdoor]
    if segments and indoor:
        tail = segments[-1]
        join = tuple(indoor[0].line[0])
        if not tail.line or tuple(tail.line[-1]) != join:
            tail.line.append(join)
    segments.extend(indoor)
    return segments


class RouterCoordinator:
    def __init__(self, campus: CampusGraph, outdoor: Optional[OutdoorRouter] = None):
        self.campus = campus
        self.graph = campus.graph
        self.indoor = IndoorRouter(campus.graph)
        self.outdoor = outdoor or OutdoorRouter(campus.buildings)

        self.rooms_by_building: Dict[str, Dict[str, str]] = {}
        for key, room in self.graph.rooms.items():
            if not room.building or not room.ref:
                continue
            self.rooms_by_building.setdefault(room.building, {})[room.ref] = key
        log.info("Room index covers %d buildings", len(self.rooms_by_building))

    def resolve_building(self, name: str) -> BuildingEntry:
        for candidate in building_candidates(name):
            try:
                return self.outdoor.resolve_building(candidate)
            except UnresolvedEntity:
                continue
        raise UnresolvedEntity("building", name, f"Unknown building: {name}")

    def room_key_for(self, building: str, ref: str) -> str:
        candidates = building_candidates(building)
        by_ref = next((self.rooms_by_building[c] for c in candidates if c in self.rooms_by_building), None)
        if by_ref is None:
            lowered = [c.lower() for c in candidates]
            by_ref = next((v for k, v in self.rooms_by_building.items() if k.lower() in lowered), None)
        if by_ref is None:
            raise UnresolvedEntity("building", building, f"Unknown building in indoor graph: {building}")
        key = by_ref.get(ref)
        if key is None:
            raise UnresolvedEntity("room", ref, f"Room {ref} not found in building {building}")
        return key

    def _last_point(self, segments: Sequence[OutdoorSegment], label: str) -> LngLat:
        if not segments or not segments[-1].line:
            raise OutdoorRouteFailure(f"outdoor route to {label}", ["route has no coordinates"])
        return as_lnglat(segments[-1].line[-1])

    def _enter(self, near: LngLat, room_key: str):
        # closest entrance that actually connects to the room
        return self.indoor.route_first_reachable(self.campus.entrances_by_distance(near), room_key)

    def route_gps_to_room(self, gps: LngLat, room_key: str) -> List[RouteSegment]:
        """GPS -> nearest usable entrance (outdoor) -> room (indoor)."""
        gps = as_lnglat(gps)
        entrance_id, indoor = self._enter(gps, room_key)
        outdoor = self.outdoor.walking_route(gps, self.graph.nodes[entrance_id].lnglat)
        return stitch([outdoor], indoor)

    def route_gps_to_building_room(self, gps: LngLat, building: str, room_ref: str) -> List[RouteSegment]:
        entry = self.resolve_building(building)
        outdoor = self.outdoor.route_outdoor_to_outdoor(as_lnglat(gps), entry.center)
        arrival = self._last_point(outdoor, entry.name)
        room_key = self.room_key_for(entry.name, room_ref)
        _, indoor = self._enter(arrival, room_key)
        return stitch(outdoor, indoor)

    def route_gps_to_building(self, gps: LngLat, building: str) -> List[RouteSegment]:
        entry = self.resolve_building(building)
        return list(self.outdoor.route_outdoor_to_outdoor(as_lnglat(gps), entry.center))

    def route_building_to_room(self, from_building: str, to_building: str, room_ref: str) -> List[RouteSegment]:
        origin = self.resolve_building(from_building)
        dest = self.resolve_building(to_building)
        log.info("Building to room: %s -> %s room %s", origin.name, dest.name, room_ref)

        room_key = self.room_key_for(dest.name, room_ref)
        if origin == dest:
            # already inside: enter at the usable entrance nearest the building centre
            _, indoor = self._enter(dest.center, room_key)
            return list(indoor)

        outdoor = self.outdoor.route_outdoor_to_outdoor(origin.center, dest.center)
        arrival = self._last_point(outdoor, dest.name)
        _, indoor = self._enter(arrival, room_key)
        return stitch(outdoor, indoor)

    def route_room_to_room(self, from_room_key: str, to_room_key: str) -> List[RouteSegment]:
        return list(self.indoor.route_room_to_room(from_room_key, to_room_key))

    def route_outdoor_to_outdoor(self, a: LngLat, b: LngLat) -> List[RouteSegment]:
        return [self.outdoor.walking_route(as_lnglat(a), as_lnglat(b))]
