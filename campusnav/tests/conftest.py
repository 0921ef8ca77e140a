"""Shared fixtures: a two-level toy campus and an offline outdoor router."""

import copy

import pytest

from campusnav.app.graph_loader import BuildingEntry, IndoorGraph, build_campus
from campusnav.app.outdoor import OutdoorRouter
from campusnav.app.schemas import OutdoorSegment

# Level 0: a (entrance) - b - e0 (elevator)      x (isolated)
# Level 1:                    e1 (elevator) - c - d
MINI_GRAPH = {
    "levels": ["0", "1", "2"],
    "nodes": {
        "0:a": {"lng": 0.0, "lat": 0.0, "level": "0", "tags": {"entrance": True}},
        "0:b": {"lng": 0.0001, "lat": 0.0, "level": "0"},
        "0:e": {"lng": 0.0002, "lat": 0.0, "level": "0", "tags": {"elevator": True}},
        "0:x": {"lng": 0.001, "lat": 0.001, "level": "0"},
        "1:e": {"lng": 0.0002, "lat": 0.0, "level": "1", "tags": {"elevator": True}},
        "1:c": {"lng": 0.0002, "lat": 0.0001, "level": "1"},
        "1:d": {"lng": 0.0003, "lat": 0.0001, "level": "1"},
    },
    "edges": [
        {"from": "0:a", "to": "0:b", "w": 11.1, "type": "corridor"},
        {"from": "0:b", "to": "0:a", "w": 11.1, "type": "corridor"},
        {"from": "0:b", "to": "0:e", "w": 11.1, "type": "corridor"},
        {"from": "0:e", "to": "0:b", "w": 11.1, "type": "corridor"},
        {"from": "0:e", "to": "1:e", "w": 6.0, "type": "elevator"},
        {"from": "1:e", "to": "0:e", "w": 6.0, "type": "elevator"},
        {"from": "1:e", "to": "1:c", "w": 11.1, "type": "corridor"},
        {"from": "1:c", "to": "1:e", "w": 11.1, "type": "corridor"},
        {"from": "1:c", "to": "1:d", "w": 11.1, "type": "corridor"},
        {"from": "1:d", "to": "1:c", "w": 11.1, "type": "corridor"},
    ],
    "rooms": {
        "R-A": {"node": "0:b", "level": "0", "center": [0.0001, 0.00002], "building": "Building II", "ref": "101"},
        "R-D": {"node": "1:d", "level": "1", "center": [0.0003, 0.00012], "building": "Building II", "ref": "128"},
        "R-X": {"node": "0:x", "level": "0", "center": [0.001, 0.001], "building": "Annex", "ref": "1"},
        "R-Z": {"node": None, "level": "2", "center": [0.0002, 0.0001], "building": "Building II", "ref": "200"},
    },
    "entrances": [{"node": "0:a", "level": "0"}],
}

BUILDINGS = [
    BuildingEntry(name="Building II", ref="2", center=(0.00015, 0.00005)),
    BuildingEntry(name="Library", ref=None, center=(0.01, 0.01)),
]


# Two buildings with no indoor link between them; Annex's entrance is nearer the origin.
TWO_BUILDINGS_GRAPH = {
    "levels": ["0"],
    "nodes": {
        "a0": {"lng": 0.0, "lat": 0.0, "level": "0", "tags": {"entrance": True}},
        "a1": {"lng": 0.0001, "lat": 0.0, "level": "0"},
        "b0": {"lng": 0.01, "lat": 0.0, "level": "0", "tags": {"entrance": True}},
        "b1": {"lng": 0.0101, "lat": 0.0, "level": "0"},
    },
    "edges": [
        {"from": "a0", "to": "a1", "w": 11.1, "type": "corridor"},
        {"from": "a1", "to": "a0", "w": 11.1, "type": "corridor"},
        {"from": "b0", "to": "b1", "w": 11.1, "type": "corridor"},
        {"from": "b1", "to": "b0", "w": 11.1, "type": "corridor"},
    ],
    "rooms": {
        "Annex/1": {"node": "a1", "level": "0", "center": [0.0001, 0.0], "building": "Annex", "ref": "1"},
        "Mill/1": {"node": "b1", "level": "0", "center": [0.0101, 0.0], "building": "Mill", "ref": "1"},
    },
    "entrances": [{"node": "a0", "level": "0"}, {"node": "b0", "level": "0"}],
}

TWO_BUILDINGS = [
    BuildingEntry(name="Annex", center=(0.00005, 0.0)),
    BuildingEntry(name="Mill", center=(0.01005, 0.0)),
    BuildingEntry(name="Physics", ref="II", center=(0.02, 0.0)),
]


class StraightLineOutdoor(OutdoorRouter):
    """Outdoor router that draws a straight line instead of calling a provider."""

    def __init__(self, buildings=None):
        super().__init__(buildings=BUILDINGS if buildings is None else buildings, base_urls=["http://unused"])
        self.calls = []

    def walking_route(self, a, b):
        self.calls.append((a, b))
        return OutdoorSegment(line=[a, b])


@pytest.fixture()
def mini_graph_dict() -> dict:
    return copy.deepcopy(MINI_GRAPH)


@pytest.fixture()
def mini_graph(mini_graph_dict) -> IndoorGraph:
    return IndoorGraph.from_dict(mini_graph_dict)


@pytest.fixture()
def campus(mini_graph):
    return build_campus("mini", mini_graph, BUILDINGS, {"campus_name": "Mini"})


@pytest.fixture()
def outdoor() -> StraightLineOutdoor:
    return StraightLineOutdoor()


@pytest.fixture()
def two_buildings():
    """(campus, outdoor router) for the disconnected Annex/Mill campus."""
    graph = IndoorGraph.from_dict(copy.deepcopy(TWO_BUILDINGS_GRAPH))
    return build_campus("twin", graph, TWO_BUILDINGS), StraightLineOutdoor(TWO_BUILDINGS)


def assert_continuous(segments) -> None:
    for prev, nxt in zip(segments, segments[1:]):
        assert tuple(prev.line[-1]) == pytest.approx(tuple(nxt.line[0]), abs=1e-12)


@pytest.fixture()
def continuous():
    return assert_continuous
