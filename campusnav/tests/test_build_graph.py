import pytest
from shapely.geometry import LineString, Point, Polygon

from campusnav.app.graph_loader import NodeTags
from campusnav.app.routing import IndoorRouter
from campusnav.tools.build_graph import (
    GraphParts,
    add_corridors,
    add_portals,
    add_vertical_connectors,
    build_indoor_graph,
    feature_levels,
    level_sort_key,
    parse_levels,
    snap_rooms,
    vertical_weight,
)
from campusnav.tools.overpass import Feature
from campusnav.tools.validate_graph import check_graph


@pytest.mark.parametrize("raw, expected", [
    ("1", ["1"]),
    ("0;1;2", ["0", "1", "2"]),
    (" 0 ; 2 ", ["0", "2"]),
    ("0-2", ["0", "1", "2"]),
    ("2-0", ["2", "1", "0"]),
    ("-1", ["-1"]),
    ("-1-1", ["-1", "0", "1"]),
    ("B", ["B"]),
    ("", []),
    (None, []),
    (3, ["3"]),
])
def test_parse_levels(raw, expected):
    assert parse_levels(raw) == expected


def test_feature_levels_defaults_to_ground():
    assert feature_levels({}) == ["0"]
    assert feature_levels({"level": ""}) == ["0"]
    assert feature_levels({"level:ref": "1;2"}) == ["1", "2"]
    assert feature_levels(None) == ["0"]


def test_level_sort_key_orders_numeric_then_labels():
    assert sorted(["1", "B", "-1", "10", "0"], key=level_sort_key) == ["-1", "0", "1", "10", "B"]


def test_vertical_weight_has_floor():
    assert vertical_weight("0", "1") == pytest.approx(6.0)
    assert vertical_weight("0", "3") == pytest.approx(18.0)
    assert vertical_weight("0", "0.5") == pytest.approx(4.0)
    assert vertical_weight("0", "B") == pytest.approx(6.0)


def corridor(coords, **tags):
    return Feature(LineString(coords), tags)


def point(lng, lat, **tags):
    return Feature(Point(lng, lat), tags)


def test_corridors_dedupe_shared_vertices():
    parts = add_corridors(GraphParts(), [
        corridor([(0.0, 0.0), (0.0001, 0.0)], level="0"),
        corridor([(0.0001, 0.0), (0.0001, 0.0001)], level="0"),
    ])
    assert len(parts.nodes) == 3
    assert len(parts.edges) == 4
    assert {e.type for e in parts.edges} == {"corridor"}
    # ~11.1 m per 0.0001 degree at the equator
    assert parts.edges[0].w == pytest.approx(11.12, abs=0.05)


def test_multi_level_corridor_is_duplicated_per_level():
    parts = add_corridors(GraphParts(), [corridor([(0.0, 0.0), (0.0001, 0.0)], level="0;1")])
    assert sorted(n.level for n in parts.nodes.values()) == ["0", "0", "1", "1"]
    assert len(parts.edges) == 4
    assert parts.levels == {"0", "1"}


def test_coincident_points_within_precision_share_a_node():
    parts = GraphParts()
    a = parts.ensure_node("0", 1.00000001, 2.0)
    b = parts.ensure_node("0", 1.00000002, 2.0)
    c = parts.ensure_node("1", 1.00000001, 2.0)
    assert a == b
    assert a != c


def test_portals_become_entrances_and_merge_tags():
    parts = add_corridors(GraphParts(), [corridor([(0.0, 0.0), (0.0001, 0.0)])])
    add_portals(parts, [
        point(0.0, 0.0, entrance="main"),
        point(0.0001, 0.0, door="hinged"),
        point(0.0002, 0.0, door="yes", level="1"),
    ])
    entrance_nodes = [parts.nodes[e.node] for e in parts.entrances]

    assert [(n.lng, n.level) for n in entrance_nodes] == [(0.0, "0"), (0.0002, "1")]
    # the entrance reused the corridor vertex instead of adding a node
    assert entrance_nodes[0].id == "0:n1"
    assert entrance_nodes[0].tags.entrance


def test_vertical_connectors_link_adjacent_levels_only():
    parts = add_portals(GraphParts(), [
        point(0.0, 0.0, elevator="yes", level="0-2"),
        point(0.001, 0.0, highway="steps", level="0;1"),
        point(0.002, 0.0, amenity="elevator", level="0"),
    ])
    add_vertical_connectors(parts)

    lift = sorted((parts.nodes[e.from_id].level, parts.nodes[e.to_id].level)
                  for e in parts.edges if e.type == "elevator")
    assert lift == [("0", "1"), ("1", "0"), ("1", "2"), ("2", "1")]
    steps = [e for e in parts.edges if e.type == "highway-steps"]
    assert len(steps) == 2
    assert all(e.w == pytest.approx(6.0) for e in parts.edges)


def square(x, y, size=0.0001):
    return Polygon([(x, y), (x + size, y), (x + size, y + size), (x, y + size), (x, y)])


def test_snap_rooms_to_nearest_node_on_same_level():
    parts = add_corridors(GraphParts(), [
        corridor([(0.0, 0.0), (0.001, 0.0)], level="0"),
        corridor([(0.0, 0.0), (0.001, 0.0)], level="1"),
    ])
    polys = [
        Feature(square(0.0009, 0.00005), {"ref": "101", "level": "1", "building": "Main"}),
        Feature(square(0.0, 0.0), {"ref": "999", "level": "5", "building": "Main"}),
    ]
    index = {"Main": [
        {"ref": "101", "name": "Lab", "center": [0.0, 0.0]},
        {"ref": "102", "name": "Office", "center": [0.0001, 0.0]},
        {"ref": "999", "name": "Roof", "center": [0.0, 0.0]},
        {"ref": "", "name": "Nameless", "center": [0.0, 0.0]},
    ]}
    rooms = snap_rooms(parts, index, polys)

    assert set(rooms) == {"Main/101", "Main/102", "Main/999"}
    r101 = rooms["Main/101"]
    assert r101.level == "1"
    assert parts.nodes[r101.node].level == "1"
    assert parts.nodes[r101.node].lng == pytest.approx(0.001)
    # interior point of the polygon, not the indexed centre
    assert square(0.0009, 0.00005).contains(Point(r101.center))

    r102 = rooms["Main/102"]
    assert r102.level == "0" and r102.center == (0.0001, 0.0)
    assert parts.nodes[r102.node].level == "0"

    assert rooms["Main/999"].node is None
    assert rooms["Main/999"].level == "5"


def test_build_indoor_graph_end_to_end(continuous):
    corridors = [
        corridor([(0.0, 0.0), (0.0001, 0.0), (0.0002, 0.0)], level="0"),
        corridor([(0.0002, 0.0), (0.0002, 0.0001), (0.0003, 0.0001)], level="1"),
    ]
    portals = [
        point(0.0, 0.0, entrance="yes"),
        point(0.0002, 0.0, elevator="yes", level="0;1"),
    ]
    room_polys = [
        Feature(square(0.00009, -0.00001, 0.00002), {"ref": "A", "level": "0", "building": "Main"}),
        Feature(square(0.00029, 0.00009, 0.00002), {"ref": "D", "level": "1", "building": "Main"}),
    ]
    index = {"Main": [{"ref": "A", "name": "A", "center": [0.0001, 0.0]},
                      {"ref": "D", "name": "D", "center": [0.0003, 0.0001]}]}

    graph = build_indoor_graph(corridors, portals, index, room_polys)

    assert graph.levels == ["0", "1"]
    assert len(graph.entrances) == 1
    assert check_graph(graph) == []
    for e in graph.edges:
        assert e.from_id in graph.nodes and e.to_id in graph.nodes
    for room in graph.rooms.values():
        assert graph.nodes[room.node].level == room.level

    segs = IndoorRouter(graph).route_room_to_room("Main/A", "Main/D")
    assert segs[0].level == "0" and segs[-1].level == "1"
    continuous(segs)


def test_build_is_idempotent():
    corridors = [corridor([(0.0, 0.0), (0.0001, 0.0)])]
    portals = [point(0.0, 0.0, entrance="yes")]
    first = build_indoor_graph(corridors, portals, {}, [])
    second = build_indoor_graph(corridors, portals, {}, [])
    assert first.to_dict() == second.to_dict()


def test_nodetags_from_osm():
    tags = NodeTags.from_osm({"highway": "steps", "entrance": "no", "door": "yes", "name": "North"})
    assert tags.stairs and tags.door and not tags.entrance and not tags.elevator
    assert tags.is_portal and tags.is_vertical
    assert tags.to_dict() == {"stairs": True, "door": True, "name": "North"}
