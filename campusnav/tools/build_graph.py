#!/usr/bin/env python3
"""Build the indoor routing graph from OSM indoor survey data.

Inputs: corridors and portal/connector points fetched from Overpass, plus
the room polygons and room-by-building index written by build_rooms.
Output: <out>.graph.json and <out>.meta.json.
"""
import argparse, json, logging, re, sys, time, pathlib
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from shapely.geometry import shape

from campusnav.app.errors import DataFetchFailure, MalformedSourceData
from campusnav.app.geo import coord_key, haversine_m, haversine_many
from campusnav.app.graph_loader import Edge, Entrance, IndoorGraph, Node, NodeTags, Room, artifact_path
from campusnav.tools.campus import campus_bbox, load_campuses
from campusnav.tools.overpass import Feature, corridors_query, elements_to_features, fetch_overpass, portals_query

log = logging.getLogger(__name__)

DEFAULT_LEVEL = "0"
# vertical edge weight = max(MIN, |level delta| * PER_LEVEL); tunable, not calibrated
VERTICAL_MIN_PENALTY = 4.0
VERTICAL_LEVEL_PENALTY = 6.0

RANGE_RE = re.compile(r"^(-?\d+)\s*-\s*(-?\d+)$")


def parse_levels(raw: Any) -> List[str]:
    """'1' -> ['1'], '0;1' -> ['0','1'], '0-2' -> ['0','1','2'], '2-0' -> ['2','1','0']."""
    if raw is None:
        return []
    s = str(raw).strip()
    if not s:
        return []
    if ";" not in s:
        m = RANGE_RE.match(s)
        if m:
            a, b = int(m.group(1)), int(m.group(2))
            step = 1 if a <= b else -1
            return [str(x) for x in range(a, b + step, step)]
    return [x.strip() for x in s.split(";") if x.strip()]


def feature_levels(props: Optional[Dict[str, Any]], default: str = DEFAULT_LEVEL) -> List[str]:
    props = props or {}
    raw = props.get("level")
    if raw is None:
        raw = props.get("level:ref")
    return parse_levels(raw) or [default]


def level_sort_key(level: str) -> Tuple[int, float, str]:
    try:
        return (0, float(level), level)
    except ValueError:
        return (1, 0.0, level)


def level_delta(a: str, b: str) -> float:
    try:
        return abs(float(a) - float(b))
    except ValueError:
        return 1.0


def vertical_weight(a: str, b: str) -> float:
    return max(VERTICAL_MIN_PENALTY, level_delta(a, b) * VERTICAL_LEVEL_PENALTY)


@dataclass
class GraphParts:
    """Accumulates nodes and edges for one builder run."""

    nodes: Dict[str, Node] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    levels: set = field(default_factory=set)
    entrances: List[Entrance] = field(default_factory=list)
    index: Dict[Tuple[str, Tuple[float, float]], str] = field(default_factory=dict)
    seq: int = 0

    def ensure_node(self, level: str, lng: float, lat: float, tags: Optional[NodeTags] = None) -> str:
        key = (level, coord_key(lng, lat))
        self.levels.add(level)
        nid = self.index.get(key)
        if nid is not None:
            if tags is not None:
                node = self.nodes[nid]
                self.nodes[nid] = replace(node, tags=node.tags.merge(tags))
            return nid
        self.seq += 1
        nid = f"{level}:n{self.seq}"
        self.nodes[nid] = Node(id=nid, lng=lng, lat=lat, level=level, tags=tags or NodeTags())
        self.index[key] = nid
        return nid

    def connect(self, a: str, b: str, w: float, kind: str) -> None:
        self.edges.append(Edge(a, b, w, kind))
        self.edges.append(Edge(b, a, w, kind))


def add_corridors(parts: GraphParts, features: List[Feature]) -> GraphParts:
    for f in features:
        if f.geometry.geom_type != "LineString":
            continue
        coords = list(f.geometry.coords)
        for lvl in feature_levels(f.properties):
            for (lng_a, lat_a), (lng_b, lat_b) in zip(coords, coords[1:]):
                a = parts.ensure_node(lvl, lng_a, lat_a)
                b = parts.ensure_node(lvl, lng_b, lat_b)
                if a == b:
                    continue
                parts.connect(a, b, haversine_m((lng_a, lat_a), (lng_b, lat_b)), "corridor")
    return parts


def add_portals(parts: GraphParts, features: List[Feature]) -> GraphParts:
    """Doors, entrances, stairs and elevator points; entrances/doors feed the entrance list."""
    seen = {e.node for e in parts.entrances}
    for f in features:
        if f.geometry.geom_type != "Point":
            continue
        tags = NodeTags.from_osm(f.properties)
        for lvl in feature_levels(f.properties):
            nid = parts.ensure_node(lvl, f.geometry.x, f.geometry.y, tags)
            if tags.is_portal and nid not in seen:
                parts.entrances.append(Entrance(node=nid, level=lvl))
                seen.add(nid)
    return parts


def add_vertical_connectors(parts: GraphParts) -> GraphParts:
    groups: Dict[Tuple[str, Tuple[float, float]], List[Node]] = {}
    for n in parts.nodes.values():
        if n.tags.elevator:
            groups.setdefault(("elevator", coord_key(n.lng, n.lat)), []).append(n)
        if n.tags.stairs:
            groups.setdefault(("highway-steps", coord_key(n.lng, n.lat)), []).append(n)

    for (kind, key), members in groups.items():
        if len(members) < 2:
            log.warning("Dropping %s at %s: present on level %s only", kind, key, members[0].level)
            continue
        members.sort(key=lambda n: level_sort_key(n.level))
        for a, b in zip(members, members[1:]):
            parts.connect(a.id, b.id, vertical_weight(a.level, b.level), kind)
    return parts


def _level_arrays(parts: GraphParts) -> Dict[str, Tuple[List[str], np.ndarray, np.ndarray]]:
    by_level: Dict[str, List[Node]] = {}
    for n in parts.nodes.values():
        by_level.setdefault(n.level, []).append(n)
    return {
        lvl: ([n.id for n in ns], np.array([n.lng for n in ns]), np.array([n.lat for n in ns]))
        for lvl, ns in by_level.items()
    }


def snap_rooms(
    parts: GraphParts,
    rooms_index: Dict[str, List[Dict[str, Any]]],
    room_polys: List[Feature],
) -> Dict[str, Room]:
    """Attach each indexed room to the nearest graph node on its own level."""
    by_building_ref: Dict[Tuple[str, str], Feature] = {}
    by_ref: Dict[str, Feature] = {}
    for f in room_polys:
        if f.geometry.geom_type not in ("Polygon", "MultiPolygon"):
            continue
        ref = str(f.properties.get("ref") or f.properties.get("name") or "").strip()
        if not ref:
            continue
        by_ref.setdefault(ref, f)
        if f.properties.get("building"):
            by_building_ref.setdefault((f.properties["building"], ref), f)

    arrays = _level_arrays(parts)
    rooms: Dict[str, Room] = {}
    for building, entries in rooms_index.items():
        for entry in entries:
            ref = str(entry.get("ref") or "").strip()
            if not ref:
                log.warning("Dropping room without ref in %s: %s", building, entry.get("name"))
                continue
            poly = by_building_ref.get((building, ref)) or by_ref.get(ref)
            try:
                center = (float(entry["center"][0]), float(entry["center"][1]))
            except (KeyError, TypeError, IndexError, ValueError):
                center = None
            if poly is not None:
                p = poly.geometry.representative_point()
                center = (p.x, p.y)
            if center is None:
                log.warning("Dropping room %s/%s: no polygon and no centre", building, ref)
                continue

            level = feature_levels(poly.properties if poly is not None else None)[0]
            parts.levels.add(level)
            node = None
            if level in arrays:
                ids, lngs, lats = arrays[level]
                node = ids[int(np.argmin(haversine_many(center, lngs, lats)))]
            else:
                log.warning("Room %s/%s on level %s has no graph nodes to snap to", building, ref, level)

            key = f"{building}/{ref}"
            rooms[key] = Room(key=key, node=node, level=level, center=center, building=building, ref=ref)
    return rooms


def build_indoor_graph(
    corridor_features: List[Feature],
    portal_features: List[Feature],
    rooms_index: Dict[str, List[Dict[str, Any]]],
    room_polys: List[Feature],
) -> IndoorGraph:
    parts = GraphParts()
    add_corridors(parts, corridor_features)
    add_portals(parts, portal_features)
    add_vertical_connectors(parts)
    rooms = snap_rooms(parts, rooms_index, room_polys)
    graph = IndoorGraph(
        levels=sorted(parts.levels, key=level_sort_key),
        nodes=parts.nodes,
        edges=parts.edges,
        rooms=rooms,
        entrances=parts.entrances,
    )
    graph.check()
    return graph


def load_room_inputs(prefix: str) -> Tuple[Dict[str, List[Dict[str, Any]]], List[Feature]]:
    with open(artifact_path(prefix, "rooms_index.json")) as f:
        rooms_index = json.load(f)
    with open(artifact_path(prefix, "rooms_polygons.geojson")) as f:
        fc = json.load(f)
    polys = []
    for feat in fc.get("features", []):
        try:
            polys.append(Feature(shape(feat["geometry"]), dict(feat.get("properties") or {})))
        except (KeyError, ValueError, TypeError) as e:
            log.warning("Skipping unreadable room polygon: %s", e)
    return rooms_index, polys


def main():
    ap = argparse.ArgumentParser(description="Build indoor routing graph from OSM")
    ap.add_argument("--campuses", required=True, help="path to campuses.json")
    ap.add_argument("--key", required=True, help="campus key")
    ap.add_argument("--out", required=True, help="output prefix, e.g., data/graphs/nova")
    ap.add_argument("--rooms", default=None, help="prefix of build_rooms output (default: --out)")
    ap.add_argument("--radius_m", type=int, default=None, help="override radius in meters")
    ap.add_argument("--parallel", action="store_true", help="query all endpoints at once")
    args = ap.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    campuses = load_campuses(args.campuses)
    if args.key not in campuses:
        print(f"Unknown campus key: {args.key}. Choices: {list(campuses.keys())}")
        sys.exit(2)
    c = campuses[args.key]
    bbox = campus_bbox(c, args.radius_m)

    print(f"Building indoor graph for {c.name} (bbox {bbox}) ...")
    t0 = time.time()
    try:
        rooms_index, room_polys = load_room_inputs(args.rooms or args.out)
    except FileNotFoundError as e:
        print(f"build_graph failed: room inputs missing ({e.filename}); run build_rooms first")
        sys.exit(1)
    try:
        corridors = elements_to_features(fetch_overpass(corridors_query(bbox), "indoor corridors", parallel=args.parallel))
        portals = elements_to_features(fetch_overpass(portals_query(bbox), "portals and connectors", parallel=args.parallel))
        graph = build_indoor_graph(corridors, portals, rooms_index, room_polys)
    except (DataFetchFailure, MalformedSourceData) as e:
        print(f"build_graph failed: {e}")
        sys.exit(1)
    dt = time.time() - t0

    unsnapped = sum(1 for r in graph.rooms.values() if r.node is None)
    meta = {
        "campus_key": args.key,
        "campus_name": c.name,
        "center": {"lat": c.lat, "lon": c.lon},
        "bbox": {"south": bbox[0], "west": bbox[1], "north": bbox[2], "east": bbox[3]},
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "counts": {
            "levels": len(graph.levels),
            "nodes": len(graph.nodes),
            "edges": len(graph.edges),
            "rooms": len(graph.rooms),
            "unsnapped_rooms": unsnapped,
            "entrances": len(graph.entrances),
        },
        "notes": {
            "source": "OpenStreetMap via Overpass API",
            "attribution": "© OpenStreetMap contributors",
        },
    }

    print(f"Levels: {graph.levels}, Nodes: {len(graph.nodes):,}, Edges: {len(graph.edges):,}, "
          f"Rooms: {len(graph.rooms):,} ({unsnapped} unsnapped) (built in {dt:.1f}s)")
    out = pathlib.Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(artifact_path(out, "graph.json"), "w") as f:
        json.dump(graph.to_dict(), f, indent=2, ensure_ascii=False)
    with open(artifact_path(out, "meta.json"), "w") as f:
        json.dump(meta, f, indent=2)


if __name__ == "__main__":
    main()
