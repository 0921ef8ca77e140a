import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
from scipy.spatial import cKDTree

from .errors import MalformedSourceData, UnresolvedEntity
from .geo import LngLat, as_lnglat

log = logging.getLogger(__name__)

NO_VALUES = {"no", "false", "0"}


@dataclass(frozen=True)
class NodeTags:
    """Survey attributes the router cares about, as named fields."""

    elevator: bool = False
    stairs: bool = False
    entrance: bool = False
    door: bool = False
    name: Optional[str] = None
    ref: Optional[str] = None

    @classmethod
    def from_osm(cls, tags: Dict[str, Any]) -> "NodeTags":
        def val(k: str) -> str:
            return str(tags.get(k, "")).strip().lower()

        entrance = val("entrance")
        return cls(
            elevator=val("elevator") == "yes" or val("amenity") == "elevator" or val("highway") == "elevator",
            stairs=val("highway") == "steps" or val("stairs") == "yes",
            entrance=bool(entrance) and entrance not in NO_VALUES,
            door=val("door") == "yes",
            name=tags.get("name") or None,
            ref=tags.get("ref") or None,
        )

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "NodeTags":
        if not d:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in d.items() if k in known}
        for flag in ("elevator", "stairs", "entrance", "door"):
            if flag in kwargs:
                kwargs[flag] = str(kwargs[flag]).lower() not in NO_VALUES | {""}
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}

    def merge(self, other: "NodeTags") -> "NodeTags":
        return NodeTags(
            elevator=self.elevator or other.elevator,
            stairs=self.stairs or other.stairs,
            entrance=self.entrance or other.entrance,
            door=self.door or other.door,
            name=self.name or other.name,
            ref=self.ref or other.ref,
        )

    @property
    def is_vertical(self) -> bool:
        return self.elevator or self.stairs

    @property
    def is_portal(self) -> bool:
        return self.entrance or self.door


@dataclass(frozen=True)
class Node:
    id: str
    lng: float
    lat: float
    level: str
    tags: NodeTags = field(default_factory=NodeTags)

    @property
    def lnglat(self) -> LngLat:
        return (self.lng, self.lat)


@dataclass(frozen=True)
class Edge:
    from_id: str
    to_id: str
    w: float
    type: Optional[str] = None


@dataclass(frozen=True)
class Room:
    key: str
    node: Optional[str]
    level: str
    center: LngLat
    building: Optional[str] = None
    ref: Optional[str] = None


@dataclass(frozen=True)
class Entrance:
    node: str
    level: str


@dataclass(frozen=True)
class BuildingEntry:
    name: str
    center: LngLat
    ref: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BuildingEntry":
        return cls(name=str(d["name"]), center=as_lnglat(d["center"]), ref=d.get("ref") or None)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "ref": self.ref, "center": list(self.center)}


@dataclass(frozen=True)
class IndoorGraph:
    levels: List[str]
    nodes: Dict[str, Node]
    edges: List[Edge]
    rooms: Dict[str, Room]
    entrances: List[Entrance]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "IndoorGraph":
        nodes = {
            nid: Node(id=nid, lng=float(n["lng"]), lat=float(n["lat"]), level=str(n["level"]),
                      tags=NodeTags.from_dict(n.get("tags")))
            for nid, n in raw.get("nodes", {}).items()
        }
        edges = [Edge(from_id=e["from"], to_id=e["to"], w=float(e["w"]), type=e.get("type"))
                 for e in raw.get("edges", [])]
        rooms = {
            key: Room(key=key, node=r.get("node") or None, level=str(r.get("level", "0")),
                      center=as_lnglat(r["center"]), building=r.get("building"), ref=r.get("ref"))
            for key, r in raw.get("rooms", {}).items()
        }
        entrances = [Entrance(node=e["node"], level=str(e.get("level", "0"))) for e in raw.get("entrances", [])]
        levels = [str(l) for l in raw.get("levels", [])] or sorted({n.level for n in nodes.values()})
        graph = cls(levels=levels, nodes=nodes, edges=edges, rooms=rooms, entrances=entrances)
        graph.check()
        return graph

    def to_dict(self) -> Dict[str, Any]:
        nodes = {}
        for nid, n in self.nodes.items():
            entry: Dict[str, Any] = {"lng": n.lng, "lat": n.lat, "level": n.level}
            tags = n.tags.to_dict()
            if tags:
                entry["tags"] = tags
            nodes[nid] = entry
        edges = []
        for e in self.edges:
            entry = {"from": e.from_id, "to": e.to_id, "w": e.w}
            if e.type:
                entry["type"] = e.type
            edges.append(entry)
        rooms = {
            key: {"node": r.node, "level": r.level, "center": list(r.center), "building": r.building, "ref": r.ref}
            for key, r in self.rooms.items()
        }
        return {
            "levels": list(self.levels),
            "nodes": nodes,
            "edges": edges,
            "rooms": rooms,
            "entrances": [{"node": e.node, "level": e.level} for e in self.entrances],
        }

    def check(self) -> None:
        """Raise MalformedSourceData if any reference points outside the node map."""
        for e in self.edges:
            if e.from_id not in self.nodes or e.to_id not in self.nodes:
                raise MalformedSourceData(f"edge {e.from_id}->{e.to_id} references a missing node")
            if e.w < 0:
                raise MalformedSourceData(f"edge {e.from_id}->{e.to_id} has negative weight {e.w}")
        for key, r in self.rooms.items():
            if r.node is None:
                continue
            node = self.nodes.get(r.node)
            if node is None:
                raise MalformedSourceData(f"room {key} references missing node {r.node}")
            if node.level != r.level:
                raise MalformedSourceData(f"room {key} on level {r.level} snapped to node on level {node.level}")
        for e in self.entrances:
            if e.node not in self.nodes:
                raise MalformedSourceData(f"entrance references missing node {e.node}")


@dataclass
class CampusGraph:
    key: str
    graph: IndoorGraph
    buildings: List[BuildingEntry]
    meta: Dict[str, Any]
    # planar KD-tree over entrance (lng, lat); None when the graph has no entrances
    kdtree: Any
    entrance_ids: List[str]

    def nearest_entrance(self, point: LngLat) -> str:
        return self.entrances_by_distance(point)[0]

    def entrances_by_distance(self, point: LngLat) -> List[str]:
        """All entrance node ids, closest to `point` first."""
        if self.kdtree is None:
            raise UnresolvedEntity("entrance", self.key, "No entrances defined in indoor graph")
        k = len(self.entrance_ids)
        _, idx = self.kdtree.query([point[0], point[1]], k=k)
        return [self.entrance_ids[int(i)] for i in np.atleast_1d(idx)]


def build_campus(key: str, graph: IndoorGraph, buildings: Optional[List[BuildingEntry]] = None,
                 meta: Optional[Dict[str, Any]] = None) -> CampusGraph:
    entrance_ids = [e.node for e in graph.entrances]
    kdtree = None
    if entrance_ids:
        pts = np.array([graph.nodes[nid].lnglat for nid in entrance_ids], dtype=float)
        kdtree = cKDTree(pts)
    return CampusGraph(key=key, graph=graph, buildings=list(buildings or []), meta=dict(meta or {}),
                       kdtree=kdtree, entrance_ids=entrance_ids)


def artifact_path(prefix, suffix: str) -> Path:
    prefix = Path(prefix)
    return prefix.parent / f"{prefix.name}.{suffix}"


def load_campus(prefix: str, key: str) -> CampusGraph:
    graph_path = artifact_path(prefix, "graph.json")
    with open(graph_path) as f:
        try:
            graph = IndoorGraph.from_dict(json.load(f))
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedSourceData(f"unreadable graph artifact {graph_path}: {e}") from e

    buildings: List[BuildingEntry] = []
    buildings_path = artifact_path(prefix, "buildings.json")
    if buildings_path.exists():
        with open(buildings_path) as f:
            buildings = [BuildingEntry.from_dict(b) for b in json.load(f)]
    else:
        log.warning("No building index at %s; building-name routing disabled", buildings_path)

    meta: Dict[str, Any] = {}
    meta_path = artifact_path(prefix, "meta.json")
    if meta_path.exists():
        with open(meta_path) as f:
            meta = json.load(f)

    cg = build_campus(key, graph, buildings, meta)
    log.info("Loaded campus %s: %d nodes, %d edges, %d rooms, %d entrances",
             key, len(graph.nodes), len(graph.edges), len(graph.rooms), len(graph.entrances))
    return cg
