#!/usr/bin/env python3
"""Build the room polygon layer, the room-by-building index and the building index."""
import argparse, json, logging, re, sys, time
from typing import Any, Dict, List, Tuple

from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from campusnav.app.errors import DataFetchFailure
from campusnav.app.graph_loader import BuildingEntry, artifact_path
from campusnav.tools.campus import campus_bbox, load_campuses
from campusnav.tools.overpass import Feature, buildings_query, elements_to_features, fetch_overpass, rooms_query

log = logging.getLogger(__name__)

POLYGONAL = {"Polygon", "MultiPolygon"}


def building_name(props: Dict[str, Any]) -> str:
    return (
        props.get("name:en")
        or props.get("name")
        or props.get("building:name")
        or props.get("ref")
        or "Unknown"
    )


def natural_key(s: str) -> List[Any]:
    return [(0, int(t), "") if t.isdigit() else (1, 0, t.lower()) for t in re.split(r"(\d+)", s) if t]


def room_polygons(features: List[Feature]) -> List[Feature]:
    """Keep polygonal room features and label each with ref/name."""
    out = []
    for f in features:
        if f.geometry.geom_type not in POLYGONAL:
            log.warning("Skipping room %s: %s geometry", f.properties.get("@id"), f.geometry.geom_type)
            continue
        p = dict(f.properties)
        p["ref"] = (p.get("ref") or p.get("name") or "").strip()
        p["name"] = (p.get("name") or p.get("ref") or "").strip()
        p["corridor"] = p.get("room") == "corridor" or p.get("corridor") == "yes" or p.get("indoor") == "corridor"
        out.append(Feature(f.geometry, p))
    return out


def building_shapes(features: List[Feature]) -> List[Tuple[str, BaseGeometry, Dict[str, Any]]]:
    return [(building_name(f.properties), f.geometry, f.properties)
            for f in features if f.geometry.geom_type in POLYGONAL]


def build_buildings_index(building_features: List[Feature]) -> List[BuildingEntry]:
    entries = []
    for name, geom, props in building_shapes(building_features):
        c = geom.centroid
        entries.append(BuildingEntry(name=name, ref=props.get("ref") or None, center=(c.x, c.y)))
    return entries


def build_rooms_index(rooms: List[Feature], building_features: List[Feature]) -> Dict[str, List[Dict[str, Any]]]:
    """Map building name -> [{ref, name, center}], recording the host on each room feature."""
    shapes = building_shapes(building_features)
    idx: Dict[str, List[Dict[str, Any]]] = {}
    for f in rooms:
        if not f.properties["ref"] and not f.properties["name"]:
            continue
        c = f.geometry.centroid
        host = next((name for name, geom, _ in shapes if geom.covers(c)), "Unknown")
        f.properties["building"] = host
        idx.setdefault(host, []).append({
            "ref": f.properties["ref"],
            "name": f.properties["name"],
            "center": [c.x, c.y],
        })
    for entries in idx.values():
        entries.sort(key=lambda r: natural_key(r["ref"] or r["name"]))
    return idx


def feature_collection(features: List[Feature]) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "geometry": mapping(f.geometry), "properties": f.properties}
                     for f in features],
    }


def main():
    ap = argparse.ArgumentParser(description="Build room and building indices from OSM")
    ap.add_argument("--campuses", required=True, help="path to campuses.json")
    ap.add_argument("--key", required=True, help="campus key")
    ap.add_argument("--out", required=True, help="output prefix, e.g., data/graphs/nova")
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

    print(f"Building room index for {c.name} (bbox {bbox}) ...")
    t0 = time.time()
    try:
        rooms_json = fetch_overpass(rooms_query(bbox), "room polygons", parallel=args.parallel)
        buildings_json = fetch_overpass(buildings_query(bbox), "building polygons", parallel=args.parallel)
    except DataFetchFailure as e:
        print(f"build_rooms failed: {e}")
        sys.exit(1)

    rooms = room_polygons(elements_to_features(rooms_json))
    building_features = elements_to_features(buildings_json)
    rooms_index = build_rooms_index(rooms, building_features)
    buildings = build_buildings_index(building_features)

    out = args.out
    artifact_path(out, "json").parent.mkdir(parents=True, exist_ok=True)
    with open(artifact_path(out, "rooms_polygons.geojson"), "w") as f:
        json.dump(feature_collection(rooms), f, indent=2, ensure_ascii=False)
    with open(artifact_path(out, "rooms_index.json"), "w") as f:
        json.dump(rooms_index, f, indent=2, ensure_ascii=False)
    with open(artifact_path(out, "buildings.json"), "w") as f:
        json.dump([b.to_dict() for b in buildings], f, indent=2, ensure_ascii=False)

    print(f"Rooms: {len(rooms):,}, Buildings: {len(buildings):,} (built in {time.time() - t0:.1f}s)")


if __name__ == "__main__":
    main()
