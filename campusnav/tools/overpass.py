"""Overpass queries, multi-endpoint fetch and conversion to shapely features."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from shapely.geometry import LineString, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import linemerge, polygonize, unary_union

from campusnav.app import settings
from campusnav.app.failover import first_success

log = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]  # south, west, north, east

# closed ways with one of these keys describe an area unless area=no
AREA_KEYS = {"building", "indoor", "room", "amenity", "landuse", "leisure"}


@dataclass
class Feature:
    geometry: BaseGeometry
    properties: Dict[str, Any] = field(default_factory=dict)


def _b(bbox: BBox) -> str:
    s, w, n, e = bbox
    return f"{s},{w},{n},{e}"


def corridors_query(bbox: BBox) -> str:
    return f"""[out:json][timeout:60];
(
  way["indoor"="corridor"]({_b(bbox)});
  way["highway"="corridor"]({_b(bbox)});
);
out geom tags;"""


def portals_query(bbox: BBox) -> str:
    return f"""[out:json][timeout:60];
(
  node["entrance"]({_b(bbox)});
  node["door"]({_b(bbox)});
  node["highway"="steps"]({_b(bbox)});
  node["elevator"="yes"]({_b(bbox)});
  node["amenity"="elevator"]({_b(bbox)});
);
out geom tags;"""


def rooms_query(bbox: BBox) -> str:
    return f"""[out:json][timeout:25];
way["indoor"="room"]({_b(bbox)});
out geom tags;"""


def buildings_query(bbox: BBox) -> str:
    return f"""[out:json][timeout:30];
(
  way["building"]({_b(bbox)});
  relation["building"]({_b(bbox)});
);
out geom tags;"""


def fetch_overpass(
    query: str,
    dataset: str,
    endpoints: Optional[Sequence[str]] = None,
    session: Optional[requests.Session] = None,
    timeout: float = settings.OVERPASS_TIMEOUT_S,
    parallel: bool = False,
) -> Dict[str, Any]:
    """POST `query` to the first endpoint that answers with well-formed JSON.

    Raises DataFetchFailure when every endpoint fails.
    """
    http = session or requests

    def attempt(ep: str) -> Dict[str, Any]:
        log.info("Overpass %s <- %s", ep, dataset)
        r = http.post(ep, data={"data": query}, timeout=timeout)
        r.raise_for_status()
        body = r.json()
        if not isinstance(body, dict) or not isinstance(body.get("elements"), list):
            raise ValueError("response has no elements list")
        return body

    return first_success(
        list(endpoints or settings.OVERPASS_ENDPOINTS),
        attempt,
        dataset=dataset,
        retry_on=(requests.RequestException, ValueError),
        parallel=parallel,
    )


def _is_area(tags: Dict[str, Any]) -> bool:
    area = str(tags.get("area", "")).lower()
    if area == "yes":
        return True
    if area == "no" or "highway" in tags:
        return False
    return any(k in tags for k in AREA_KEYS)


def _way_coords(geometry: List[Optional[Dict[str, float]]]) -> List[Tuple[float, float]]:
    return [(float(g["lon"]), float(g["lat"])) for g in geometry or [] if g]


def _way_feature(el: Dict[str, Any], props: Dict[str, Any]) -> Optional[Feature]:
    coords = _way_coords(el.get("geometry"))
    if len(coords) < 2:
        log.warning("Skipping %s: fewer than two coordinates", props["@id"])
        return None
    closed = len(coords) >= 4 and coords[0] == coords[-1]
    if closed and _is_area(props):
        poly = Polygon(coords)
        if not poly.is_valid:
            poly = poly.buffer(0)
        if poly.is_empty or poly.area == 0:
            log.warning("Skipping %s: degenerate polygon", props["@id"])
            return None
        return Feature(poly, props)
    return Feature(LineString(coords), props)


def _relation_feature(el: Dict[str, Any], props: Dict[str, Any]) -> Optional[Feature]:
    lines = []
    for m in el.get("members", []):
        if m.get("type") != "way" or m.get("role", "outer") not in ("outer", ""):
            continue
        coords = _way_coords(m.get("geometry"))
        if len(coords) >= 2:
            lines.append(LineString(coords))
    if not lines:
        log.warning("Skipping %s: no outer members with geometry", props["@id"])
        return None
    geom = unary_union(list(polygonize(linemerge(lines))))
    if geom.is_empty:
        log.warning("Skipping %s: outer ring does not close", props["@id"])
        return None
    return Feature(geom, props)


def elements_to_features(osm_json: Dict[str, Any]) -> List[Feature]:
    """Turn Overpass `out geom` elements into Point/LineString/Polygon features."""
    features: List[Feature] = []
    for el in osm_json.get("elements", []):
        kind = el.get("type")
        tags = dict(el.get("tags") or {})
        props = {**tags, "@id": f"{kind}/{el.get('id')}"}
        if kind == "node":
            if not tags or "lon" not in el or "lat" not in el:
                continue
            features.append(Feature(Point(float(el["lon"]), float(el["lat"])), props))
        elif kind == "way":
            f = _way_feature(el, props)
            if f is not None:
                features.append(f)
        elif kind == "relation":
            f = _relation_feature(el, props)
            if f is not None:
                features.append(f)
    return features
