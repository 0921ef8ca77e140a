import json
from dataclasses import dataclass
from typing import Dict, Tuple

from pyproj import Transformer
from shapely.geometry import Point
from shapely.ops import transform as shp_transform


@dataclass
class Campus:
    key: str
    name: str
    lat: float
    lon: float
    radius_m: int


def load_campuses(path: str) -> Dict[str, Campus]:
    with open(path) as f:
        raw = json.load(f)
    return {
        key: Campus(key=key, name=c["name"], lat=float(c["lat"]), lon=float(c["lon"]), radius_m=int(c["radius_m"]))
        for key, c in raw.items()
    }


# Build a geodesic buffer (meters) around lat/lon → polygon in WGS84
def circle_polygon(lat: float, lon: float, radius_m: float, num_pts: int = 64):
    # project to web mercator for a meters buffer
    transformer_to = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)
    transformer_back = Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)

    p_m = Point(*transformer_to.transform(lon, lat))
    poly_m = p_m.buffer(radius_m, resolution=num_pts)

    def back(x, y, z=None):
        lon2, lat2 = transformer_back.transform(x, y)
        return (lon2, lat2)

    return shp_transform(back, poly_m)


def campus_bbox(c: Campus, radius_m: int = None) -> Tuple[float, float, float, float]:
    """(south, west, north, east) around the campus centre."""
    west, south, east, north = circle_polygon(c.lat, c.lon, radius_m or c.radius_m).bounds
    return (south, west, north, east)
