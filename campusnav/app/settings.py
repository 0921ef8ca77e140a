import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("CAMPUSNAV_DATA_DIR", "data/graphs"))

# OSRM-compatible walking-directions providers, tried in order
OSRM_BASE_URLS = [
    u.strip()
    for u in os.environ.get("CAMPUSNAV_OSRM_URLS", "https://router.project-osrm.org").split(",")
    if u.strip()
]
OUTDOOR_TIMEOUT_S = float(os.environ.get("CAMPUSNAV_OUTDOOR_TIMEOUT_S", "10"))

OVERPASS_ENDPOINTS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.osm.ch/api/interpreter",
]
OVERPASS_TIMEOUT_S = float(os.environ.get("CAMPUSNAV_OVERPASS_TIMEOUT_S", "90"))

HOST = os.environ.get("CAMPUSNAV_HOST", "127.0.0.1")
PORT = int(os.environ.get("CAMPUSNAV_PORT", "8000"))
