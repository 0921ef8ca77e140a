import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from typing import Callable, Dict, List

from . import settings
from .coordinator import RouterCoordinator
from .errors import DataFetchFailure, NoPathFound, RoutingError, UnresolvedEntity
from .graph_loader import artifact_path, load_campus
from .schemas import (
    BuildingToRoomRequest,
    ErrorDetail,
    GpsToBuildingRequest,
    GpsToBuildingRoomRequest,
    GpsToRoomRequest,
    OutdoorRequest,
    RoomToRoomRequest,
    RouteResponse,
)

app = FastAPI(title="Campus Navigator API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_cache: Dict[str, RouterCoordinator] = {}


def get_coordinator(campus_key: str) -> RouterCoordinator:
    if campus_key in _cache:
        return _cache[campus_key]
    prefix = settings.DATA_DIR / campus_key
    if not artifact_path(prefix, "graph.json").exists():
        raise HTTPException(status_code=404, detail=f"Campus graph not found for key '{campus_key}'")
    rc = RouterCoordinator(load_campus(str(prefix), campus_key))
    _cache[campus_key] = rc
    return rc


def _run(campus_key: str, call: Callable[[RouterCoordinator], List]) -> dict:
    try:
        rc = get_coordinator(campus_key)
        segments = call(rc)
    except UnresolvedEntity as e:
        raise HTTPException(status_code=404, detail=ErrorDetail(
            error="unresolved_entity", message=str(e), identifier=e.identifier).model_dump())
    except NoPathFound as e:
        raise HTTPException(status_code=422, detail=ErrorDetail(
            error="no_path", message=str(e)).model_dump())
    except DataFetchFailure as e:
        raise HTTPException(status_code=502, detail=ErrorDetail(
            error="data_fetch_failure", message=str(e)).model_dump())
    except RoutingError as e:
        raise HTTPException(status_code=500, detail=ErrorDetail(
            error="routing_error", message=str(e)).model_dump())
    return {"segments": segments, "meta": {"campus": campus_key, **rc.campus.meta}}


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.post("/route/gps-to-room", response_model=RouteResponse)
def gps_to_room(req: GpsToRoomRequest):
    return _run(req.campus_key, lambda rc: rc.route_gps_to_room(req.source.lnglat(), req.room_key))


@app.post("/route/gps-to-building-room", response_model=RouteResponse)
def gps_to_building_room(req: GpsToBuildingRoomRequest):
    return _run(req.campus_key,
                lambda rc: rc.route_gps_to_building_room(req.source.lnglat(), req.building, req.room_ref))


@app.post("/route/gps-to-building", response_model=RouteResponse)
def gps_to_building(req: GpsToBuildingRequest):
    return _run(req.campus_key, lambda rc: rc.route_gps_to_building(req.source.lnglat(), req.building))


@app.post("/route/room-to-room", response_model=RouteResponse)
def room_to_room(req: RoomToRoomRequest):
    return _run(req.campus_key, lambda rc: rc.route_room_to_room(req.from_room_key, req.to_room_key))


@app.post("/route/building-to-room", response_model=RouteResponse)
def building_to_room(req: BuildingToRoomRequest):
    return _run(req.campus_key,
                lambda rc: rc.route_building_to_room(req.from_building, req.to_building, req.room_ref))


@app.post("/route/outdoor", response_model=RouteResponse)
def outdoor(req: OutdoorRequest):
    return _run(req.campus_key, lambda rc: rc.route_outdoor_to_outdoor(req.source.lnglat(), req.target.lnglat()))


def serve():
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    serve()
