from pydantic import BaseModel, Field
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

LngLatPair = Tuple[float, float]


class OutdoorSegment(BaseModel):
    type: Literal["outdoor"] = "outdoor"
    line: List[LngLatPair]


class IndoorSegment(BaseModel):
    type: Literal["indoor"] = "indoor"
    level: str
    line: List[LngLatPair]


RouteSegment = Annotated[Union[OutdoorSegment, IndoorSegment], Field(discriminator="type")]


class LatLon(BaseModel):
    lat: float
    lon: float

    def lnglat(self) -> LngLatPair:
        return (self.lon, self.lat)


class GpsToRoomRequest(BaseModel):
    campus_key: str
    source: LatLon
    room_key: str


class GpsToBuildingRoomRequest(BaseModel):
    campus_key: str
    source: LatLon
    building: str
    room_ref: str


class GpsToBuildingRequest(BaseModel):
    campus_key: str
    source: LatLon
    building: str


class RoomToRoomRequest(BaseModel):
    campus_key: str
    from_room_key: str
    to_room_key: str


class BuildingToRoomRequest(BaseModel):
    campus_key: str
    from_building: str
    to_building: str
    room_ref: str


class OutdoorRequest(BaseModel):
    campus_key: str
    source: LatLon
    target: LatLon


class RouteResponse(BaseModel):
    segments: List[RouteSegment]
    meta: Dict[str, Any] = {}


class ErrorDetail(BaseModel):
    error: str
    message: str
    identifier: Optional[str] = None
