"""Data models for the BART real-time proxy."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple, Union


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Stop:
    """Represents a platform or station from stops.txt."""
    stop_id: str
    name: str
    code: str
    platform_code: str
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {
            "id": self.stop_id,
            "name": self.name,
            "code": self.code,
            "platform": self.platform_code,
            "lat": self.latitude,
            "lon": self.longitude,
        }


@dataclass(frozen=True)
class Route:
    """Represents a line from routes.txt."""
    route_id: str
    short_name: str
    long_name: str
    color: str  # Hex without leading '#', may be empty
    text_color: str


@dataclass(frozen=True)
class StopTime:
    """One scheduled visit of a trip to a stop."""
    trip_id: str
    stop_id: str
    stop_sequence: int
    arrival_time: str  # HH:MM:SS, may run past 24:00:00
    departure_time: str


@dataclass(frozen=True)
class Trip:
    """Represents a scheduled trip with its ordered stop visits."""
    trip_id: str
    route_id: str
    headsign: str
    direction_id: Optional[int]  # 0 or 1
    stop_times: Tuple[StopTime, ...] = ()


@dataclass(frozen=True)
class StopTimeEvent:
    """Predicted arrival or departure at a stop (Unix seconds)."""
    time: Optional[int] = None
    delay: Optional[int] = None


@dataclass(frozen=True)
class StopTimeUpdate:
    stop_id: Optional[str]
    arrival: Optional[StopTimeEvent] = None
    departure: Optional[StopTimeEvent] = None


@dataclass(frozen=True)
class TripUpdateEntity:
    """Feed entity carrying a trip update."""
    entity_id: str
    trip_id: Optional[str]
    route_id: Optional[str] = None
    stop_time_updates: Tuple[StopTimeUpdate, ...] = ()
    vehicle_label: Optional[str] = None
    occupancy_status: Optional[int] = None


@dataclass(frozen=True)
class AlertEntity:
    """Feed entity carrying a service alert."""
    entity_id: str
    header: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    active_periods: Tuple[Tuple[Optional[int], Optional[int]], ...] = ()
    informed_stop_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class UnknownEntity:
    """Feed entity of a kind we do not consume (e.g. vehicle positions only)."""
    entity_id: str


FeedEntity = Union[TripUpdateEntity, AlertEntity, UnknownEntity]


@dataclass(frozen=True)
class FeedSnapshot:
    """A decoded real-time payload and the instant it was captured."""
    entities: Tuple[FeedEntity, ...]
    captured_at: datetime


@dataclass(frozen=True)
class FeedStatus:
    """Read model for one feed slot."""
    last_update: Optional[datetime]
    has_data: bool
    error: Optional[str]
    successes: int
    failures: int

    def to_dict(self) -> dict:
        return {
            "lastUpdate": _isoformat(self.last_update),
            "hasData": self.has_data,
            "error": self.error,
        }


@dataclass
class ArrivalPrediction:
    """A live arrival at the queried stop, projected onto the schedule."""
    trip_id: str
    route_id: str
    route_name: str
    route_long_name: str
    headsign: str
    direction: str  # "outbound" or "inbound"
    scheduled_arrival: datetime
    estimated_arrival: datetime
    minutes_until_arrival: int
    delay: int  # Seconds
    route_color: Optional[str] = None
    route_text_color: Optional[str] = None
    vehicle_label: Optional[str] = None
    occupancy_status: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "tripId": self.trip_id,
            "routeId": self.route_id,
            "routeName": self.route_name,
            "routeLongName": self.route_long_name,
            "headsign": self.headsign,
            "direction": self.direction,
            "scheduledArrival": _isoformat(self.scheduled_arrival),
            "estimatedArrival": _isoformat(self.estimated_arrival),
            "minutesUntilArrival": self.minutes_until_arrival,
            "delay": self.delay,
            "routeColor": self.route_color,
            "routeTextColor": self.route_text_color,
        }
        if self.occupancy_status is not None:
            data["occupancyStatus"] = self.occupancy_status
        if self.vehicle_label:
            data["vehicleLabel"] = self.vehicle_label
        return data


@dataclass(frozen=True)
class ActivePeriod:
    start: Optional[datetime]
    end: Optional[datetime]


@dataclass
class Alert:
    """Represents a service alert affecting a stop."""
    header: str
    description: str
    url: Optional[str] = None
    active_periods: List[ActivePeriod] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "header": self.header,
            "description": self.description,
            "url": self.url,
            "activePeriod": [
                {"start": _isoformat(p.start), "end": _isoformat(p.end)}
                for p in self.active_periods
            ],
        }


@dataclass
class StopInfo:
    """Complete real-time picture for one stop."""
    stop: Stop
    upcoming_trips: List[ArrivalPrediction]
    alerts: List[Alert]
    warnings: List[str]
    last_updated: datetime

    def to_dict(self) -> dict:
        return {
            "stop": self.stop.to_dict(),
            "upcomingTrips": [t.to_dict() for t in self.upcoming_trips],
            "alerts": [a.to_dict() for a in self.alerts],
            "warnings": list(self.warnings),
            "lastUpdated": _isoformat(self.last_updated),
        }


@dataclass
class NextArrival:
    destination: str
    minutes_until_arrival: int
    status: str  # "arriving" or "scheduled"
    vehicle: Optional[str] = None
    occupancy: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "destination": self.destination,
            "minutesUntilArrival": self.minutes_until_arrival,
            "status": self.status,
        }
        if self.vehicle:
            data["vehicle"] = self.vehicle
        if self.occupancy is not None:
            data["occupancy"] = self.occupancy
        return data


@dataclass
class NextArrivals:
    """Simplified "next N trains" view of a stop."""
    station: str
    platform: str
    direction: str
    arrivals: List[NextArrival]
    last_updated: datetime
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "station": self.station,
            "platform": self.platform,
            "direction": self.direction,
            "nextArrivals": [a.to_dict() for a in self.arrivals],
            "lastUpdated": _isoformat(self.last_updated),
        }
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data
