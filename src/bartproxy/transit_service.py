"""Merges live trip updates with the static schedule for a stop."""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .config import Settings, get_settings
from .errors import NotFoundError
from .feed_poller import FeedKind, FeedPoller, utc_now
from .gtfs_loader import StaticIndex, StaticTables
from .models import (
    ActivePeriod,
    Alert,
    AlertEntity,
    ArrivalPrediction,
    FeedSnapshot,
    NextArrival,
    NextArrivals,
    StopInfo,
    TripUpdateEntity,
)

logger = logging.getLogger(__name__)

EASTBOUND_DESTINATIONS = ("antioch", "berryessa", "dublin", "pittsburg")
WESTBOUND_DESTINATIONS = ("millbrae", "sfo", "daly city", "richmond")


def _from_timestamp(seconds: Optional[int]) -> Optional[datetime]:
    if not seconds:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _hex_color(value: str) -> Optional[str]:
    return f"#{value}" if value else None


def matches_direction(prediction: ArrivalPrediction, direction: Optional[str]) -> bool:
    """
    BART platform heuristic: eastbound trains run on routes whose short name
    contains "n" or head to an East Bay terminus; westbound on routes with "s"
    or towards the Peninsula. Unknown directions match everything.
    """
    if not direction:
        return True

    route_name = (prediction.route_name or "").lower()
    headsign = (prediction.headsign or "").lower()
    direction = direction.lower()

    if direction == "eastbound":
        return "n" in route_name or any(d in headsign for d in EASTBOUND_DESTINATIONS)
    if direction == "westbound":
        return "s" in route_name or any(d in headsign for d in WESTBOUND_DESTINATIONS)
    return True


def short_destination(headsign: Optional[str]) -> str:
    """'Richmond / Antioch' -> 'Antioch'."""
    if not headsign:
        return "Unknown"
    return headsign.split(" / ")[-1]


class TransitService:
    """
    Answers "what is arriving at this stop, and when?".

    Stateless: every call reads the current static tables and feed
    snapshots once and computes the answer from them.
    """

    def __init__(
        self,
        static_index: StaticIndex,
        poller: FeedPoller,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.static_index = static_index
        self.poller = poller
        self.settings = settings or get_settings()
        self._clock = clock

    def get_stop_info(self, stop_id: str, direction: Optional[str] = None) -> StopInfo:
        """
        Get upcoming arrivals, alerts and data-quality warnings for a stop.

        Args:
            stop_id: GTFS stop ID (e.g., "M20-2").
            direction: Optional "eastbound" / "westbound" filter.

        Raises:
            NotFoundError: If the stop is not in the static index.
        """
        tables = self.static_index.tables
        stop = tables.stops.get(stop_id)
        if stop is None:
            raise NotFoundError(f"Stop {stop_id} not found")

        now = self._clock()
        info = StopInfo(stop=stop, upcoming_trips=[], alerts=[], warnings=[], last_updated=now)

        trips_feed = self.poller.get_trips()
        if trips_feed is None:
            trips_status = self.poller.get_status(FeedKind.TRIPS)
            if trips_status.error:
                info.warnings.append(f"Real-time trip data unavailable: {trips_status.error}")
            else:
                info.warnings.append("Real-time trip data initializing...")
        else:
            age = (now - trips_feed.captured_at).total_seconds()
            if age > self.settings.stale_after_seconds:
                info.warnings.append(f"Real-time data is stale ({_round_half_up(age)}s old)")
            else:
                info.last_updated = trips_feed.captured_at
            info.upcoming_trips = self._project_trips(trips_feed, tables, stop_id, now)

        info.upcoming_trips.sort(key=lambda t: t.estimated_arrival)
        if direction:
            info.upcoming_trips = [t for t in info.upcoming_trips if matches_direction(t, direction)]

        alerts_feed = self.poller.get_alerts()
        if alerts_feed is not None:
            info.alerts = self._project_alerts(alerts_feed, stop_id)
        elif self.poller.get_status(FeedKind.ALERTS).error:
            info.warnings.append("Real-time alerts data unavailable")

        return info

    def _project_trips(
        self, feed: FeedSnapshot, tables: StaticTables, stop_id: str, now: datetime
    ) -> List[ArrivalPrediction]:
        now_ts = now.timestamp()
        predictions: List[ArrivalPrediction] = []

        for entity in feed.entities:
            if not isinstance(entity, TripUpdateEntity) or not entity.trip_id:
                continue

            # Real-time and static data can be briefly out of sync
            trip = tables.trips.get(entity.trip_id)
            if trip is None:
                continue
            route = tables.routes.get(trip.route_id)

            for update in entity.stop_time_updates:
                if update.stop_id != stop_id:
                    continue
                if update.arrival is None and update.departure is None:
                    continue

                arrival_time = (update.arrival.time if update.arrival else None) or (
                    update.departure.time if update.departure else None
                )
                if not arrival_time or arrival_time <= now_ts:
                    continue
                delay = (
                    (update.arrival.delay if update.arrival else None)
                    or (update.departure.delay if update.departure else None)
                    or 0
                )

                estimated = datetime.fromtimestamp(arrival_time, tz=timezone.utc)
                predictions.append(
                    ArrivalPrediction(
                        trip_id=trip.trip_id,
                        route_id=trip.route_id,
                        route_name=(route.short_name if route else "") or trip.route_id,
                        route_long_name=route.long_name if route else "",
                        headsign=trip.headsign,
                        direction="outbound" if trip.direction_id == 0 else "inbound",
                        scheduled_arrival=estimated - timedelta(seconds=delay),
                        estimated_arrival=estimated,
                        minutes_until_arrival=_round_half_up((arrival_time - now_ts) / 60),
                        delay=delay,
                        route_color=_hex_color(route.color) if route else None,
                        route_text_color=_hex_color(route.text_color) if route else None,
                        vehicle_label=entity.vehicle_label,
                        occupancy_status=entity.occupancy_status,
                    )
                )

        logger.debug(f"Projected {len(predictions)} arrivals for stop {stop_id}")
        return predictions

    @staticmethod
    def _project_alerts(feed: FeedSnapshot, stop_id: str) -> List[Alert]:
        alerts: List[Alert] = []
        for entity in feed.entities:
            if not isinstance(entity, AlertEntity) or stop_id not in entity.informed_stop_ids:
                continue
            alerts.append(
                Alert(
                    header=entity.header or "Alert",
                    description=entity.description or "",
                    url=entity.url,
                    active_periods=[
                        ActivePeriod(start=_from_timestamp(start), end=_from_timestamp(end))
                        for start, end in entity.active_periods
                    ],
                )
            )
        return alerts

    def get_next_arrivals(
        self, stop_id: Optional[str] = None, direction: Optional[str] = None, limit: int = 4
    ) -> NextArrivals:
        """
        Simplified view of the next ``limit`` trains for a stop.

        Stop and direction default to the configured station.
        """
        stop_id = stop_id or self.settings.station_id
        direction = direction or self.settings.station_direction
        info = self.get_stop_info(stop_id, direction)

        arrivals = [
            NextArrival(
                destination=short_destination(trip.headsign),
                minutes_until_arrival=trip.minutes_until_arrival,
                status="arriving" if trip.minutes_until_arrival <= 1 else "scheduled",
                vehicle=trip.vehicle_label,
                occupancy=trip.occupancy_status,
            )
            for trip in info.upcoming_trips[:limit]
        ]
        return NextArrivals(
            station=info.stop.name,
            platform=info.stop.platform_code,
            direction=direction or "all",
            arrivals=arrivals,
            last_updated=info.last_updated,
            warnings=info.warnings,
        )

    def list_stops(self) -> List[Dict[str, str]]:
        return [
            {"id": s.stop_id, "name": s.name, "code": s.code, "platform": s.platform_code}
            for s in self.static_index.get_all_stops()
        ]

    def get_health(self) -> dict:
        """Healthy while the trip feed is error-free or still has data to serve."""
        trips = self.poller.get_status(FeedKind.TRIPS)
        healthy = not trips.error or trips.has_data
        return {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": self._clock().isoformat(),
            "monitor": self.poller.get_status_report(),
            "staticDataLoaded": self.static_index.get_stats(),
        }
