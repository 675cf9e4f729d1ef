"""Tests for TransitService."""

import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

# Add src to path so we can import bartproxy
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from bartproxy.config import Settings
from bartproxy.errors import NotFoundError
from bartproxy.feed_poller import FeedKind, FeedPoller
from bartproxy.gtfs_loader import GTFSLoader, StaticIndex
from bartproxy.models import (
    AlertEntity,
    ArrivalPrediction,
    FeedSnapshot,
    FeedStatus,
    StopTimeEvent,
    StopTimeUpdate,
    TripUpdateEntity,
    UnknownEntity,
)
from bartproxy.transit_service import TransitService, matches_direction, short_destination
from gtfs_fixtures import write_gtfs

NOW = datetime(2026, 10, 19, 15, 0, 0, tzinfo=timezone.utc)
NOW_TS = int(NOW.timestamp())


def _trip_update(trip_id, stop_id="M20-2", seconds_ahead=90, delay=None, departure=False, **kwargs):
    event = StopTimeEvent(time=NOW_TS + seconds_ahead, delay=delay)
    update = StopTimeUpdate(
        stop_id=stop_id,
        arrival=None if departure else event,
        departure=event if departure else None,
    )
    return TripUpdateEntity(
        entity_id=f"e-{trip_id}-{seconds_ahead}",
        trip_id=trip_id,
        stop_time_updates=(update,),
        **kwargs,
    )


class FakeFeeds:
    """Drives a FeedPoller mock from plain snapshot/status values."""

    def __init__(self):
        self.snapshots = {FeedKind.TRIPS: None, FeedKind.ALERTS: None}
        self.errors = {FeedKind.TRIPS: None, FeedKind.ALERTS: None}
        self.poller = MagicMock(spec=FeedPoller)
        self.poller.get_trips.side_effect = lambda: self.snapshots[FeedKind.TRIPS]
        self.poller.get_alerts.side_effect = lambda: self.snapshots[FeedKind.ALERTS]
        self.poller.get_status.side_effect = self._status
        self.poller.get_status_report.return_value = {}

    def _status(self, kind):
        snapshot = self.snapshots[kind]
        return FeedStatus(
            last_update=snapshot.captured_at if snapshot else None,
            has_data=snapshot is not None,
            error=self.errors[kind],
            successes=1 if snapshot else 0,
            failures=1 if self.errors[kind] else 0,
        )

    def set_trips(self, entities, captured_at=NOW):
        self.snapshots[FeedKind.TRIPS] = FeedSnapshot(entities=tuple(entities), captured_at=captured_at)

    def set_alerts(self, entities, captured_at=NOW):
        self.snapshots[FeedKind.ALERTS] = FeedSnapshot(entities=tuple(entities), captured_at=captured_at)


class TransitServiceTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        write_gtfs(self._tmp.name)
        self.index = StaticIndex(GTFSLoader(self._tmp.name))
        self.index.load()
        self.feeds = FakeFeeds()
        self.settings = Settings(station_id="M20-2", station_direction="eastbound")
        self.service = TransitService(self.index, self.feeds.poller, self.settings, clock=lambda: NOW)

    def tearDown(self):
        self._tmp.cleanup()


class TestGetStopInfo(TransitServiceTestCase):
    """Test projection of trip updates onto the schedule."""

    def test_unknown_stop_raises_without_realtime_lookup(self):
        self.feeds.set_trips([_trip_update("T100")])

        with self.assertRaises(NotFoundError):
            self.service.get_stop_info("NONEXISTENT")

        self.assertEqual(self.feeds.poller.method_calls, [])

    def test_single_arrival_with_delay(self):
        self.feeds.set_trips([_trip_update("T100", seconds_ahead=90, delay=30)])

        info = self.service.get_stop_info("M20-2")

        self.assertEqual(info.stop.name, "Montgomery St.")
        self.assertEqual(len(info.upcoming_trips), 1)
        trip = info.upcoming_trips[0]
        self.assertEqual(trip.trip_id, "T100")
        self.assertEqual(trip.route_id, "1")
        self.assertEqual(trip.route_name, "Yellow-N")
        self.assertEqual(trip.route_long_name, "Millbrae/SFO - Antioch")
        self.assertEqual(trip.route_color, "#FFFF33")
        self.assertEqual(trip.route_text_color, "#000000")
        self.assertEqual(trip.headsign, "Antioch")
        self.assertEqual(trip.direction, "outbound")
        self.assertEqual(trip.delay, 30)
        self.assertEqual(trip.minutes_until_arrival, 2)
        self.assertEqual(trip.estimated_arrival, NOW + timedelta(seconds=90))
        self.assertEqual(trip.scheduled_arrival, trip.estimated_arrival - timedelta(seconds=30))
        self.assertEqual(info.warnings, [])
        self.assertEqual(info.last_updated, NOW)

    def test_missing_delay_defaults_to_zero(self):
        self.feeds.set_trips([_trip_update("T200", stop_id="M20-1", seconds_ahead=300)])

        trip = self.service.get_stop_info("M20-1").upcoming_trips[0]

        self.assertEqual(trip.delay, 0)
        self.assertEqual(trip.scheduled_arrival, trip.estimated_arrival)
        self.assertEqual(trip.direction, "inbound")

    def test_departure_used_when_arrival_missing(self):
        self.feeds.set_trips([_trip_update("T100", seconds_ahead=600, delay=60, departure=True)])

        trip = self.service.get_stop_info("M20-2").upcoming_trips[0]

        self.assertEqual(trip.estimated_arrival, NOW + timedelta(seconds=600))
        self.assertEqual(trip.delay, 60)
        self.assertEqual(trip.minutes_until_arrival, 10)

    def test_unresolvable_trip_is_skipped(self):
        self.feeds.set_trips([_trip_update("UNKNOWN-TRIP"), _trip_update("T100")])

        info = self.service.get_stop_info("M20-2")

        self.assertEqual([t.trip_id for t in info.upcoming_trips], ["T100"])
        self.assertEqual(info.warnings, [])

    def test_only_future_arrivals_at_queried_stop(self):
        no_times = TripUpdateEntity(
            entity_id="x",
            trip_id="T100",
            stop_time_updates=(StopTimeUpdate(stop_id="M20-2"),),
        )
        self.feeds.set_trips(
            [
                _trip_update("T100", seconds_ahead=-30),
                _trip_update("T100", seconds_ahead=0),
                _trip_update("T100", stop_id="EMBR-1", seconds_ahead=120),
                no_times,
                UnknownEntity(entity_id="v1"),
                AlertEntity(entity_id="a1", informed_stop_ids=("M20-2",)),
                _trip_update("T300", seconds_ahead=1),
            ]
        )

        info = self.service.get_stop_info("M20-2")

        self.assertEqual([t.trip_id for t in info.upcoming_trips], ["T300"])
        for trip in info.upcoming_trips:
            self.assertGreater(trip.estimated_arrival, NOW)

    def test_predictions_sorted_by_estimated_arrival(self):
        self.feeds.set_trips(
            [
                _trip_update("T300", seconds_ahead=900),
                _trip_update("T100", seconds_ahead=120),
                _trip_update("T300", seconds_ahead=60),
                _trip_update("T100", seconds_ahead=480),
            ]
        )

        trips = self.service.get_stop_info("M20-2").upcoming_trips

        arrivals = [t.estimated_arrival for t in trips]
        self.assertEqual(arrivals, sorted(arrivals))
        self.assertEqual(len(trips), 4)

    def test_vehicle_details_propagate(self):
        self.feeds.set_trips([_trip_update("T100", vehicle_label="10-car", occupancy_status=1)])

        trip = self.service.get_stop_info("M20-2").upcoming_trips[0]

        self.assertEqual(trip.vehicle_label, "10-car")
        self.assertEqual(trip.occupancy_status, 1)
        self.assertEqual(trip.to_dict()["vehicleLabel"], "10-car")
        self.assertEqual(trip.to_dict()["occupancyStatus"], 1)


class TestDirectionFilter(TransitServiceTestCase):
    """Test the eastbound/westbound platform heuristic."""

    def setUp(self):
        super().setUp()
        self.feeds.set_trips(
            [
                _trip_update("T100", seconds_ahead=120),  # Yellow-N to Antioch
                _trip_update("T200", seconds_ahead=240),  # Yellow-S to SFO/Millbrae
                _trip_update("T300", seconds_ahead=360),  # Red-S to Richmond / Antioch
            ]
        )

    def _trip_ids(self, direction):
        return [t.trip_id for t in self.service.get_stop_info("M20-2", direction).upcoming_trips]

    def test_eastbound(self):
        self.assertEqual(self._trip_ids("eastbound"), ["T100", "T300"])

    def test_westbound(self):
        self.assertEqual(self._trip_ids("westbound"), ["T200", "T300"])

    def test_case_insensitive(self):
        self.assertEqual(self._trip_ids("EastBound"), ["T100", "T300"])

    def test_other_direction_passes_everything(self):
        self.assertEqual(self._trip_ids("northbound"), ["T100", "T200", "T300"])
        self.assertEqual(self._trip_ids(None), ["T100", "T200", "T300"])

    def test_matches_direction_headsigns(self):
        def prediction(route_name, headsign):
            return ArrivalPrediction(
                trip_id="T",
                route_id="R",
                route_name=route_name,
                route_long_name="",
                headsign=headsign,
                direction="outbound",
                scheduled_arrival=NOW,
                estimated_arrival=NOW,
                minutes_until_arrival=0,
                delay=0,
            )

        self.assertTrue(matches_direction(prediction("Red", "Richmond / Antioch"), "eastbound"))
        self.assertFalse(matches_direction(prediction("Red", "SFO/Millbrae"), "eastbound"))
        self.assertTrue(matches_direction(prediction("Red", "Dublin/Pleasanton"), "eastbound"))
        self.assertTrue(matches_direction(prediction("Red", "Daly City"), "westbound"))
        self.assertFalse(matches_direction(prediction("Red", "Berryessa"), "westbound"))
        self.assertTrue(matches_direction(prediction("Green-N", ""), "eastbound"))
        self.assertTrue(matches_direction(prediction("Green-S", ""), "westbound"))


class TestWarnings(TransitServiceTestCase):
    """Test degraded-mode annotations."""

    def test_trips_feed_initializing(self):
        info = self.service.get_stop_info("M20-2")

        self.assertEqual(info.upcoming_trips, [])
        self.assertEqual(info.alerts, [])
        self.assertEqual(len(info.warnings), 1)
        self.assertIn("initializing", info.warnings[0])
        self.assertEqual(info.last_updated, NOW)

    def test_trips_feed_unavailable(self):
        self.feeds.errors[FeedKind.TRIPS] = "HTTP 503: Service Unavailable"

        info = self.service.get_stop_info("M20-2", "eastbound")

        self.assertEqual(info.upcoming_trips, [])
        self.assertEqual(info.warnings, ["Real-time trip data unavailable: HTTP 503: Service Unavailable"])

    def test_stale_snapshot_still_served(self):
        captured = NOW - timedelta(seconds=300.4)
        self.feeds.set_trips([_trip_update("T100")], captured_at=captured)

        info = self.service.get_stop_info("M20-2")

        self.assertEqual(info.warnings, ["Real-time data is stale (300s old)"])
        self.assertEqual(len(info.upcoming_trips), 1)
        self.assertEqual(info.last_updated, NOW)

    def test_fresh_snapshot_sets_last_updated(self):
        captured = NOW - timedelta(seconds=45)
        self.feeds.set_trips([], captured_at=captured)

        info = self.service.get_stop_info("M20-2")

        self.assertEqual(info.warnings, [])
        self.assertEqual(info.last_updated, captured)

    def test_alerts_unavailable_warning(self):
        self.feeds.set_trips([])
        self.feeds.errors[FeedKind.ALERTS] = "connection refused"

        info = self.service.get_stop_info("M20-2")

        self.assertEqual(info.warnings, ["Real-time alerts data unavailable"])
        self.assertEqual(info.alerts, [])

    def test_alerts_not_loaded_yet_is_silent(self):
        self.feeds.set_trips([])
        self.assertEqual(self.service.get_stop_info("M20-2").warnings, [])


class TestAlerts(TransitServiceTestCase):
    """Test alert filtering by informed stop."""

    def test_alerts_for_stop(self):
        self.feeds.set_trips([])
        self.feeds.set_alerts(
            [
                AlertEntity(
                    entity_id="a1",
                    header="Elevator outage",
                    description="Use the stairs",
                    url="https://www.bart.gov/alerts",
                    active_periods=((NOW_TS, NOW_TS + 3600), (None, NOW_TS)),
                    informed_stop_ids=("EMBR-1", "M20-2"),
                ),
                AlertEntity(entity_id="a2", header="Elsewhere", informed_stop_ids=("EMBR-1",)),
                AlertEntity(entity_id="a3", informed_stop_ids=("M20-2",)),
                _trip_update("T100"),
            ]
        )

        alerts = self.service.get_stop_info("M20-2").alerts

        self.assertEqual(len(alerts), 2)
        first, second = alerts
        self.assertEqual(first.header, "Elevator outage")
        self.assertEqual(first.description, "Use the stairs")
        self.assertEqual(first.url, "https://www.bart.gov/alerts")
        self.assertEqual(first.active_periods[0].start, NOW)
        self.assertEqual(first.active_periods[0].end, NOW + timedelta(hours=1))
        self.assertIsNone(first.active_periods[1].start)
        self.assertEqual(second.header, "Alert")
        self.assertEqual(second.description, "")
        self.assertIsNone(second.url)
        self.assertEqual(
            first.to_dict()["activePeriod"][0],
            {"start": NOW.isoformat(), "end": (NOW + timedelta(hours=1)).isoformat()},
        )


class TestNextArrivals(TransitServiceTestCase):
    """Test the simplified next-trains view."""

    def test_defaults_to_configured_station_and_direction(self):
        self.feeds.set_trips(
            [
                _trip_update("T300", seconds_ahead=50, vehicle_label="9-car", occupancy_status=2),
                _trip_update("T100", seconds_ahead=400),
                _trip_update("T100", seconds_ahead=800),
                _trip_update("T300", seconds_ahead=1200),
                _trip_update("T100", seconds_ahead=1600),
            ]
        )

        result = self.service.get_next_arrivals()

        self.assertEqual(result.station, "Montgomery St.")
        self.assertEqual(result.platform, "2")
        self.assertEqual(result.direction, "eastbound")
        self.assertEqual(len(result.arrivals), 4)
        first = result.arrivals[0]
        self.assertEqual(first.destination, "Antioch")
        self.assertEqual(first.minutes_until_arrival, 1)
        self.assertEqual(first.status, "arriving")
        self.assertEqual(first.vehicle, "9-car")
        self.assertEqual(first.occupancy, 2)
        self.assertEqual(result.arrivals[1].status, "scheduled")
        self.assertEqual(result.arrivals[1].minutes_until_arrival, 7)

    def test_limit_and_warnings(self):
        result = self.service.get_next_arrivals("M20-2", "westbound", limit=2)

        self.assertEqual(result.arrivals, [])
        data = result.to_dict()
        self.assertEqual(data["direction"], "westbound")
        self.assertIn("initializing", data["warnings"][0])

    def test_unknown_stop(self):
        with self.assertRaises(NotFoundError):
            self.service.get_next_arrivals("NONEXISTENT")

    def test_short_destination(self):
        self.assertEqual(short_destination("Richmond / Antioch"), "Antioch")
        self.assertEqual(short_destination("SFO/Millbrae"), "SFO/Millbrae")
        self.assertEqual(short_destination(""), "Unknown")


class TestServiceStatus(TransitServiceTestCase):
    """Test stop listing and health reporting."""

    def test_list_stops(self):
        stops = {s["id"]: s for s in self.service.list_stops()}
        self.assertEqual(stops["M20-2"], {"id": "M20-2", "name": "Montgomery St.", "code": "M20", "platform": "2"})

    def test_health(self):
        self.assertEqual(self.service.get_health()["status"], "healthy")

        self.feeds.errors[FeedKind.TRIPS] = "HTTP 500"
        health = self.service.get_health()
        self.assertEqual(health["status"], "unhealthy")
        self.assertEqual(health["staticDataLoaded"], {"stops": 3, "routes": 3, "trips": 3})

        self.feeds.set_trips([])
        self.assertEqual(self.service.get_health()["status"], "healthy")

    def test_stop_info_to_dict(self):
        self.feeds.set_trips([_trip_update("T100")])

        data = self.service.get_stop_info("M20-2").to_dict()

        self.assertEqual(data["stop"]["id"], "M20-2")
        self.assertEqual(data["stop"]["platform"], "2")
        self.assertEqual(data["upcomingTrips"][0]["tripId"], "T100")
        self.assertEqual(data["lastUpdated"], NOW.isoformat())


if __name__ == "__main__":
    unittest.main()
