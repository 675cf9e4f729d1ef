"""GTFS static data loader and in-memory index."""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .errors import LoadError
from .models import Route, Stop, StopTime, Trip

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {
    "stops.txt": ("stop_id", "stop_name", "stop_lat", "stop_lon"),
    "routes.txt": ("route_id",),
    "trips.txt": ("trip_id", "route_id"),
    "stop_times.txt": ("trip_id", "stop_id", "stop_sequence"),
}


@dataclass(frozen=True)
class StaticTables:
    """One consistent generation of the four reference tables."""
    stops: Dict[str, Stop] = field(default_factory=dict)
    routes: Dict[str, Route] = field(default_factory=dict)
    trips: Dict[str, Trip] = field(default_factory=dict)
    stop_times: Dict[str, Tuple[StopTime, ...]] = field(default_factory=dict)


class GTFSLoader:
    """Parses the GTFS text files found in a directory."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def load(self) -> StaticTables:
        """
        Read stops, routes, trips and stop_times into a fresh StaticTables.

        Raises:
            LoadError: If a file is missing, lacks a required column or holds
                an unparseable value.
        """
        logger.info(f"Loading GTFS static data from {self.data_dir}")
        stops = self._load_stops(self._read_table("stops.txt"))
        routes = self._load_routes(self._read_table("routes.txt"))
        stop_times = self._load_stop_times(self._read_table("stop_times.txt"))
        trips = self._load_trips(self._read_table("trips.txt"), stop_times)
        logger.info(
            f"Loaded {len(stops)} stops, {len(routes)} routes, {len(trips)} trips "
            f"and stop times for {len(stop_times)} trips"
        )
        return StaticTables(stops=stops, routes=routes, trips=trips, stop_times=stop_times)

    def _read_table(self, filename: str) -> pd.DataFrame:
        path = os.path.join(self.data_dir, filename)
        if not os.path.isfile(path):
            raise LoadError(f"Missing GTFS file: {path}")
        try:
            frame = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise LoadError(f"Failed to parse {path}: {e}") from e

        # Some feeds pad headers with spaces
        frame.columns = [str(c).strip() for c in frame.columns]
        missing = [c for c in REQUIRED_COLUMNS[filename] if c not in frame.columns]
        if missing:
            raise LoadError(f"{filename} is missing required columns: {', '.join(missing)}")
        return frame

    @staticmethod
    def _column(frame: pd.DataFrame, name: str) -> pd.Series:
        if name in frame.columns:
            return frame[name].str.strip()
        return pd.Series([""] * len(frame), index=frame.index, dtype=str)

    def _load_stops(self, frame: pd.DataFrame) -> Dict[str, Stop]:
        stops: Dict[str, Stop] = {}
        rows = zip(
            self._column(frame, "stop_id"),
            self._column(frame, "stop_name"),
            self._column(frame, "stop_code"),
            self._column(frame, "platform_code"),
            self._column(frame, "stop_lat"),
            self._column(frame, "stop_lon"),
        )
        for stop_id, name, code, platform, lat, lon in rows:
            if not stop_id:
                continue
            try:
                latitude = float(lat) if lat else 0.0
                longitude = float(lon) if lon else 0.0
            except ValueError as e:
                raise LoadError(f"Invalid coordinates for stop {stop_id}: {e}") from e
            stops[stop_id] = Stop(
                stop_id=stop_id,
                name=name,
                code=code,
                platform_code=platform,
                latitude=latitude,
                longitude=longitude,
            )
        return stops

    def _load_routes(self, frame: pd.DataFrame) -> Dict[str, Route]:
        routes: Dict[str, Route] = {}
        rows = zip(
            self._column(frame, "route_id"),
            self._column(frame, "route_short_name"),
            self._column(frame, "route_long_name"),
            self._column(frame, "route_color"),
            self._column(frame, "route_text_color"),
        )
        for route_id, short_name, long_name, color, text_color in rows:
            if not route_id:
                continue
            routes[route_id] = Route(
                route_id=route_id,
                short_name=short_name,
                long_name=long_name,
                color=color,
                text_color=text_color,
            )
        return routes

    def _load_stop_times(self, frame: pd.DataFrame) -> Dict[str, Tuple[StopTime, ...]]:
        frame = frame.assign(
            trip_id=self._column(frame, "trip_id"),
            stop_id=self._column(frame, "stop_id"),
            arrival_time=self._column(frame, "arrival_time"),
            departure_time=self._column(frame, "departure_time"),
        )
        frame = frame[frame["trip_id"] != ""]
        try:
            sequence = pd.to_numeric(frame["stop_sequence"].str.strip(), errors="raise")
        except ValueError as e:
            raise LoadError(f"Invalid stop_sequence in stop_times.txt: {e}") from e
        frame = frame.assign(stop_sequence=sequence.astype(int))

        grouped: Dict[str, Tuple[StopTime, ...]] = {}
        for trip_id, group in frame.sort_values(["trip_id", "stop_sequence"]).groupby("trip_id", sort=False):
            grouped[trip_id] = tuple(
                StopTime(
                    trip_id=trip_id,
                    stop_id=row.stop_id,
                    stop_sequence=int(row.stop_sequence),
                    arrival_time=row.arrival_time,
                    departure_time=row.departure_time,
                )
                for row in group.itertuples(index=False)
            )
        return grouped

    def _load_trips(
        self, frame: pd.DataFrame, stop_times: Dict[str, Tuple[StopTime, ...]]
    ) -> Dict[str, Trip]:
        trips: Dict[str, Trip] = {}
        rows = zip(
            self._column(frame, "trip_id"),
            self._column(frame, "route_id"),
            self._column(frame, "trip_headsign"),
            self._column(frame, "direction_id"),
        )
        for trip_id, route_id, headsign, direction in rows:
            if not trip_id:
                continue
            if direction not in ("", "0", "1"):
                raise LoadError(f"Invalid direction_id {direction!r} for trip {trip_id}")
            trips[trip_id] = Trip(
                trip_id=trip_id,
                route_id=route_id,
                headsign=headsign,
                direction_id=int(direction) if direction else None,
                stop_times=stop_times.get(trip_id, ()),
            )
        return trips


class StaticIndex:
    """
    Lookup structure over the static schedule.

    All four tables are held in one StaticTables value that is replaced as a
    whole on reload, so a reader holding a reference obtained before a reload
    keeps seeing one consistent generation.
    """

    def __init__(self, loader: GTFSLoader):
        self.loader = loader
        self._tables: Optional[StaticTables] = None

    @property
    def is_loaded(self) -> bool:
        return self._tables is not None

    @property
    def tables(self) -> StaticTables:
        """Current generation (empty tables if nothing has loaded yet)."""
        return self._tables if self._tables is not None else StaticTables()

    def load(self) -> None:
        """
        Initial load. Errors propagate: the service cannot start without
        static data.
        """
        self._tables = self.loader.load()

    def reload(self) -> bool:
        """
        Rebuild every table from the current files.

        Returns:
            True if the new data was swapped in. False if loading failed, in
            which case the previous tables stay in place.
        """
        logger.info("Reloading static data...")
        try:
            tables = self.loader.load()
        except LoadError as e:
            logger.error(f"Static data reload failed, keeping previous data: {e}")
            return False
        self._tables = tables
        return True

    def get_stop(self, stop_id: str) -> Optional[Stop]:
        return self.tables.stops.get(stop_id)

    def get_route(self, route_id: str) -> Optional[Route]:
        return self.tables.routes.get(route_id)

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        return self.tables.trips.get(trip_id)

    def get_stop_times(self, trip_id: str) -> Tuple[StopTime, ...]:
        return self.tables.stop_times.get(trip_id, ())

    def get_all_stops(self) -> List[Stop]:
        return list(self.tables.stops.values())

    def get_stats(self) -> Dict[str, int]:
        tables = self.tables
        return {
            "stops": len(tables.stops),
            "routes": len(tables.routes),
            "trips": len(tables.trips),
        }
