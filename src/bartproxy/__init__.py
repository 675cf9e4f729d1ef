"""bartproxy - Real-time BART arrivals from GTFS static and GTFS-Realtime data."""

__version__ = "0.1.0"

from .models import Stop, Route, Trip, FeedSnapshot, ArrivalPrediction, Alert, StopInfo, NextArrivals
from .errors import NotFoundError, TransportError, DecodeError, LoadError
from .gtfs_loader import GTFSLoader, StaticIndex
from .feed_poller import FeedPoller, FeedKind
from .transit_service import TransitService
from .gtfs_updater import GTFSUpdater
from .app import BartProxyApp

__all__ = [
    "BartProxyApp",
    "TransitService",
    "FeedPoller",
    "FeedKind",
    "GTFSLoader",
    "StaticIndex",
    "GTFSUpdater",
    "Stop",
    "Route",
    "Trip",
    "FeedSnapshot",
    "ArrivalPrediction",
    "Alert",
    "StopInfo",
    "NextArrivals",
    "NotFoundError",
    "TransportError",
    "DecodeError",
    "LoadError",
]
