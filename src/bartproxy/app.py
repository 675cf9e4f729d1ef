"""Wires the static index, feed poller, updater and transit service together."""

import logging
from typing import Optional

from .config import Settings, get_settings
from .feed_poller import FeedPoller
from .gtfs_loader import GTFSLoader, StaticIndex
from .gtfs_updater import GTFSUpdater
from .scheduler import create_scheduler
from .transit_service import TransitService

logger = logging.getLogger(__name__)


class BartProxyApp:
    """
    Owns every long-lived component.

    Lifecycle: construct, start() once at startup, shutdown() on exit.
    Request handlers only use ``service``.
    """

    def __init__(self, settings: Optional[Settings] = None, scheduler=None):
        self.settings = settings or get_settings()
        self.scheduler = scheduler or create_scheduler()
        self.static_index = StaticIndex(GTFSLoader(self.settings.static_data_dir))
        self.poller = FeedPoller(self.settings, scheduler=self.scheduler)
        self.updater = GTFSUpdater(self.settings, self.static_index)
        self.service = TransitService(self.static_index, self.poller, self.settings)

    def start(self) -> None:
        """
        Load static data and start background work.

        Raises:
            LoadError: If the static GTFS files cannot be loaded.
        """
        self.static_index.load()

        station = self.static_index.get_stop(self.settings.station_id)
        logger.info(
            f"Station: {self.settings.station_id} ({station.name if station else 'Unknown'}), "
            f"direction: {self.settings.station_direction}"
        )

        self.scheduler.start()
        self.poller.start()
        self.updater.start(self.scheduler)

    def shutdown(self) -> None:
        self.updater.stop()
        self.poller.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("bartproxy shut down")
