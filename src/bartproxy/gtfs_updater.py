"""Daily refresh of the static GTFS dataset from BART."""

import io
import logging
import re
import threading
import zipfile
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urljoin

import requests

from .config import Settings
from .gtfs_loader import StaticIndex
from .scheduler import add_interval_job

logger = logging.getLogger(__name__)

REQUIRED_FILES = ("trips.txt", "stops.txt")

# <meta http-equiv="refresh" content="0;url='https://...'" />
META_REFRESH_RE = re.compile(
    r"<meta[^>]*http-equiv=[\"']refresh[\"'][^>]*content=[\"'][^\"']*url=['\"]?([^'\"\s>]+)['\"]?",
    re.IGNORECASE,
)


class GTFSUpdater:
    """Downloads the published GTFS zip, replaces the local files and reloads the index."""

    def __init__(
        self,
        settings: Settings,
        static_index: StaticIndex,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.static_index = static_index
        self.session = session or requests.Session()
        self.scheduler = None
        self.last_update: Optional[datetime] = None
        self._lock = threading.Lock()
        self._updating = False

    @property
    def is_updating(self) -> bool:
        return self._updating

    def start(self, scheduler) -> None:
        self.scheduler = scheduler
        add_interval_job(
            scheduler,
            self.check_for_updates,
            job_id="gtfs_update",
            name="Refresh static GTFS dataset",
            hours=self.settings.gtfs_update_interval_hours,
        )
        logger.info(f"GTFS updater started (checks every {self.settings.gtfs_update_interval_hours}h)")

    def stop(self) -> None:
        if self.scheduler is not None and self.scheduler.get_job("gtfs_update") is not None:
            self.scheduler.remove_job("gtfs_update")

    def check_for_updates(self) -> bool:
        """
        Run one full update cycle.

        Returns:
            True if new data was installed and loaded. Failures are logged and
            leave the current dataset in place.
        """
        with self._lock:
            if self._updating:
                logger.info("GTFS update already in progress, skipping")
                return False
            self._updating = True

        logger.info("Checking for GTFS updates...")
        try:
            download_url = self.resolve_download_url(self.settings.gtfs_dataset_url)
            if not download_url:
                raise ValueError("Could not resolve GTFS download URL")
            logger.info(f"Resolved GTFS URL: {download_url}")

            payload = self.download(download_url)
            if not self.apply_update(payload):
                return False

            self.last_update = datetime.now(timezone.utc)
            logger.info("GTFS update completed successfully")
            return True
        except (requests.RequestException, ValueError, zipfile.BadZipFile, OSError) as e:
            logger.error(f"GTFS update failed: {e}")
            return False
        finally:
            self._updating = False

    def resolve_download_url(self, initial_url: str) -> Optional[str]:
        """
        Find the real zip location behind ``initial_url``.

        BART serves an HTML page with a meta refresh instead of an HTTP
        redirect; HTTP redirects are followed by requests itself.
        """
        response = self.session.get(initial_url, timeout=self.settings.request_timeout_seconds)
        response.raise_for_status()

        content_type = response.headers.get("content-type", "").lower()
        if "zip" in content_type or "octet-stream" in content_type:
            return response.url

        match = META_REFRESH_RE.search(response.text)
        if match:
            return urljoin(response.url or initial_url, match.group(1))
        return None

    def download(self, url: str) -> bytes:
        response = self.session.get(url, timeout=60)
        response.raise_for_status()
        return response.content

    def apply_update(self, payload: bytes) -> bool:
        """
        Validate the archive, extract it over the static data directory and
        reload the index.

        Raises:
            ValueError: If the archive lacks trips.txt or stops.txt.
            zipfile.BadZipFile: If the payload is not a zip archive.
        """
        with zipfile.ZipFile(io.BytesIO(payload)) as archive:
            names = set(archive.namelist())
            missing = [f for f in REQUIRED_FILES if f not in names]
            if missing:
                raise ValueError(f"Invalid GTFS zip: missing {', '.join(missing)}")

            logger.info(f"Extracting to {self.settings.static_data_dir}...")
            archive.extractall(self.settings.static_data_dir)

        return self.static_index.reload()
