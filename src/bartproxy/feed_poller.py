"""Background poller for the BART GTFS-Realtime trip update and alert feeds."""

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import requests

from .config import Settings
from .errors import TransportError
from .feed_decoder import decode_feed
from .models import FeedEntity, FeedSnapshot, FeedStatus
from .scheduler import add_interval_job

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 1  # 1s, 2s, 4s ...

REQUEST_HEADERS = {
    "User-Agent": "bartproxy/0.1.0",
    "Accept": "application/x-protobuf, application/octet-stream",
    "Connection": "keep-alive",
}


class FeedKind:
    TRIPS = "trips"
    ALERTS = "alerts"

    ALL = (TRIPS, ALERTS)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _SlotState:
    """Everything known about one feed, swapped in as a single value."""
    snapshot: Optional[FeedSnapshot] = None
    error: Optional[str] = None
    successes: int = 0
    failures: int = 0


class FeedPoller:
    """
    Keeps the last good snapshot of each real-time feed.

    Each feed kind has its own slot. A refresh either replaces the slot with a
    new snapshot or records the failure next to the old one; readers never
    wait on the network and never see a snapshot without its timestamp.
    """

    def __init__(
        self,
        settings: Settings,
        session: Optional[requests.Session] = None,
        scheduler=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        decoder: Callable[[bytes], List[FeedEntity]] = decode_feed,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update(REQUEST_HEADERS)
        self.scheduler = scheduler
        self._sleep = sleep
        self._clock = clock
        self._decoder = decoder
        self._urls = {
            FeedKind.TRIPS: settings.bart_trips_url,
            FeedKind.ALERTS: settings.bart_alerts_url,
        }
        self._slots: Dict[str, _SlotState] = {kind: _SlotState() for kind in FeedKind.ALL}
        self._write_lock = threading.Lock()
        self._start_lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Refresh both feeds once, then schedule trips every T seconds and
        alerts every 2T. Later calls do nothing.
        """
        with self._start_lock:
            if self._running:
                return
            self._running = True

        for kind in FeedKind.ALL:
            self.refresh(kind)

        if self.scheduler is not None:
            interval = self.settings.refresh_interval_seconds
            add_interval_job(
                self.scheduler,
                self.refresh,
                job_id="refresh_trips",
                name="Refresh GTFS-RT trip updates",
                seconds=interval,
                args=[FeedKind.TRIPS],
            )
            # Alerts change less often
            add_interval_job(
                self.scheduler,
                self.refresh,
                job_id="refresh_alerts",
                name="Refresh GTFS-RT alerts",
                seconds=interval * 2,
                args=[FeedKind.ALERTS],
            )
        logger.info("GTFS real-time monitor started")

    def stop(self) -> None:
        with self._start_lock:
            if not self._running:
                return
            self._running = False
        if self.scheduler is not None:
            for job_id in ("refresh_trips", "refresh_alerts"):
                if self.scheduler.get_job(job_id) is not None:
                    self.scheduler.remove_job(job_id)
        logger.info("GTFS real-time monitor stopped")

    def refresh(self, kind: str) -> bool:
        """
        Fetch and decode one feed, retrying with exponential backoff.

        Returns:
            True if a new snapshot was stored, False if every attempt failed.
        """
        try:
            entities = self._fetch_with_retry(kind)
        except TransportError as e:
            with self._write_lock:
                state = self._slots[kind]
                self._slots[kind] = replace(state, error=str(e), failures=state.failures + 1)
            logger.error(f"Failed to update {kind} feed: {e}")
            return False

        snapshot = FeedSnapshot(entities=tuple(entities), captured_at=self._clock())
        with self._write_lock:
            state = self._slots[kind]
            self._slots[kind] = _SlotState(
                snapshot=snapshot,
                error=None,
                successes=state.successes + 1,
                failures=state.failures,
            )
        logger.debug(f"{kind} feed updated at {snapshot.captured_at.isoformat()}")
        return True

    def _fetch_with_retry(self, kind: str) -> List[FeedEntity]:
        url = self._urls[kind]
        last_error: Optional[TransportError] = None

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return self._fetch_once(url)
            except TransportError as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{MAX_ATTEMPTS} failed for {kind}: {e}")
                if attempt < MAX_ATTEMPTS:
                    self._sleep(BACKOFF_BASE_SECONDS * 2 ** (attempt - 1))

        raise last_error

    def _fetch_once(self, url: str) -> List[FeedEntity]:
        """
        One fetch-and-decode attempt.

        Raises:
            TransportError: On timeout, connection failure or non-2xx status.
            DecodeError: If the body is not a valid feed.
        """
        try:
            response = self.session.get(url, timeout=self.settings.request_timeout_seconds)
        except requests.RequestException as e:
            raise TransportError(str(e) or type(e).__name__) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(f"HTTP {response.status_code}: {response.reason}")

        return self._decoder(response.content)

    def get_snapshot(self, kind: str) -> Optional[FeedSnapshot]:
        return self._slots[kind].snapshot

    def get_trips(self) -> Optional[FeedSnapshot]:
        return self.get_snapshot(FeedKind.TRIPS)

    def get_alerts(self) -> Optional[FeedSnapshot]:
        return self.get_snapshot(FeedKind.ALERTS)

    def get_status(self, kind: str) -> FeedStatus:
        state = self._slots[kind]
        return FeedStatus(
            last_update=state.snapshot.captured_at if state.snapshot else None,
            has_data=state.snapshot is not None,
            error=state.error,
            successes=state.successes,
            failures=state.failures,
        )

    def get_status_report(self) -> dict:
        """Status of both feeds plus update/error counters."""
        trips = self.get_status(FeedKind.TRIPS)
        alerts = self.get_status(FeedKind.ALERTS)
        return {
            "trips": trips.to_dict(),
            "alerts": alerts.to_dict(),
            "stats": {
                "tripUpdates": trips.successes,
                "tripErrors": trips.failures,
                "alertUpdates": alerts.successes,
                "alertErrors": alerts.failures,
            },
        }
