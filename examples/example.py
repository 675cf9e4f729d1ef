"""Example usage of bartproxy."""

import logging
import sys
import time
from pathlib import Path

# Add src to path so we can import bartproxy
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bartproxy import BartProxyApp, LoadError, NotFoundError

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def print_stop_info(app: BartProxyApp, stop_id: str, direction: str = None):
    """
    Display upcoming trains, alerts and warnings for a stop.

    Args:
        app: A started BartProxyApp.
        stop_id: GTFS stop ID (e.g., "M20-2")
        direction: Optional "eastbound" or "westbound" filter
    """
    print(f"\n{'='*70}")
    print(f"Fetching data for: {stop_id} ({direction or 'all directions'})")
    print(f"{'='*70}\n")

    info = app.service.get_stop_info(stop_id, direction)

    print(f"Station: {info.stop.name}")
    print(f"Platform: {info.stop.platform_code or '-'}")
    print(f"Last updated: {info.last_updated.strftime('%H:%M:%S')}\n")

    print("UPCOMING TRAINS:")
    print("-" * 70)
    if info.upcoming_trips:
        for trip in info.upcoming_trips:
            late = f" (+{trip.delay}s)" if trip.delay else ""
            print(f"  {trip.route_name:>8}: {trip.minutes_until_arrival:2d} min → {trip.headsign}{late}")
    else:
        print("  No arrivals found")

    print("\n" + "=" * 70)
    print("SERVICE ALERTS:")
    print("-" * 70)
    if info.alerts:
        for alert in info.alerts:
            print(f"\n{alert.header}")
            print(f"  {alert.description}")
    else:
        print("  No service alerts")

    for warning in info.warnings:
        print(f"\nWARNING: {warning}")
    print("\n" + "=" * 70 + "\n")


def watch_next_arrivals(app: BartProxyApp, interval: int = 30):
    """Print the next 4 trains for the configured station until interrupted."""
    while True:
        next_arrivals = app.service.get_next_arrivals()
        print(f"\n{next_arrivals.station} ({next_arrivals.direction})")
        for arrival in next_arrivals.arrivals:
            print(f"  {arrival.destination:<20} {arrival.minutes_until_arrival:2d} min  {arrival.status}")
        for warning in next_arrivals.warnings:
            print(f"  ! {warning}")
        time.sleep(interval)


if __name__ == "__main__":
    app = BartProxyApp()
    try:
        app.start()
    except LoadError as e:
        logger.error(f"Failed to load static GTFS data: {e}")
        sys.exit(1)

    try:
        if len(sys.argv) > 1:
            direction = sys.argv[2] if len(sys.argv) > 2 else None
            print_stop_info(app, sys.argv[1], direction)
        else:
            watch_next_arrivals(app)
    except NotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
    finally:
        app.shutdown()
