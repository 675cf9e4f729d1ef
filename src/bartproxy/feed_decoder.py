"""GTFS-Realtime protobuf decoding into bartproxy feed entities."""

import logging
from typing import List, Optional

from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2

from .errors import DecodeError
from .models import (
    AlertEntity,
    FeedEntity,
    StopTimeEvent,
    StopTimeUpdate,
    TripUpdateEntity,
    UnknownEntity,
)

logger = logging.getLogger(__name__)


def decode_feed(feed_data: bytes) -> List[FeedEntity]:
    """
    Parse a GTFS-Realtime FeedMessage.

    Args:
        feed_data: Raw protobuf bytes.

    Returns:
        One TripUpdateEntity, AlertEntity or UnknownEntity per feed entity.

    Raises:
        DecodeError: If the payload is not a valid FeedMessage.
    """
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(feed_data)
    except (ProtobufDecodeError, ValueError) as e:
        raise DecodeError(f"Invalid GTFS-Realtime payload: {e}") from e

    entities: List[FeedEntity] = []
    for entity in feed.entity:
        if entity.HasField("trip_update"):
            entities.append(_decode_trip_update(entity))
        elif entity.HasField("alert"):
            entities.append(_decode_alert(entity))
        else:
            entities.append(UnknownEntity(entity_id=entity.id))

    logger.debug(f"Decoded {len(entities)} feed entities")
    return entities


def _decode_event(stop_time_update, name: str) -> Optional[StopTimeEvent]:
    if not stop_time_update.HasField(name):
        return None
    event = getattr(stop_time_update, name)
    return StopTimeEvent(
        time=event.time if event.HasField("time") else None,
        delay=event.delay if event.HasField("delay") else None,
    )


def _decode_trip_update(entity) -> TripUpdateEntity:
    trip_update = entity.trip_update
    trip = trip_update.trip

    stop_time_updates = tuple(
        StopTimeUpdate(
            stop_id=stu.stop_id if stu.HasField("stop_id") else None,
            arrival=_decode_event(stu, "arrival"),
            departure=_decode_event(stu, "departure"),
        )
        for stu in trip_update.stop_time_update
    )

    # Label may sit on the trip update's descriptor or on a vehicle position
    # carried by the same entity; occupancy only exists on the latter.
    vehicle_label = None
    occupancy_status = None
    if trip_update.HasField("vehicle") and trip_update.vehicle.label:
        vehicle_label = trip_update.vehicle.label
    if entity.HasField("vehicle"):
        position = entity.vehicle
        if vehicle_label is None and position.HasField("vehicle") and position.vehicle.label:
            vehicle_label = position.vehicle.label
        if position.HasField("occupancy_status"):
            occupancy_status = position.occupancy_status

    return TripUpdateEntity(
        entity_id=entity.id,
        trip_id=trip.trip_id if trip.HasField("trip_id") else None,
        route_id=trip.route_id if trip.HasField("route_id") else None,
        stop_time_updates=stop_time_updates,
        vehicle_label=vehicle_label,
        occupancy_status=occupancy_status,
    )


def _first_translation(alert, name: str) -> Optional[str]:
    if alert.HasField(name) and getattr(alert, name).translation:
        return getattr(alert, name).translation[0].text
    return None


def _decode_alert(entity) -> AlertEntity:
    alert = entity.alert
    active_periods = tuple(
        (
            period.start if period.HasField("start") else None,
            period.end if period.HasField("end") else None,
        )
        for period in alert.active_period
    )
    informed_stop_ids = tuple(
        informed.stop_id for informed in alert.informed_entity if informed.stop_id
    )
    return AlertEntity(
        entity_id=entity.id,
        header=_first_translation(alert, "header_text"),
        description=_first_translation(alert, "description_text"),
        url=_first_translation(alert, "url"),
        active_periods=active_periods,
        informed_stop_ids=informed_stop_ids,
    )
