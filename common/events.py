"""RabbitMQ publisher for booking lifecycle events."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from pika.exceptions import AMQPError

from .config import get_settings
from .models import Booking

logger = logging.getLogger(__name__)


def booking_event(event: str, booking: Booking) -> Dict[str, Any]:
    return {
        "event": event,
        "booking_id": booking.id,
        "member_id": booking.member_id,
        "room_id": booking.room_id,
        "booking_date": booking.booking_date.isoformat(),
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "status": booking.status.value,
    }


def publish_booking_event(event: str, booking: Booking) -> bool:
    """Send ``event`` for ``booking`` to the bookings queue.

    Returns False when publishing is disabled or the broker is unreachable.
    """
    settings = get_settings()
    if not settings.booking_events_enabled:
        return False

    message = booking_event(event, booking)
    try:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.rabbitmq_host))
    except AMQPError:
        logger.exception("[RabbitMQ] Could not connect to %s", settings.rabbitmq_host)
        return False

    try:
        channel = connection.channel()
        channel.queue_declare(queue=settings.bookings_queue, durable=True)
        channel.basic_publish(
            exchange="",
            routing_key=settings.bookings_queue,
            body=json.dumps(message),
            properties=pika.BasicProperties(delivery_mode=2),  # persistent
        )
        logger.info("[RabbitMQ] Sent %s for booking %s", event, booking.id)
        return True
    except AMQPError:
        logger.exception("[RabbitMQ] Failed to publish %s for booking %s", event, booking.id)
        return False
    finally:
        connection.close()
