"""
verdict_publisher.py

Publishes the approve / reject verdict over MQTT whenever it changes, so
a scoreboard or another app can follow the vote.
"""

import json
import logging
import time
from datetime import datetime, timezone

import paho.mqtt.client as mqtt

from . import display
from .sampling_session import SessionSnapshot

MQTT_TOPIC_VERDICT = "approval/verdict"

# at most one message per topic in this window
MIN_PUBLISH_INTERVAL_SEC = 1.0


def iso_timestamp() -> str:
    """UTC time like 2025-12-01T10:47:06.241Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def maybe_publish(
    client: mqtt.Client,
    topic: str,
    payload: str,
    last_sent_time: dict,
) -> bool:
    """
    Publish unless something already went out on ``topic`` within the last
    MIN_PUBLISH_INTERVAL_SEC. Returns True when the message was sent.
    """
    now = time.time()
    last = last_sent_time.get(topic, 0.0)
    if now - last < MIN_PUBLISH_INTERVAL_SEC:
        return False

    result = client.publish(topic, payload=payload, qos=0, retain=False)
    if result.rc == mqtt.MQTT_ERR_SUCCESS:
        logging.info("MQTT publish: %s -> %s", topic, payload)
        last_sent_time[topic] = now
        return True
    logging.warning("Failed to publish MQTT message: rc=%s", result.rc)
    return False


def verdict_payload(snapshot: SessionSnapshot) -> str:
    return json.dumps(
        {
            "approval": snapshot.approval.value,
            "level_db": display.clamp_db(snapshot.latest_reading),
            "peak_db": display.clamp_db(snapshot.peak_level) if snapshot.cycles else None,
            "required_db": snapshot.required_level,
            "occupancy": snapshot.occupancy,
            "timestamp": iso_timestamp(),
        }
    )


class VerdictPublisher:
    """Session listener; a change held back by the throttle goes out on a later cycle."""

    def __init__(self, client: mqtt.Client, topic: str = MQTT_TOPIC_VERDICT) -> None:
        self.client = client
        self.topic = topic
        self.last_published = None
        self._last_sent_time: dict = {}

    def __call__(self, snapshot: SessionSnapshot) -> None:
        if snapshot.approval == self.last_published:
            return
        if maybe_publish(self.client, self.topic, verdict_payload(snapshot), self._last_sent_time):
            self.last_published = snapshot.approval
