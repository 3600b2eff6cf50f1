"""
occupancy_subscriber.py

MQTT subscriber that keeps the session's occupancy count up to date, so the
head count can be entered at the door (or by another app) while the meter
is running.

Usage from main.py:
    from .occupancy_subscriber import OccupancySubscriber

    sub = OccupancySubscriber(
        on_occupancy=session_occupancy_setter,
        broker_host=MQTT_BROKER_HOST,
        broker_port=MQTT_BROKER_PORT,
    )
    sub.start()
    ...
    sub.stop()
"""
import json
import logging
from typing import Callable, Optional

import paho.mqtt.client as mqtt

MQTT_TOPIC_OCCUPANCY = "approval/occupancy"


def parse_occupancy(payload: str) -> int:
    """
    Accepts either a bare number ("500") or JSON ({"occupancy": 500}).

    :raises ValueError: payload is not a non-negative whole number
    """
    data = json.loads(payload)
    if isinstance(data, dict):
        data = data.get("occupancy")
    if isinstance(data, bool) or not isinstance(data, (int, float)):
        raise ValueError(f"no occupancy number in payload {payload!r}")
    if isinstance(data, float) and not data.is_integer():
        raise ValueError(f"occupancy must be a whole number, got {data}")
    occupancy = int(data)
    if occupancy < 0:
        raise ValueError(f"occupancy must be >= 0, got {occupancy}")
    return occupancy


class OccupancySubscriber:
    """
    Subscribes to the occupancy topic and forwards every valid count to
    ``on_occupancy``. Expected payloads:
        500
        { "occupancy": 500 }
    """

    def __init__(
        self,
        on_occupancy: Callable[[int], None],
        broker_host: str,
        broker_port: int,
        topic: str = MQTT_TOPIC_OCCUPANCY,
        keepalive: int = 60,
    ) -> None:
        self.on_occupancy = on_occupancy
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.keepalive = keepalive

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

        self.latest_occupancy: Optional[int] = None
        self.last_raw_payload: Optional[str] = None

        self._started = False

    # ───── MQTT callbacks ─────

    def _on_connect(self, client: mqtt.Client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logging.error("Occupancy subscriber connect failed: %s", reason_code)
            return
        logging.info(
            "Occupancy subscriber connected to %s:%s, subscribing to %s",
            self.broker_host,
            self.broker_port,
            self.topic,
        )
        client.subscribe(self.topic, qos=0)

    def _on_message(self, client: mqtt.Client, userdata, msg: mqtt.MQTTMessage):
        payload_str = msg.payload.decode("utf-8", errors="ignore")
        self.last_raw_payload = payload_str
        logging.debug("Raw occupancy message on %s: %s", msg.topic, payload_str)

        try:
            occupancy = parse_occupancy(payload_str)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            logging.warning("Ignoring occupancy payload: %s", e)
            return

        self.latest_occupancy = occupancy
        logging.info("Occupancy = %d", occupancy)
        self.on_occupancy(occupancy)

    # ───── lifecycle control ─────

    def start(self) -> None:
        if self._started:
            return
        self.client.connect(self.broker_host, self.broker_port, self.keepalive)
        self.client.loop_start()
        self._started = True
        logging.info("Occupancy subscriber started.")

    def stop(self) -> None:
        if not self._started:
            return
        self.client.loop_stop()
        self.client.disconnect()
        self._started = False
        logging.info("Occupancy subscriber stopped.")
