"""
main.py

Entry point for the applause approval meter.

- Opens the microphone and measures loudness about 30 times per second
- Derives the required loudness from the number of people in the hall
- Decides APPROVED / REJECTED and tracks the loudest moment so far
- Serves a live dashboard (Flask) and talks MQTT:
    - approval/occupancy  (in)  head count updates
    - approval/verdict    (out) verdict changes

Run from project root as:
    python -m approval_meter.main --occupancy 500
"""

import argparse
import logging
import time
from threading import Thread
from typing import Optional

import paho.mqtt.client as mqtt

from . import display
from .errors import AcquisitionError
from .mic_processor import MicrophoneCapture
from .occupancy_subscriber import MQTT_TOPIC_OCCUPANCY, OccupancySubscriber
from .sampling_session import DEFAULT_CYCLE_INTERVAL_SEC, SamplingSession, SessionSnapshot
from .threshold_model import (
    DEFAULT_BASE_LEVEL_DB,
    DEFAULT_SCALING_FACTOR_DB,
    DEFAULT_VENUE_VOLUME_M3,
    ThresholdModel,
)
from .verdict_publisher import VerdictPublisher, iso_timestamp
from .web_server import app as web_app, set_log, set_session

# MQTT broker
MQTT_BROKER_HOST = "localhost"
MQTT_BROKER_PORT = 1883
MQTT_KEEPALIVE = 60

# status line period (seconds)
STATUS_INTERVAL_SEC = 2.0

WEB_PORT = 5000


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def create_mqtt_client(host: str, port: int) -> Optional[mqtt.Client]:
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
    try:
        client.connect(host, port, MQTT_KEEPALIVE)
    except OSError as e:
        logging.warning("MQTT broker %s:%s unreachable, continuing without MQTT: %s", host, port, e)
        return None
    client.loop_start()
    logging.info("Connected to MQTT broker at %s:%s", host, port)
    return client


def status_line(snapshot: SessionSnapshot) -> str:
    return (
        f"{iso_timestamp()} | "
        f"{'RUNNING' if snapshot.running else 'IDLE'} | "
        f"Occupancy: {snapshot.occupancy} (required {snapshot.required_level:.2f} dB) | "
        f"Volume: current={display.format_db(snapshot.latest_reading)} "
        f"peak={display.format_db(snapshot.peak_level if snapshot.cycles else None)} | "
        f"Verdict: {snapshot.approval.value.upper()}"
    )


def start_web_server(port: int) -> None:
    """Run the Flask dashboard on a background thread."""
    def run():
        # no debug: the reloader would spawn a second process
        web_app.run(port=port, debug=False, threaded=True)

    t = Thread(target=run, daemon=True)
    t.start()
    logging.info("Started web server thread on http://127.0.0.1:%s", port)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Applause approval meter")
    parser.add_argument("--occupancy", type=int, default=0, help="People present (start measuring at once if > 0)")
    parser.add_argument("--venue-volume", type=float, default=DEFAULT_VENUE_VOLUME_M3, help="Hall volume in m³")
    parser.add_argument("--base-level", type=float, default=DEFAULT_BASE_LEVEL_DB, help="Base required level (dB)")
    parser.add_argument(
        "--scaling-factor",
        type=float,
        default=DEFAULT_SCALING_FACTOR_DB,
        help="dB added per person/m³",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_CYCLE_INTERVAL_SEC,
        help="Seconds between measurement cycles",
    )
    parser.add_argument("--samplerate", type=int, default=16_000, help="Microphone sample rate (Hz)")
    parser.add_argument("--block-size", type=int, default=2048, help="Samples per measurement block")
    parser.add_argument("--device", type=str, default=None, help="Input device index or name")
    parser.add_argument("--mqtt-host", type=str, default=MQTT_BROKER_HOST)
    parser.add_argument("--mqtt-port", type=int, default=MQTT_BROKER_PORT)
    parser.add_argument("--no-mqtt", action="store_true", help="Do not connect to an MQTT broker")
    parser.add_argument(
        "--occupancy-topic",
        type=str,
        default=MQTT_TOPIC_OCCUPANCY,
        help=f"Occupancy MQTT topic (default: {MQTT_TOPIC_OCCUPANCY})",
    )
    parser.add_argument("--web-port", type=int, default=WEB_PORT)
    parser.add_argument("--no-web", action="store_true", help="Do not start the dashboard")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_device(value: Optional[str]):
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def main(argv=None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if args.occupancy < 0:
        parser.error("--occupancy must be >= 0")
    if args.venue_volume <= 0:
        parser.error("--venue-volume must be positive")

    setup_logging(verbose=args.verbose)

    model = ThresholdModel(
        venue_volume=args.venue_volume,
        base_level=args.base_level,
        scaling_factor=args.scaling_factor,
    )
    mic = MicrophoneCapture(
        samplerate=args.samplerate,
        block_size=args.block_size,
        device=parse_device(args.device),
    )
    session = SamplingSession(mic, model=model, interval=args.interval, occupancy=args.occupancy)

    client: Optional[mqtt.Client] = None
    occupancy_sub: Optional[OccupancySubscriber] = None
    if not args.no_mqtt:
        client = create_mqtt_client(args.mqtt_host, args.mqtt_port)
        if client is not None:
            session.add_listener(VerdictPublisher(client))
            occupancy_sub = OccupancySubscriber(
                on_occupancy=lambda n: setattr(session, "occupancy", n),
                broker_host=args.mqtt_host,
                broker_port=args.mqtt_port,
                topic=args.occupancy_topic,
            )
            try:
                occupancy_sub.start()
            except OSError as e:
                logging.warning("Occupancy subscriber not started: %s", e)
                occupancy_sub = None

    if not args.no_web:
        set_session(session)
        start_web_server(args.web_port)

    try:
        if session.occupancy > 0:
            try:
                session.start()
            except AcquisitionError as e:
                logging.error("Cannot start measuring: %s", e)
                if args.no_web:
                    return 1
        elif args.no_web:
            logging.error("Nothing to do: pass --occupancy or enable the dashboard")
            return 2
        else:
            logging.info("Waiting for occupancy and start from the dashboard.")

        logging.info("Press Ctrl+C to stop.")
        while True:
            msg = status_line(session.snapshot())
            logging.info(msg)
            set_log(msg)
            if args.no_web and not session.running:
                logging.error("Measurement ended: %s", session.last_error)
                return 1
            time.sleep(STATUS_INTERVAL_SEC)

    except KeyboardInterrupt:
        logging.info("Stopping...")

    finally:
        session.stop()
        if occupancy_sub is not None:
            occupancy_sub.stop()
        if client is not None:
            client.loop_stop()
            client.disconnect()

        logging.info("Shutdown complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
