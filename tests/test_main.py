import logging
from unittest.mock import MagicMock, patch

import pytest

try:
    import sounddevice  # noqa: F401
except OSError:  # PortAudio shared library missing on this machine
    pytest.skip("PortAudio is not installed", allow_module_level=True)

from approval_meter import main as cli
from approval_meter.decision_engine import ApprovalState
from approval_meter.errors import AcquisitionError
from approval_meter.sampling_session import SessionSnapshot


def test_arg_parser_defaults() -> None:
    args = cli.build_arg_parser().parse_args([])
    assert args.occupancy == 0
    assert args.venue_volume == 10368.0
    assert args.base_level == 50.0
    assert args.scaling_factor == 50.0
    assert args.no_mqtt is False


def test_parse_device() -> None:
    assert cli.parse_device(None) is None
    assert cli.parse_device("2") == 2
    assert cli.parse_device("USB Mic") == "USB Mic"


def test_status_line_before_first_reading() -> None:
    snap = SessionSnapshot(
        running=False,
        latest_reading=None,
        peak_level=float("-inf"),
        approval=ApprovalState.UNDETERMINED,
        required_level=0.0,
        occupancy=0,
        density=0.0,
        cycles=0,
        last_error=None,
    )
    line = cli.status_line(snap)
    assert "IDLE" in line
    assert "current=N/A" in line
    assert "peak=N/A" in line
    assert "UNDETERMINED" in line


def test_negative_occupancy_is_a_usage_error() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--occupancy", "-1"])
    assert exc.value.code == 2


def test_headless_without_occupancy_exits() -> None:
    assert cli.main(["--no-web", "--no-mqtt"]) == 2


def test_headless_exits_when_microphone_missing() -> None:
    with patch.object(cli.MicrophoneCapture, "acquire", side_effect=AcquisitionError("no device")):
        assert cli.main(["--no-web", "--no-mqtt", "--occupancy", "100"]) == 1


def test_unreachable_broker_gives_no_client(caplog) -> None:
    with patch.object(cli.mqtt.Client, "connect", side_effect=ConnectionRefusedError("refused")):
        with caplog.at_level(logging.WARNING):
            assert cli.create_mqtt_client("localhost", 1883) is None
    assert "continuing without MQTT" in caplog.text


def test_runs_on_without_broker(caplog) -> None:
    with patch.object(cli.mqtt.Client, "connect", side_effect=ConnectionRefusedError("refused")), \
            patch.object(cli, "VerdictPublisher") as publisher, \
            patch.object(cli.MicrophoneCapture, "acquire", side_effect=AcquisitionError("no device")):
        with caplog.at_level(logging.INFO):
            assert cli.main(["--no-web", "--occupancy", "100"]) == 1

    publisher.assert_not_called()
    assert "continuing without MQTT" in caplog.text
    # got past MQTT set-up to the measuring step
    assert "Cannot start measuring" in caplog.text


def test_runs_on_when_occupancy_subscriber_cannot_connect(caplog) -> None:
    client = MagicMock()
    with patch.object(cli, "create_mqtt_client", return_value=client), \
            patch.object(cli.OccupancySubscriber, "start", side_effect=OSError("refused")), \
            patch.object(cli.MicrophoneCapture, "acquire", side_effect=AcquisitionError("no device")):
        with caplog.at_level(logging.WARNING):
            assert cli.main(["--no-web", "--occupancy", "100"]) == 1

    assert "Occupancy subscriber not started" in caplog.text
    client.loop_stop.assert_called_once()
    client.disconnect.assert_called_once()
