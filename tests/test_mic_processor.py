from unittest.mock import MagicMock, patch

import numpy as np
import pytest

try:
    import sounddevice as sd
except OSError:  # PortAudio shared library missing on this machine
    pytest.skip("PortAudio is not installed", allow_module_level=True)

from approval_meter.errors import AcquisitionError, CaptureReadError
from approval_meter.level_meter import SampleEncoding
from approval_meter.mic_processor import MicrophoneCapture


@pytest.fixture
def input_stream():
    with patch("approval_meter.mic_processor.sd.InputStream") as stream_cls:
        yield stream_cls


def test_acquire_opens_mono_stream(input_stream) -> None:
    mic = MicrophoneCapture(samplerate=44_100, block_size=1024, device=3)
    stream = mic.acquire()

    input_stream.assert_called_once_with(
        samplerate=44_100, blocksize=1024, device=3, channels=1, dtype="float32"
    )
    assert stream is input_stream.return_value
    stream.start.assert_called_once()


def test_acquire_failure_raises_acquisition_error(input_stream) -> None:
    input_stream.side_effect = sd.PortAudioError("Error querying device -1")
    with pytest.raises(AcquisitionError):
        MicrophoneCapture().acquire()


def test_start_failure_closes_stream(input_stream) -> None:
    input_stream.return_value.start.side_effect = sd.PortAudioError("device busy")
    with pytest.raises(AcquisitionError):
        MicrophoneCapture().acquire()
    input_stream.return_value.close.assert_called_once()


def test_read_block_keeps_first_channel() -> None:
    stream = MagicMock()
    stream.read.return_value = (np.full((4, 1), 0.25, dtype=np.float32), False)
    block = MicrophoneCapture(block_size=4).read_block(stream)

    stream.read.assert_called_once_with(4)
    assert block.samples.shape == (4,)
    assert block.encoding is SampleEncoding.FLOAT32


def test_int16_stream_produces_int16_blocks() -> None:
    stream = MagicMock()
    stream.read.return_value = (np.zeros((8, 1), dtype=np.int16), False)
    block = MicrophoneCapture(block_size=8, dtype="int16").read_block(stream)
    assert block.encoding is SampleEncoding.INT16


def test_read_failure_raises_capture_read_error() -> None:
    stream = MagicMock()
    stream.read.side_effect = sd.PortAudioError("stream closed")
    with pytest.raises(CaptureReadError):
        MicrophoneCapture().read_block(stream)


def test_release_stops_and_closes() -> None:
    stream = MagicMock()
    MicrophoneCapture().release(stream)
    stream.stop.assert_called_once()
    stream.close.assert_called_once()


def test_unsupported_dtype() -> None:
    with pytest.raises(ValueError):
        MicrophoneCapture(dtype="float64")
