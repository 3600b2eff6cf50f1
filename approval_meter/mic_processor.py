"""
mic_processor.py

Microphone capture for the approval meter.

Opens a mono input stream on the sound card and hands out one block of
samples per call. Implements the acquire / read_block / release contract
the sampling session expects from a capture provider.
"""

import logging
from typing import Optional, Union

import sounddevice as sd

from .errors import AcquisitionError, CaptureReadError
from .level_meter import AudioBlock, SampleEncoding

_DTYPE_ENCODING = {
    "float32": SampleEncoding.FLOAT32,
    "int16": SampleEncoding.INT16,
    "uint8": SampleEncoding.UINT8,
}


class MicrophoneCapture:
    def __init__(
        self,
        samplerate: int = 16_000,
        block_size: int = 2048,
        device: Optional[Union[int, str]] = None,
        dtype: str = "float32",
    ):
        """
        :param samplerate: Audio sample rate in Hz.
        :param block_size: Samples per measurement block.
        :param device: sounddevice device index or name (None = system default).
        :param dtype: Sample format requested from PortAudio.
        """
        if dtype not in _DTYPE_ENCODING:
            raise ValueError(f"Unsupported dtype {dtype!r}")
        self.samplerate = samplerate
        self.block_size = block_size
        self.device = device
        self.dtype = dtype

    def acquire(self) -> sd.InputStream:
        try:
            stream = sd.InputStream(
                samplerate=self.samplerate,
                blocksize=self.block_size,
                device=self.device,
                channels=1,
                dtype=self.dtype,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise AcquisitionError(f"Could not open microphone: {e}") from e

        try:
            stream.start()
        except sd.PortAudioError as e:
            stream.close()
            raise AcquisitionError(f"Could not start microphone: {e}") from e

        logging.info(
            "Microphone opened (device=%s, %d Hz, %d samples/block)",
            self.device if self.device is not None else "default",
            self.samplerate,
            self.block_size,
        )
        return stream

    def read_block(self, stream: sd.InputStream) -> AudioBlock:
        try:
            data, overflowed = stream.read(self.block_size)
        except sd.PortAudioError as e:
            raise CaptureReadError(f"Failed to read from microphone: {e}") from e

        if overflowed:
            logging.debug("Input overflow, some samples were dropped")
        return AudioBlock.from_array(data, _DTYPE_ENCODING[self.dtype])

    def release(self, stream: sd.InputStream) -> None:
        try:
            stream.stop()
        finally:
            stream.close()
        logging.info("Microphone released")
