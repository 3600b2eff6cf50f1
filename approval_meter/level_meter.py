"""
level_meter.py

Turns one block of microphone samples into a loudness value in decibels
relative to full scale (dB, negative values; 0 dB = maximum amplitude).
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np


class SampleEncoding(Enum):
    UINT8 = "uint8"      # unsigned bytes centred at 128
    INT16 = "int16"
    FLOAT32 = "float32"  # already in [-1, 1]


# (offset, scale) so that (sample - offset) / scale lands in [-1, 1]
_NORMALISATION = {
    SampleEncoding.UINT8: (128.0, 128.0),
    SampleEncoding.INT16: (0.0, 32768.0),
    SampleEncoding.FLOAT32: (0.0, 1.0),
}


@dataclass(frozen=True, eq=False)
class AudioBlock:
    """One mono block of samples captured in a single cycle."""

    samples: np.ndarray
    encoding: SampleEncoding = SampleEncoding.FLOAT32

    @classmethod
    def from_array(cls, data, encoding: SampleEncoding = SampleEncoding.FLOAT32) -> "AudioBlock":
        """
        Build a read-only block from any array-like.

        :param data: 1-D samples, or a (frames, channels) array; only the
            first channel is kept.
        :param encoding: how the raw sample values are encoded.
        """
        array = np.array(data, copy=True)
        if array.ndim == 2:
            array = array[:, 0].copy()
        elif array.ndim != 1:
            raise ValueError(f"Expected 1-D or 2-D samples, got shape {array.shape}")
        array.setflags(write=False)
        return cls(samples=array, encoding=SampleEncoding(encoding))

    def __len__(self) -> int:
        return int(self.samples.size)

    def normalised(self) -> np.ndarray:
        offset, scale = _NORMALISATION[self.encoding]
        return (self.samples.astype(np.float64) - offset) / scale


def measure_db(block: AudioBlock) -> float:
    """
    Compute the RMS loudness of a block in dB.

    Absolute silence (RMS exactly 0) and empty blocks give ``-inf``; callers
    that display the value are expected to clamp it themselves.

    :param block: samples to measure
    :return: ``20 * log10(rms)``
    """
    if len(block) == 0:
        return float("-inf")

    centred = block.normalised()
    rms = float(np.sqrt(np.mean(centred**2)))
    if rms == 0.0:
        return float("-inf")
    return 20 * float(np.log10(rms))


class LevelMeter:
    """Stateless meter object, for callers that want something to inject."""

    def measure(self, block: AudioBlock) -> float:
        return measure_db(block)
