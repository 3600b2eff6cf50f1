"""
threshold_model.py

Required applause loudness for a given number of people in the hall.

The louder the room has to be grows linearly with how densely it is
packed: required = base + (people / volume) * scale.
"""

from dataclasses import dataclass

# Gymnasium: 36 m x 24 m x 12 m
DEFAULT_VENUE_VOLUME_M3 = 36.0 * 24.0 * 12.0  # 10368 m³
DEFAULT_BASE_LEVEL_DB = 50.0
DEFAULT_SCALING_FACTOR_DB = 50.0


@dataclass(frozen=True)
class ThresholdModel:
    venue_volume: float = DEFAULT_VENUE_VOLUME_M3
    base_level: float = DEFAULT_BASE_LEVEL_DB
    scaling_factor: float = DEFAULT_SCALING_FACTOR_DB

    def __post_init__(self) -> None:
        if self.venue_volume <= 0:
            raise ValueError(f"venue_volume must be positive, got {self.venue_volume}")

    def density(self, occupancy: int) -> float:
        """People per cubic metre."""
        _check_occupancy(occupancy)
        return occupancy / self.venue_volume

    def required_level(self, occupancy: int) -> float:
        """
        :param occupancy: number of people present (>= 0)
        :return: threshold in dB, or 0.0 when nobody is registered
                 (meaning "no threshold configured yet")
        """
        density = self.density(occupancy)
        if occupancy == 0:
            return 0.0
        return self.base_level + density * self.scaling_factor


def _check_occupancy(occupancy: int) -> None:
    if occupancy < 0:
        raise ValueError(f"occupancy must be >= 0, got {occupancy}")
