"""
decision_engine.py

Keeps the running statistics of one measurement session: the last
reading, the loudest reading so far and the approve / reject verdict.
"""

from enum import Enum
from typing import Optional


class ApprovalState(Enum):
    UNDETERMINED = "undetermined"
    APPROVED = "approved"
    REJECTED = "rejected"


class DecisionEngine:
    def __init__(self) -> None:
        self.peak_level: float = float("-inf")
        self.approval: ApprovalState = ApprovalState.UNDETERMINED
        self.latest_reading: Optional[float] = None

    def reset(self) -> None:
        """Forget everything; called by the session when it starts."""
        self.peak_level = float("-inf")
        self.approval = ApprovalState.UNDETERMINED
        self.latest_reading = None

    def on_reading(self, reading: float, threshold: float) -> ApprovalState:
        """
        Fold one loudness reading into the session.

        :param reading: loudness in dB (may be -inf for silence)
        :param threshold: required level in dB
        :return: the verdict after this reading
        """
        self.latest_reading = reading
        if reading > self.peak_level:
            self.peak_level = reading

        # strictly louder than required; a tie does not pass
        if reading > threshold:
            self.approval = ApprovalState.APPROVED
        else:
            self.approval = ApprovalState.REJECTED
        return self.approval
