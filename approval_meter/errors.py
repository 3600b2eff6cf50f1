"""Exceptions raised at the microphone seam."""


class CaptureError(RuntimeError):
    """Base class for microphone problems."""


class AcquisitionError(CaptureError):
    """The input device could not be opened (missing, busy, no permission)."""


class CaptureReadError(CaptureError):
    """An already-open input stream failed to deliver a block."""
