"""Exception hierarchy for the proximity detection engine."""


class ProximityError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ProximityError):
    """Static configuration is inconsistent and must be fixed before startup."""


class FrameSizeError(ConfigurationError):
    """An audio frame does not have the configured length.

    Mis-sized frames point at a setup bug (wrong frame size handed to the
    capture device), so they are fatal to the session that receives them.
    """

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Expected a frame of {expected} samples, got {actual}")
        self.expected = expected
        self.actual = actual


class CaptureUnavailableError(ProximityError):
    """The capture device could not be opened (missing, busy or not permitted)."""


class MalformedTopologyError(ProximityError):
    """A descriptor or characteristic is not attached to an owning service."""
