# thing_sim/errors.py


class ThingSimError(Exception):
    pass


class TransportError(ThingSimError):
    """Session open/publish/report or blob upload failed."""


class CaptureError(ThingSimError):
    """Camera read or frame encode/write failed for one cycle."""


class CaptureCancelled(ThingSimError):
    """Terminal outcome of a capture loop that observed its cancel request."""


class ConfigParseError(ThingSimError):
    """Desired property or reported document could not be interpreted."""
