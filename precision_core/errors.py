"""
Errors raised by the precision location core.

Only setup failures are exceptions. Degenerate samples, clock anomalies
and dead-reckoning divergence are handled as values (dropped samples,
stale low-confidence locations) and never raise.
"""


class PrecisionLocationError(Exception):
    """Base class for precision location errors."""


class PermissionDenied(PrecisionLocationError):
    """No access to the position or motion capability. Fatal to a session."""


class ProviderUnavailable(PrecisionLocationError):
    """Positioning provider disabled or missing. Triggers gap mode, not fatal."""


class StreamClosed(PrecisionLocationError):
    """Raised by LocationStream.get() once the stream is closed and drained."""
