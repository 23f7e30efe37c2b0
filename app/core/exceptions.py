"""
Error taxonomy for the availability engine.

Raised by the pipeline services and translated to HTTP responses in the
endpoint modules.
"""


class SchedulingError(Exception):
    """Base exception for all availability engine errors."""


class ConfigurationError(SchedulingError):
    """Inconsistent shop or staff schedule configuration (inverted hours,
    breaks outside the working window, overlapping temporary breaks).
    Surfaced to owner tooling, never silently corrected."""


class NotFoundError(SchedulingError):
    """Unknown or inactive shop, staff member, service or appointment."""


class PolicyViolation(SchedulingError):
    """A booking policy (minimum notice, same-day cutoff, advance horizon)
    disqualifies the requested time."""


class BookingConflict(SchedulingError):
    """The requested interval is no longer bookable: another reservation won
    the race or the interval was never offered."""


class UpstreamUnavailable(SchedulingError):
    """The persistence or broadcast collaborator failed."""
