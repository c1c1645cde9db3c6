"""
Error taxonomy for the analytics core.
"""


class AnalyticsError(Exception):
    """Base class for all analytics errors"""


class InvalidParameter(AnalyticsError, ValueError):
    """A caller supplied an out-of-range or malformed parameter"""


class StoreUnavailable(AnalyticsError):
    """The event store could not serve a read or a write"""
