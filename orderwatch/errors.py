"""Exceptions raised by the watcher. Everything except ConfigError is contained at the tick boundary."""


class WatchError(Exception):
    """Base class for watcher failures."""


class ConfigError(WatchError):
    """Missing or invalid configuration; fatal at startup."""


class SessionUnavailable(WatchError):
    """The browser could not be launched or attached."""


class NavigationError(WatchError):
    """Page load failed or no frame showed matching rows in time."""


class ExtractionError(WatchError):
    """Evaluating the row selector across frames failed."""


class DeliveryError(WatchError):
    """The outbound notification call failed."""
