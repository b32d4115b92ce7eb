"""Exception types shared across proc-compare."""


class ProcCompareError(Exception):
    """Base class for all proc-compare errors."""


class ConfigurationError(ProcCompareError, ValueError):
    """Invalid filter, sort, output or interval settings.

    Raised before any scan starts.
    """


class InsufficientData(ProcCompareError):
    """Fewer than two processes matched the active filters."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"Insufficient processes found matching criteria ({count} matched)")


class InvalidSelection(ProcCompareError):
    """Manual pair selection referenced an index outside the match set."""


class NotificationDeliveryFailure(ProcCompareError):
    """Desktop notification could not be delivered."""
