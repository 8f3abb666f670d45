"""
Scheduler errors.

The scheduling core prefers explicit fallbacks over exceptions. These are
raised only for caller or configuration defects that must not be silently
defaulted.
"""


class SchedulerError(Exception):
    """Base class for scheduler errors."""
    pass


class ConfigurationError(SchedulerError):
    """Raised for unknown band ids, education levels or invalid ratios."""
    pass


class InvariantViolation(SchedulerError):
    """Raised when a caller asks for a transition the model forbids."""
    pass


class StaleStateError(SchedulerError):
    """Raised when an older snapshot would overwrite a newer one."""
    pass
