"""Custom exceptions for WOFlow."""


class WOFlowError(Exception):
    """Base exception for all WOFlow errors."""


class ConfigError(WOFlowError):
    """Configuration-related errors."""


class DatabaseError(WOFlowError):
    """Database operation errors."""


class RecordNotFoundError(WOFlowError):
    """A referenced work order, route step or batch does not exist."""


class GateValidationError(WOFlowError):
    """A gate action was attempted while its preconditions are not met."""


class ProductionLockedError(GateValidationError):
    """Production quantity logging is locked for the work order."""


class AuthorizationError(WOFlowError):
    """Actor lacks the role required for the action."""


class RouteSequenceError(WOFlowError):
    """Route sequence numbers could not be assigned without a conflict."""
