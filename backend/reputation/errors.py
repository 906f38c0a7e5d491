"""Error taxonomy for the escalation engine, mapped to HTTP status codes in api.main."""


class EscalationError(Exception):
    """Base class for escalation engine errors."""

    status_code = 500


class NotFoundError(EscalationError):
    """An action or vendor id does not resolve."""

    status_code = 404


class InvalidTransitionError(EscalationError):
    """The requested transition is not allowed from the action's current status."""

    status_code = 400


class EscalationValidationError(EscalationError, ValueError):
    """Input rejected before any write (short override reason, bad action type, missing admin)."""

    status_code = 422


class ExternalStoreError(EscalationError):
    """The order or vendor store could not be reached."""

    status_code = 503
