"""
Error taxonomy shared by the realtime core and the case lifecycle.

    InvalidCoordinate  malformed latitude/longitude (or geo cell)
    Unauthenticated    missing/invalid credential at connection admission
    Forbidden          actor not allowed to perform a lifecycle transition
    InvalidState       transition not permitted from the current state
    NotFound           referenced case/response/connection does not exist
    DeliveryFailure    one connection could not be reached during fan-out
"""


class RescueError(Exception):
    """Base class for all domain errors."""
    pass


class InvalidCoordinate(RescueError, ValueError):
    """Raised when a latitude/longitude pair is missing, non-numeric or out of range."""
    pass


class Unauthenticated(RescueError):
    """Raised when a credential cannot be resolved to an active user."""
    pass


class Forbidden(RescueError):
    """Raised when the acting user may not perform the operation."""
    pass


class InvalidState(RescueError):
    """Raised when a case or response is not in a state that allows the operation."""
    pass


class NotFound(InvalidState):
    """Raised when a case, response or connection cannot be found."""
    pass


class DeliveryFailure(RescueError):
    """Raised by a transport when a single connection cannot be reached."""

    def __init__(self, channel_name, reason=""):
        self.channel_name = channel_name
        self.reason = reason
        super().__init__(f"Delivery to {channel_name} failed: {reason}")
