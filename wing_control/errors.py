"""
Error taxonomy for the wing control client.

None of these are fatal to the process. The session controller catches them
at the intent boundary and turns them into feedback messages.
"""


class WingControlError(Exception):
    """Base class for all wing control errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidEndpoint(WingControlError):
    """Endpoint address is empty or malformed. Raised before any connection attempt."""


class ConnectionFailed(WingControlError):
    """The transport reported that the connection could not be established."""


class NotConnected(WingControlError):
    """A command was issued while the session is not connected."""


class OutOfRange(WingControlError):
    """Requested angle is not a finite number in [0, 90]."""


class AlreadyConnecting(WingControlError):
    """A connect intent arrived while an attempt is still pending."""


class AlreadyConnected(WingControlError):
    """A connect intent arrived while a connection is established."""


class NotOpen(WingControlError):
    """Transport send on a handle that is not in the open state."""
