# hushroom/errors.py
# Exception types raised inside the relay core.
# None of these are fatal to the server: the router converts ValidationError into a unicast
# 'error' event, and DuplicateConnectionError only signals a broken transport.


class HushroomError(Exception):
    """Base class for every error raised by the relay."""


class ValidationError(HushroomError):
    """An inbound event failed validation. The message is shown to the sender as-is."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class DuplicateConnectionError(HushroomError):
    """A connection id was registered twice."""

    def __init__(self, connection_id):
        super().__init__(f"Connection '{connection_id}' is already registered.")
        self.connection_id = connection_id


class FrameError(HushroomError):
    """An inbound WebSocket frame could not be decoded into an event. The frame is dropped."""
