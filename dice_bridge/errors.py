class DiceBridgeError(Exception):
    """Base class of every error raised by the integration."""


class TransportUnavailableError(DiceBridgeError):
    """The broadcast medium could not be reached from this process."""


class RequestTimeoutError(DiceBridgeError, TimeoutError):
    """A correlated request got no matching signal before its deadline."""

    def __init__(self, request_id: str, timeout: float):
        super().__init__(f"Request {request_id} timed out after {timeout}s")
        self.request_id = request_id
        self.timeout = timeout


class RequestCancelledError(DiceBridgeError):
    """A pending request was rejected because its owner was torn down."""

    def __init__(self, request_id: str):
        super().__init__(f"Request {request_id} was cancelled")
        self.request_id = request_id
