class ReqflowError(Exception):
    """Base class for every error raised by reqflow."""


class EncodingError(ReqflowError):
    """Raised when a request body cannot be serialized.

    No network call has been attempted when this error is raised.
    """


class DecodingError(ReqflowError):
    """Raised when a response body cannot be deserialized into the target."""


class RequestConstructionError(ReqflowError):
    """Raised when the method or URL cannot form a valid request."""


class TransportError(ReqflowError):
    """Raised when the underlying transport fails to produce a response.

    Connection failures, DNS and TLS errors, deadlines and cancellation all
    surface as this error kind. The original exception, when there is one,
    is available as ``__cause__``.
    """


class DeadlineExceededError(TransportError):
    """Raised when the execution context deadline passed before a response."""

    def __init__(self, message: str = "context deadline exceeded"):
        self.message = message
        super().__init__(self.message)


class RequestCancelledError(TransportError):
    """Raised when the execution context was cancelled."""

    def __init__(self, message: str = "context canceled"):
        self.message = message
        super().__init__(self.message)
