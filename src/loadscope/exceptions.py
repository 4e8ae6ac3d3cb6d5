"""Exception hierarchy shared by the stream, metrics and load-test layers."""


class LoadscopeError(Exception):
    """Base exception for all loadscope errors."""


class ConfigurationError(LoadscopeError):
    """Raised when the console configuration is invalid."""


class SubscriptionSetupError(LoadscopeError):
    """Raised when a stream subscription cannot be started."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class StreamTransportError(LoadscopeError):
    """
    The push channel failed underneath a subscription.

    Covers connection failures, non-2xx responses, the server closing the
    stream and server-sent ``error`` events. Never carries a decoded message.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)
