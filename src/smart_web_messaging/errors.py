"""
SMART Web Messaging error types.

Errors raised while servicing an inbound message are turned into error
responses by the handler; the wire ``errorType`` is taken from
:attr:`SmartMessagingError.error_type`.
"""

from typing import Any, Optional


class SmartMessagingError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details

    @property
    def error_type(self) -> str:
        return type(self).__name__


class MalformedEnvelopeError(SmartMessagingError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("malformed_envelope", message, details)


class UnknownMessageTypeError(SmartMessagingError):
    def __init__(self, message_type: Optional[str]):
        super().__init__("unknown_message_type", f"Unknown messageType: {message_type}")
        self.message_type = message_type

    @property
    def error_type(self) -> str:
        # Name the embedded document expects on the wire.
        return "UnknownMessageTypeException"


class HandlerFailureError(SmartMessagingError):
    def __init__(self, message: str, cause: Optional[BaseException] = None, code: str = "handler_failure"):
        super().__init__(code, message)
        self.cause = cause

    @property
    def error_type(self) -> str:
        if self.cause is not None:
            return getattr(self.cause, "error_type", type(self.cause).__name__)
        return type(self).__name__


class ResourceCodecError(HandlerFailureError):
    def __init__(self, message: str):
        super().__init__(message, code="resource_codec_error")


class HandshakeTimeoutError(SmartMessagingError, TimeoutError):
    def __init__(self, timeout: float):
        super().__init__("handshake_timeout", f"Handshake timeout after {timeout} seconds")
        self.timeout = timeout


class TransportNotConfiguredError(SmartMessagingError, RuntimeError):
    def __init__(self, message: str = "MessageSender must be set before sending messages"):
        super().__init__("transport_not_configured", message)
