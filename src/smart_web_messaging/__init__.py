"""
smart-web-messaging: SMART Web Messaging host library for Python.

Launch clinical forms in an embedded document and exchange SMART Web
Messaging requests and responses with it.
"""

from smart_web_messaging.config import FormFillerConfig
from smart_web_messaging.errors import (
    HandlerFailureError,
    HandshakeTimeoutError,
    MalformedEnvelopeError,
    ResourceCodecError,
    SmartMessagingError,
    TransportNotConfiguredError,
    UnknownMessageTypeError,
)
from smart_web_messaging.form_filler import FormFiller
from smart_web_messaging.handler import SmartMessageHandler
from smart_web_messaging.models.envelope import MESSAGING_HANDLE, SmartMessageRequest, SmartMessageResponse
from smart_web_messaging.models.events import (
    FormFillerListener,
    InboundMessageType,
    OutboundMessageType,
    SmartMessageListener,
)
from smart_web_messaging.models.payload import LaunchContext, build_launch_context
from smart_web_messaging.models.resource import Reference, Resource
from smart_web_messaging.resources import JsonResourceCodec, ResourceCodec
from smart_web_messaging.transport.browser import EmbeddedBrowser

__version__ = "0.1.0"
__all__ = [
    "FormFiller",
    "FormFillerConfig",
    "FormFillerListener",
    "SmartMessageHandler",
    "SmartMessageListener",
    "SmartMessageRequest",
    "SmartMessageResponse",
    "MESSAGING_HANDLE",
    "InboundMessageType",
    "OutboundMessageType",
    "LaunchContext",
    "build_launch_context",
    "Reference",
    "Resource",
    "ResourceCodec",
    "JsonResourceCodec",
    "EmbeddedBrowser",
    "SmartMessagingError",
    "MalformedEnvelopeError",
    "UnknownMessageTypeError",
    "HandlerFailureError",
    "ResourceCodecError",
    "HandshakeTimeoutError",
    "TransportNotConfiguredError",
]
