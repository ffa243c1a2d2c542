"""
Message types and protocol events.
"""

from typing import Any, Optional

from smart_web_messaging.models.envelope import SmartMessageRequest


class InboundMessageType:
    """Requests sent by the embedded document."""
    STATUS_HANDSHAKE = "status.handshake"
    FORM_SUBMITTED = "form.submitted"
    UI_DONE = "ui.done"


class OutboundMessageType:
    """Requests sent by the host."""
    UI_FORM_REQUEST_SUBMIT = "ui.form.requestSubmit"
    UI_FORM_PERSIST = "ui.form.persist"
    SDC_CONFIGURE = "sdc.configure"
    SDC_CONFIGURE_CONTEXT = "sdc.configureContext"
    SDC_DISPLAY_QUESTIONNAIRE = "sdc.displayQuestionnaire"


class HandshakeReceivedEvent:
    __slots__ = ("source", "message", "payload")

    def __init__(self, source: Any, message: SmartMessageRequest, payload: dict[str, Any]):
        self.source = source
        self.message = message
        self.payload = payload

    def __repr__(self) -> str:
        return f"HandshakeReceivedEvent(message_id={self.message.message_id!r})"


class FormSubmittedEvent:
    __slots__ = ("source", "response", "outcome")

    def __init__(self, source: Any, response: Any, outcome: Optional[Any] = None):
        self.source = source
        self.response = response
        self.outcome = outcome

    def __repr__(self) -> str:
        return f"FormSubmittedEvent(has_outcome={self.outcome is not None})"


class CloseApplicationEvent:
    __slots__ = ("source",)

    def __init__(self, source: Any):
        self.source = source

    def __repr__(self) -> str:
        return "CloseApplicationEvent()"


class SmartMessageListener:
    """Override the callbacks you need; the rest are no-ops."""

    def on_handshake_received(self, event: HandshakeReceivedEvent) -> None:
        pass

    def on_form_submitted(self, event: FormSubmittedEvent) -> None:
        pass

    def on_close_application(self, event: CloseApplicationEvent) -> None:
        pass


class FormFillerListener:
    """Host-facing callbacks, dispatched on the event loop after the engine returns."""

    def on_handshake_received(self) -> None:
        pass

    def on_form_submitted(self, response: Any, outcome: Optional[Any]) -> None:
        pass

    def on_close_requested(self) -> None:
        pass
