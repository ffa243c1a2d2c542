"""
SMART Web Messaging protocol handler.

Inbound:  raw JSON -> request handler (reply returned) or response callback.
Outbound: typed payload -> JSON -> MessageSender, with an optional callback
registered under the new messageId until the final response arrives.

The handler never waits on anything itself; timeouts and handshake gating
belong to the caller (see FormFiller).
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, Union

from smart_web_messaging.errors import (
    HandlerFailureError,
    SmartMessagingError,
    TransportNotConfiguredError,
    UnknownMessageTypeError,
)
from smart_web_messaging.events import EventBus
from smart_web_messaging.models.envelope import SmartMessageRequest, SmartMessageResponse, new_message_id
from smart_web_messaging.models.events import (
    CloseApplicationEvent,
    FormSubmittedEvent,
    HandshakeReceivedEvent,
    InboundMessageType,
    OutboundMessageType,
    SmartMessageListener,
)
from smart_web_messaging.models.payload import (
    ErrorResponse,
    FormSubmit,
    LaunchContext,
    RequestPayload,
    SdcConfigure,
    SdcConfigureContext,
    SdcDisplayQuestionnaire,
    SdcDisplayQuestionnaireContext,
)
from smart_web_messaging.resources import ResourceCodec
from smart_web_messaging.transport.envelope import (
    PayloadCodec,
    get_message_id_from_json,
    parse_message,
    serialize_response,
)

logger = logging.getLogger(__name__)

ResponseHandler = Callable[[SmartMessageResponse], None]
MessageSender = Callable[[str], Awaitable[Any]]


def _failed_future(error: BaseException) -> "Union[asyncio.Future[Any], concurrent.futures.Future[Any]]":
    """A future already failed with ``error``; a concurrent one when no loop runs on this thread."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        failed: concurrent.futures.Future[Any] = concurrent.futures.Future()
        failed.set_exception(error)
        return failed
    future = loop.create_future()
    future.set_exception(error)
    return future


class SmartMessageHandler:
    def __init__(self, resource_codec: Optional[ResourceCodec] = None):
        self.codec = PayloadCodec(resource_codec)
        self._listeners: EventBus[SmartMessageListener] = EventBus()
        self._response_listeners: dict[str, ResponseHandler] = {}
        self._lock = threading.Lock()
        self._message_sender: Optional[MessageSender] = None
        logger.info("SmartMessageHandler initialized.")

    # ---- configuration ----

    def set_message_sender(self, message_sender: Optional[MessageSender]) -> None:
        self._message_sender = message_sender

    def add_listener(self, listener: SmartMessageListener) -> Callable[[], None]:
        return self._listeners.add(listener)

    def remove_listener(self, listener: SmartMessageListener) -> None:
        self._listeners.remove(listener)

    # ---- inbound ----

    def handle_message(self, json_message: str) -> Optional[str]:
        """Handle one message from the document.

        Returns the JSON reply for a request, or None for a response. Never
        raises: anything that goes wrong becomes an error reply, correlated to
        whatever messageId can be recovered from the raw text.
        """
        logger.debug("Received message for handling: %s", json_message)
        try:
            message = parse_message(json_message)
            if isinstance(message, SmartMessageResponse):
                logger.debug("Message identified as SmartMessageResponse.")
                self._handle_response_message(message)
                return None
            logger.info("Handling message of type: %s", message.message_type)
            return self._handle_request_message(message)
        except Exception as e:
            logger.error("Failed to handle message. JSON: %s", json_message, exc_info=True)
            message_id = get_message_id_from_json(json_message) if isinstance(json_message, str) else None
            return serialize_response(
                SmartMessageResponse.create_error_response(message_id, ErrorResponse.from_exception(e))
            )

    def _handle_request_message(self, message: SmartMessageRequest) -> str:
        try:
            if message.message_type == InboundMessageType.STATUS_HANDSHAKE:
                response = self._handle_handshake(message)
            elif message.message_type == InboundMessageType.FORM_SUBMITTED:
                response = self._handle_form_submit(message)
            elif message.message_type == InboundMessageType.UI_DONE:
                response = self._handle_ui_done(message)
            else:
                raise UnknownMessageTypeError(message.message_type)
        except UnknownMessageTypeError as e:
            logger.warning("Unknown messageType %r for MessageId: %s", message.message_type, message.message_id)
            response = SmartMessageResponse.create_error_response(message.message_id, ErrorResponse.from_exception(e))
        except Exception as e:
            logger.error(
                "Exception while handling request message: MessageId=%s, MessageType=%s",
                message.message_id, message.message_type, exc_info=True,
            )
            response = SmartMessageResponse.create_error_response(message.message_id, ErrorResponse.from_exception(e))

        response_json = serialize_response(response)
        logger.info("Created response=%s", response_json)
        return response_json

    def _emit(self, callback: str, event: Any) -> None:
        errors = self._listeners.emit(callback, event)
        if errors:
            first = errors[0]
            raise HandlerFailureError(f"Listener {callback} failed: {first}", cause=first)

    def _handle_handshake(self, message: SmartMessageRequest) -> SmartMessageResponse:
        logger.debug("Invoking HandshakeReceived event for MessageId: %s", message.message_id)
        self._emit("on_handshake_received", HandshakeReceivedEvent(self, message, message.payload))
        return SmartMessageResponse.create_response(message.message_id)

    def _handle_form_submit(self, message: SmartMessageRequest) -> SmartMessageResponse:
        logger.debug("Invoking FormSubmitted event for MessageId: %s", message.message_id)
        try:
            payload: FormSubmit = self.codec.decode_payload(message.message_type, message.payload)  # type: ignore[assignment]
        except SmartMessagingError:
            raise
        except Exception as e:
            raise HandlerFailureError(f"Failed to decode form.submitted payload: {e}", cause=e)
        self._emit("on_form_submitted", FormSubmittedEvent(self, payload.response, payload.outcome))
        return SmartMessageResponse.create_response(message.message_id)

    def _handle_ui_done(self, message: SmartMessageRequest) -> SmartMessageResponse:
        logger.debug("Invoking CloseApplication event for MessageId: %s", message.message_id)
        self._emit("on_close_application", CloseApplicationEvent(self))
        return SmartMessageResponse.create_response(message.message_id)

    def _handle_response_message(self, response: SmartMessageResponse) -> None:
        response_to = response.response_to_message_id
        logger.info("Handling response message for ResponseToMessageId: %s", response_to)

        with self._lock:
            if response.additional_responses_expected:
                listener = self._response_listeners.get(response_to)  # type: ignore[arg-type]
            else:
                listener = self._response_listeners.pop(response_to, None)  # type: ignore[arg-type]

        if listener is None:
            logger.warning("No listener found for response message with ResponseToMessageId: %s", response_to)
            return
        if not response.additional_responses_expected:
            logger.debug("Removed listener for ResponseToMessageId: %s as no additional responses expected.", response_to)
        try:
            listener(response)
        except Exception:
            logger.error("Exception occurred while executing response listener for ResponseToMessageId: %s",
                         response_to, exc_info=True)

    # ---- outbound ----

    def send_message_async(
        self,
        message_type: str,
        payload: Optional[RequestPayload] = None,
        response_handler: Optional[ResponseHandler] = None,
    ) -> Awaitable[Any]:
        """Send a request to the document.

        Returns the sender's awaitable; off the event loop thread this may be
        a concurrent.futures.Future. Serialization failures come back through
        the returned future. Raises TransportNotConfiguredError straight away
        when no sender is set, and re-raises anything the sender raises.
        """
        logger.info("Sending message async: MessageType=%s", message_type)
        if self._message_sender is None:
            raise TransportNotConfiguredError()

        message_id = new_message_id()
        try:
            request_json = self.codec.serialize_request(message_id, message_type, payload)
        except Exception as e:
            logger.error("Failed to serialize request", exc_info=True)
            return _failed_future(e)  # type: ignore[return-value]

        if response_handler is not None:
            self.register_response_listener(message_id, response_handler)

        logger.debug("Sending JSON message: %s", request_json)
        try:
            return self._message_sender(request_json)
        except Exception:
            logger.error("Message sender failed for MessageId: %s", message_id, exc_info=True)
            if response_handler is not None:
                self.unregister_response_listener(message_id)
            raise

    def send_form_request_submit_async(self, response_handler: Optional[ResponseHandler] = None) -> Awaitable[Any]:
        return self.send_message_async(OutboundMessageType.UI_FORM_REQUEST_SUBMIT, RequestPayload(), response_handler)

    def send_form_persist_async(self, response_handler: Optional[ResponseHandler] = None) -> Awaitable[Any]:
        return self.send_message_async(OutboundMessageType.UI_FORM_PERSIST, RequestPayload(), response_handler)

    def send_sdc_configure_async(
        self,
        terminology_server: Optional[str] = None,
        data_server: Optional[str] = None,
        configuration: Any = None,
        response_handler: Optional[ResponseHandler] = None,
    ) -> Awaitable[Any]:
        payload = SdcConfigure(
            terminology_server=terminology_server, data_server=data_server, configuration=configuration,
        )
        return self.send_message_async(OutboundMessageType.SDC_CONFIGURE, payload, response_handler)

    def send_sdc_configure_context_async(
        self,
        subject: Any = None,
        author: Any = None,
        encounter: Any = None,
        launch_context: Optional[list[LaunchContext]] = None,
        response_handler: Optional[ResponseHandler] = None,
    ) -> Awaitable[Any]:
        payload = SdcConfigureContext(
            subject=subject, author=author, encounter=encounter, launch_context=launch_context or [],
        )
        return self.send_message_async(OutboundMessageType.SDC_CONFIGURE_CONTEXT, payload, response_handler)

    def send_sdc_display_questionnaire_async(
        self,
        questionnaire: Any,
        questionnaire_response: Any = None,
        subject: Any = None,
        author: Any = None,
        encounter: Any = None,
        launch_context: Optional[list[LaunchContext]] = None,
        response_handler: Optional[ResponseHandler] = None,
    ) -> Awaitable[Any]:
        """Display a questionnaire given as canonical URL, Reference or resource."""
        context = SdcDisplayQuestionnaireContext(
            subject=subject, author=author, encounter=encounter, launch_context=launch_context or [],
        )
        payload = SdcDisplayQuestionnaire(
            questionnaire=questionnaire, questionnaire_response=questionnaire_response, context=context,
        )
        return self.send_message_async(OutboundMessageType.SDC_DISPLAY_QUESTIONNAIRE, payload, response_handler)

    # ---- correlation table ----

    def register_response_listener(self, message_id: str, response_handler: ResponseHandler) -> None:
        logger.debug("Registering response listener for MessageId: %s", message_id)
        with self._lock:
            self._response_listeners[message_id] = response_handler

    def unregister_response_listener(self, message_id: str) -> None:
        with self._lock:
            removed = self._response_listeners.pop(message_id, None)
        if removed is not None:
            logger.debug("Unregistered response listener for MessageId: %s", message_id)
        else:
            logger.warning("Attempted to unregister non-existent listener for MessageId: %s", message_id)

    def has_pending_response_listener(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._response_listeners

    def clear_all_response_listeners(self) -> None:
        with self._lock:
            self._response_listeners.clear()
        logger.debug("All response listeners cleared.")

    get_message_id_from_json = staticmethod(get_message_id_from_json)
