"""
FormFiller wires an embedded browser to a SmartMessageHandler.

Adds what the handler leaves out:

- Handshake gating: outbound messages wait in a FIFO outbox until the page
  sends status.handshake, then go out in the order they were sent.
  navigate() starts a fresh gate and drops whatever the old page still owed.
- wait_for_handshake(): the gate raced against a timer.
- Host listeners, called on the event loop after the handler has returned,
  so a slow or failing listener never holds up message processing.
- Sends made from other threads hop onto the loop and return a
  concurrent.futures.Future.

    handler = SmartMessageHandler()
    config = FormFillerConfig(target_url="https://...")
    filler = FormFiller(config, browser, handler)
    filler.add_listener(MyListener())
    await filler.wait_for_handshake()
    await handler.send_sdc_display_questionnaire_async(questionnaire)
"""

import asyncio
import collections
import concurrent.futures
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from smart_web_messaging.config import FormFillerConfig
from smart_web_messaging.errors import HandshakeTimeoutError
from smart_web_messaging.events import EventBus
from smart_web_messaging.handler import SmartMessageHandler
from smart_web_messaging.models.events import (
    CloseApplicationEvent,
    FormFillerListener,
    FormSubmittedEvent,
    HandshakeReceivedEvent,
    SmartMessageListener,
)
from smart_web_messaging.transport.browser import EmbeddedBrowser
from smart_web_messaging.transport.envelope import get_message_id_from_json, get_message_type_from_json

logger = logging.getLogger(__name__)


class _HandlerBridge(SmartMessageListener):
    """Forwards handler events onto the FormFiller's event loop."""

    def __init__(self, filler: "FormFiller"):
        self._filler = filler

    def on_handshake_received(self, event: HandshakeReceivedEvent) -> None:
        logger.info("Handshake received from web page")
        # Bind to the gate of the page that sent it; navigate() may replace it first.
        self._filler._call_soon(self._filler._on_handshake, self._filler._handshake)

    def on_form_submitted(self, event: FormSubmittedEvent) -> None:
        logger.info("Form submitted")
        self._filler._call_soon(self._filler._fire, "on_form_submitted", event.response, event.outcome)

    def on_close_application(self, event: CloseApplicationEvent) -> None:
        logger.info("Close requested by web page")
        self._filler._call_soon(self._filler._fire, "on_close_requested")


class FormFiller:
    def __init__(
        self,
        config: FormFillerConfig,
        browser: EmbeddedBrowser,
        handler: Optional[SmartMessageHandler] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._config = config
        self._browser = browser
        self._handler = handler or SmartMessageHandler()
        self._loop = loop or asyncio.get_running_loop()
        self._handshake: asyncio.Future[None] = self._loop.create_future()
        self._outbox: collections.deque[tuple[str, asyncio.Future[None]]] = collections.deque()
        self._timers: set[asyncio.TimerHandle] = set()
        self._waiters: set[asyncio.Future[None]] = set()
        self._listeners: EventBus[FormFillerListener] = EventBus()
        self._closed = False

        # Page -> handler; the adapter sends back whatever reply we return.
        browser.set_incoming_message_handler(self._on_incoming)
        # Handler -> page, held until the handshake.
        self._handler.set_message_sender(self._send_to_page)
        browser.add_page_load_listener(self._on_page_loaded)
        self._remove_bridge = self._handler.add_listener(_HandlerBridge(self))

        browser.load_url(config.resolve_url())

    # ---- properties ----

    @property
    def handler(self) -> SmartMessageHandler:
        """The handler, for send_sdc_display_questionnaire_async() and friends."""
        return self._handler

    @property
    def browser(self) -> EmbeddedBrowser:
        return self._browser

    @property
    def config(self) -> FormFillerConfig:
        return self._config

    @property
    def handshake_received(self) -> bool:
        return self._handshake.done() and not self._handshake.cancelled()

    # ---- listeners ----

    def add_listener(self, listener: FormFillerListener) -> Callable[[], None]:
        return self._listeners.add(listener)

    def remove_listener(self, listener: FormFillerListener) -> None:
        self._listeners.remove(listener)

    def _fire(self, callback: str, *args: Any) -> None:
        # EventBus logs and isolates each failing listener.
        self._listeners.emit(callback, *args)

    # ---- public API ----

    def wait_for_handshake(self) -> "asyncio.Future[None]":
        """Resolves once the page has sent its handshake.

        Fails with HandshakeTimeoutError after ``config.handshake_timeout``
        seconds. A timeout leaves the session usable.
        """
        result: asyncio.Future[None] = self._loop.create_future()
        if self._closed:
            result.cancel()
            return result

        timeout = self._config.handshake_timeout
        gate = self._handshake

        def on_gate(_: "asyncio.Future[None]") -> None:
            if not result.done():
                result.set_result(None)

        def on_timeout() -> None:
            if not result.done():
                result.set_exception(HandshakeTimeoutError(timeout))

        handle = self._loop.call_later(timeout, on_timeout)
        self._timers.add(handle)
        self._waiters.add(result)

        def cleanup(_: "asyncio.Future[None]") -> None:
            handle.cancel()
            self._timers.discard(handle)
            self._waiters.discard(result)
            gate.remove_done_callback(on_gate)

        gate.add_done_callback(on_gate)
        result.add_done_callback(cleanup)
        return result

    def request_submit(self) -> Awaitable[Any]:
        logger.info("Requesting form submit")
        return self._handler.send_form_request_submit_async(None)

    def navigate(self, url: str) -> None:
        """Load another page. Queued sends and pending responses from the old page are dropped."""
        logger.info("Navigating to %s", url)
        self._handshake = self._loop.create_future()
        self._drop_outbox()
        self._handler.clear_all_response_listeners()
        self._browser.load_url(url)

    def close(self) -> None:
        """Release the session. No handshake timeout fires after this returns."""
        if self._closed:
            return
        self._closed = True
        self._remove_bridge()
        self._handler.set_message_sender(None)
        self._browser.set_incoming_message_handler(None)
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        for waiter in list(self._waiters):
            waiter.cancel()
        self._drop_outbox()
        self._browser.close()

    def __enter__(self) -> "FormFiller":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    # ---- internals ----

    def _call_soon(self, callback: Callable[..., None], *args: Any) -> None:
        if self._closed:
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _on_incoming(self, json_message: str) -> Optional[str]:
        logger.debug("Received %s message %s", get_message_type_from_json(json_message),
                     get_message_id_from_json(json_message))
        return self._handler.handle_message(json_message)

    def _on_page_loaded(self) -> None:
        logger.debug("Page loaded")

    def _on_handshake(self, gate: "asyncio.Future[None]") -> None:
        if gate is not self._handshake:
            logger.debug("Ignoring handshake from a previous page")
            return
        if not gate.done():
            gate.set_result(None)
        while self._outbox:
            json_message, future = self._outbox.popleft()
            self._deliver(json_message, future)
        self._fire("on_handshake_received")

    def _on_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _send_to_page(self, json_message: str) -> "Union[asyncio.Future[None], concurrent.futures.Future[None]]":
        logger.debug("Sending %s message %s", get_message_type_from_json(json_message),
                     get_message_id_from_json(json_message))
        if not self._on_loop_thread():
            # The gate and outbox are only touched on the loop.
            return asyncio.run_coroutine_threadsafe(self._send_from_thread(json_message), self._loop)
        return self._enqueue(json_message)

    async def _send_from_thread(self, json_message: str) -> None:
        await self._enqueue(json_message)

    def _enqueue(self, json_message: str) -> "asyncio.Future[None]":
        future: asyncio.Future[None] = self._loop.create_future()
        if self.handshake_received:
            self._deliver(json_message, future)
        else:
            self._outbox.append((json_message, future))
        return future

    def _deliver(self, json_message: str, future: "asyncio.Future[None]") -> None:
        if future.done():
            return
        try:
            self._browser.send_message(json_message)
        except Exception as e:
            logger.error("Failed to send message to page", exc_info=True)
            future.set_exception(e)
            return
        future.set_result(None)

    def _drop_outbox(self) -> None:
        while self._outbox:
            _, future = self._outbox.popleft()
            future.cancel()
