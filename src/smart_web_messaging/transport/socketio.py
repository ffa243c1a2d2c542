"""
Socket.IO browser adapter.

Drives a document hosted behind a Socket.IO relay (a headless browser, or a
page whose bridge connects back to the relay). Events:

  swm:message      both directions, one raw JSON message per event
  swm:navigate     host -> relay, {"url": ...}
  swm:execute      host -> relay, {"script": ...}
  swm:page_loaded  relay -> host, main frame finished loading

connect() waits for the relay's `ready` event before returning.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import socketio

from smart_web_messaging.errors import SmartMessagingError
from smart_web_messaging.transport.browser import EmbeddedBrowser, IncomingMessageHandler

logger = logging.getLogger(__name__)

SOCKETIO_PATH = "/socket.io/"
MESSAGE_EVENT = "swm:message"
NAVIGATE_EVENT = "swm:navigate"
EXECUTE_EVENT = "swm:execute"
PAGE_LOADED_EVENT = "swm:page_loaded"


class SocketIOBrowser(EmbeddedBrowser):
    def __init__(
        self,
        relay_url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        socketio_path: str = SOCKETIO_PATH,
        ready_timeout: float = 15.0,
    ):
        self._relay_url = relay_url
        self._token = token
        self._transports = transports or ["websocket"]
        self._socketio_path = socketio_path
        self._ready_timeout = ready_timeout
        self._sio: Optional[socketio.AsyncClient] = None
        self._connected = False
        self._incoming_handler: Optional[IncomingMessageHandler] = None
        self._page_load_listeners: list[Callable[[], None]] = []
        self._tasks: set["asyncio.Task[None]"] = set()

    @property
    def connected(self) -> bool:
        return self._connected and self._sio is not None and self._sio.connected

    async def connect(self) -> None:
        """Connect to the relay and wait for its `ready` event."""
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()
        ready_event = asyncio.Event()

        @self._sio.on("ready")
        async def on_ready(*_args: Any) -> None:
            self._connected = True
            ready_event.set()

        @self._sio.on(MESSAGE_EVENT)
        async def on_message(data: Any) -> None:
            self._on_incoming(data)

        @self._sio.on(PAGE_LOADED_EVENT)
        async def on_page_loaded(*_args: Any) -> None:
            for listener in list(self._page_load_listeners):
                try:
                    listener()
                except Exception:
                    logger.error("Error in page load listener", exc_info=True)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            self._connected = False

        await self._sio.connect(
            self._relay_url,
            auth={"token": self._token} if self._token else None,
            transports=self._transports,
            socketio_path=self._socketio_path,
        )

        try:
            await asyncio.wait_for(ready_event.wait(), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            await self._sio.disconnect()
            raise TimeoutError(f"Timed out waiting for 'ready' event after {self._ready_timeout}s")

    def _on_incoming(self, data: Any) -> None:
        if self._incoming_handler is None:
            logger.warning("Dropping message from page: no incoming message handler set")
            return
        # Relays may forward the message as an object rather than JSON text.
        json_message = data if isinstance(data, str) else json.dumps(data)
        reply = self._incoming_handler(json_message)
        if reply is not None:
            self._emit(MESSAGE_EVENT, reply)

    def _emit(self, event: str, data: Any) -> None:
        """Schedule an emit on the running loop. Errors are logged."""
        if not self._sio or not self._sio.connected:
            raise SmartMessagingError("connection_error", "Socket.IO relay not connected")
        sio = self._sio

        async def _do_emit() -> None:
            try:
                await sio.emit(event, data)
            except Exception as e:
                logger.error("Emit failed for %s: %s", event, e)

        task = asyncio.get_running_loop().create_task(_do_emit())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ---- EmbeddedBrowser ----

    def load_url(self, url: str) -> None:
        self._emit(NAVIGATE_EVENT, {"url": url})

    def execute_javascript(self, script: str) -> None:
        self._emit(EXECUTE_EVENT, {"script": script})

    def send_message(self, json_message: str) -> None:
        # The relay delivers raw JSON to the page bridge; no script wrapping.
        self._emit(MESSAGE_EVENT, json_message)

    def set_incoming_message_handler(self, handler: Optional[IncomingMessageHandler]) -> None:
        self._incoming_handler = handler

    def add_page_load_listener(self, callback: Callable[[], None]) -> None:
        self._page_load_listeners.append(callback)

    def close(self) -> None:
        self._connected = False
        if self._sio:
            sio, self._sio = self._sio, None
            task = asyncio.get_running_loop().create_task(sio.disconnect())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def wait_closed(self) -> None:
        """Wait for emits and the disconnect scheduled by close() to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
