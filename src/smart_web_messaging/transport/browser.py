"""
Embedded browser abstraction.

How messages travel from the document to the host is up to the adapter; it
only has to hand each raw JSON message to the incoming handler and send back
whatever reply the handler returns. Host-to-document messages go through
:meth:`EmbeddedBrowser.send_message`, which by default calls
``window.swmReceiveMessage(...)`` in the page.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

IncomingMessageHandler = Callable[[str], Optional[str]]

_JS_ESCAPES = (
    ("\\", "\\\\"),
    ("'", "\\'"),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
    ("\u0000", "\\u0000"),
)


def escape_js_string(value: str) -> str:
    """Escape text for a single-quoted JavaScript string literal."""
    for char, replacement in _JS_ESCAPES:
        value = value.replace(char, replacement)
    return value


class EmbeddedBrowser(ABC):
    @abstractmethod
    def load_url(self, url: str) -> None:
        ...

    @abstractmethod
    def execute_javascript(self, script: str) -> None:
        ...

    @abstractmethod
    def set_incoming_message_handler(self, handler: Optional[IncomingMessageHandler]) -> None:
        """Set the function that receives raw JSON from the page and returns an optional reply."""

    @abstractmethod
    def add_page_load_listener(self, callback: Callable[[], None]) -> None:
        """Called on every main-frame load, so once per navigation."""

    @abstractmethod
    def close(self) -> None:
        ...

    def send_message(self, json_message: str) -> None:
        self.execute_javascript(f"window.swmReceiveMessage('{escape_js_string(json_message)}');")
