"""FormFiller tests against an in-memory browser."""

import asyncio
import concurrent.futures
import json

import pytest

from smart_web_messaging import (
    EmbeddedBrowser,
    FormFiller,
    FormFillerConfig,
    FormFillerListener,
    HandshakeTimeoutError,
    SmartMessageHandler,
)

TARGET_URL = "https://forms.example.org/filler"


class FakeBrowser(EmbeddedBrowser):
    """Records what the host sends; deliver() plays the page's side."""

    def __init__(self):
        self.loaded = []
        self.scripts = []
        self.closed = False
        self.incoming = None
        self.page_load_listeners = []

    def load_url(self, url):
        self.loaded.append(url)

    def execute_javascript(self, script):
        self.scripts.append(script)

    def set_incoming_message_handler(self, handler):
        self.incoming = handler

    def add_page_load_listener(self, callback):
        self.page_load_listeners.append(callback)

    def close(self):
        self.closed = True

    def deliver(self, message: dict):
        return self.incoming(json.dumps(message))

    @property
    def sent_types(self):
        return [json.loads(_unwrap(s))["messageType"] for s in self.scripts]


def _unwrap(script: str) -> str:
    prefix, suffix = "window.swmReceiveMessage('", "');"
    assert script.startswith(prefix) and script.endswith(suffix)
    return script[len(prefix):-len(suffix)].replace("\\'", "'").replace("\\\\", "\\")


def _handshake(message_id: str = "hs-1") -> dict:
    return {
        "messageId": message_id,
        "messagingHandle": "smart-web-messaging",
        "messageType": "status.handshake",
        "payload": {},
    }


async def _settle():
    # Listener callbacks are scheduled with call_soon_threadsafe.
    for _ in range(3):
        await asyncio.sleep(0)


class RecordingFillerListener(FormFillerListener):
    def __init__(self):
        self.calls = []

    def on_handshake_received(self):
        self.calls.append(("handshake",))

    def on_form_submitted(self, response, outcome):
        self.calls.append(("submitted", response, outcome))

    def on_close_requested(self):
        self.calls.append(("close",))


def make_filler(timeout: float = 30.0, **kwargs):
    browser = FakeBrowser()
    config = FormFillerConfig(target_url=TARGET_URL, handshake_timeout=timeout)
    return FormFiller(config, browser, **kwargs), browser


class TestConstruction:
    @pytest.mark.asyncio
    async def test_wires_browser_and_loads_target(self):
        filler, browser = make_filler()
        assert browser.loaded == [TARGET_URL]
        assert browser.incoming is not None
        assert len(browser.page_load_listeners) == 1
        assert not filler.handshake_received
        filler.close()

    @pytest.mark.asyncio
    async def test_uses_given_handler(self):
        handler = SmartMessageHandler()
        filler, _ = make_filler(handler=handler)
        assert filler.handler is handler
        filler.close()

    @pytest.mark.asyncio
    async def test_default_page_when_no_target(self):
        browser = FakeBrowser()
        config = FormFillerConfig(sdc_endpoint_address="https://sdc.example.org/fhir/r5")
        filler = FormFiller(config, browser)
        assert browser.loaded[0].startswith("file://")
        filler.close()


class TestHandshakeGating:
    """Outbound messages wait for the page's handshake."""

    @pytest.mark.asyncio
    async def test_messages_held_until_handshake(self):
        filler, browser = make_filler()

        pending = filler.handler.send_sdc_display_questionnaire_async("http://example.org/q")
        await _settle()
        assert browser.scripts == []
        assert not pending.done()

        reply = json.loads(browser.deliver(_handshake()))
        assert reply["responseToMessageId"] == "hs-1"
        await _settle()

        assert filler.handshake_received
        assert browser.sent_types == ["sdc.displayQuestionnaire"]
        await asyncio.wait_for(pending, 1)
        filler.close()

    @pytest.mark.asyncio
    async def test_queued_messages_keep_send_order(self):
        filler, browser = make_filler()

        filler.handler.send_sdc_configure_async(terminology_server="https://tx")
        filler.handler.send_sdc_configure_context_async(subject="Patient/p1")
        filler.handler.send_sdc_display_questionnaire_async("http://example.org/q")
        browser.deliver(_handshake())
        await _settle()

        assert browser.sent_types == ["sdc.configure", "sdc.configureContext", "sdc.displayQuestionnaire"]
        filler.close()

    @pytest.mark.asyncio
    async def test_sends_after_handshake_go_straight_out(self):
        filler, browser = make_filler()
        browser.deliver(_handshake())
        await _settle()

        await filler.request_submit()

        assert browser.sent_types == ["ui.form.requestSubmit"]
        filler.close()

    @pytest.mark.asyncio
    async def test_send_failure_rejects_future(self):
        filler, browser = make_filler()

        def broken(_script):
            raise RuntimeError("page gone")

        browser.execute_javascript = broken
        browser.deliver(_handshake())
        await _settle()

        with pytest.raises(RuntimeError, match="page gone"):
            await filler.handler.send_form_persist_async()
        filler.close()


class TestWaitForHandshake:
    @pytest.mark.asyncio
    async def test_resolves_on_handshake(self):
        filler, browser = make_filler()
        waiter = filler.wait_for_handshake()
        browser.deliver(_handshake())
        await asyncio.wait_for(waiter, 1)
        assert filler.handshake_received
        filler.close()

    @pytest.mark.asyncio
    async def test_already_received(self):
        filler, browser = make_filler()
        browser.deliver(_handshake())
        await _settle()
        await asyncio.wait_for(filler.wait_for_handshake(), 1)
        filler.close()

    @pytest.mark.asyncio
    async def test_timeout(self):
        filler, browser = make_filler(timeout=0.05)
        with pytest.raises(HandshakeTimeoutError, match="Handshake timeout after 0.05 seconds"):
            await filler.wait_for_handshake()

        # The session stays usable after a timeout.
        browser.deliver(_handshake())
        await asyncio.wait_for(filler.wait_for_handshake(), 1)
        filler.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_wait(self):
        filler, _ = make_filler(timeout=0.05)
        waiter = filler.wait_for_handshake()
        filler.close()
        await asyncio.sleep(0.1)
        assert waiter.cancelled()


class TestListeners:
    """Host listeners run on the loop after the handler has replied."""

    @pytest.mark.asyncio
    async def test_events_forwarded(self):
        filler, browser = make_filler()
        listener = RecordingFillerListener()
        filler.add_listener(listener)

        browser.deliver(_handshake())
        browser.deliver({
            "messageId": "fs-1",
            "messagingHandle": "smart-web-messaging",
            "messageType": "form.submitted",
            "payload": {"response": {"resourceType": "QuestionnaireResponse", "status": "completed"}},
        })
        browser.deliver({
            "messageId": "done-1",
            "messagingHandle": "smart-web-messaging",
            "messageType": "ui.done",
            "payload": {},
        })
        assert listener.calls == []
        await _settle()

        assert [call[0] for call in listener.calls] == ["handshake", "submitted", "close"]
        _, response, outcome = listener.calls[1]
        assert response.resource_type == "QuestionnaireResponse"
        assert outcome is None
        filler.close()

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self):
        filler, browser = make_filler()

        class Failing(FormFillerListener):
            def on_handshake_received(self):
                raise RuntimeError("boom")

        recorder = RecordingFillerListener()
        filler.add_listener(Failing())
        filler.add_listener(recorder)

        reply = json.loads(browser.deliver(_handshake()))
        await _settle()

        assert "errorType" not in reply["payload"]
        assert recorder.calls == [("handshake",)]
        filler.close()

    @pytest.mark.asyncio
    async def test_remove_listener(self):
        filler, browser = make_filler()
        listener = RecordingFillerListener()
        remove = filler.add_listener(listener)
        remove()

        browser.deliver(_handshake())
        await _settle()

        assert listener.calls == []
        filler.close()


class TestNavigateAndClose:
    @pytest.mark.asyncio
    async def test_navigate_resets_gate_and_drops_pending(self):
        filler, browser = make_filler()
        browser.deliver(_handshake())
        await _settle()

        filler.navigate("https://forms.example.org/other")
        assert browser.loaded[-1] == "https://forms.example.org/other"
        assert not filler.handshake_received

        pending = filler.handler.send_form_persist_async(lambda r: None)
        await _settle()
        sent_before = len(browser.scripts)

        filler.navigate("https://forms.example.org/third")
        assert pending.cancelled()

        browser.deliver(_handshake("hs-2"))
        await _settle()
        assert len(browser.scripts) == sent_before
        filler.close()

    @pytest.mark.asyncio
    async def test_handshake_from_previous_page_does_not_open_new_gate(self):
        filler, browser = make_filler()
        listener = RecordingFillerListener()
        filler.add_listener(listener)

        # Old page's handshake is still queued on the loop when navigate() runs.
        browser.deliver(_handshake("old-page"))
        filler.navigate("https://forms.example.org/other")
        await _settle()

        assert not filler.handshake_received
        assert listener.calls == []
        pending = filler.request_submit()
        await _settle()
        assert browser.scripts == []

        browser.deliver(_handshake("new-page"))
        await _settle()
        assert filler.handshake_received
        assert browser.sent_types == ["ui.form.requestSubmit"]
        await asyncio.wait_for(pending, 1)
        filler.close()

    @pytest.mark.asyncio
    async def test_navigate_clears_response_listeners(self):
        filler, browser = make_filler()
        browser.deliver(_handshake())
        await _settle()

        await filler.handler.send_form_persist_async(lambda r: None)
        message_id = json.loads(_unwrap(browser.scripts[-1]))["messageId"]
        assert filler.handler.has_pending_response_listener(message_id)

        filler.navigate("https://forms.example.org/other")
        assert not filler.handler.has_pending_response_listener(message_id)
        filler.close()

    @pytest.mark.asyncio
    async def test_close(self):
        filler, browser = make_filler()
        pending = filler.handler.send_form_persist_async()
        listener = RecordingFillerListener()
        filler.add_listener(listener)

        filler.close()

        assert browser.closed
        assert browser.incoming is None
        assert pending.cancelled()
        assert filler.wait_for_handshake().cancelled()
        filler.close()

    @pytest.mark.asyncio
    async def test_context_manager(self):
        filler, browser = make_filler()
        with filler:
            pass
        assert browser.closed


class TestThreads:
    """Messages and sends arriving from threads other than the loop's."""

    @pytest.mark.asyncio
    async def test_handshake_from_worker_thread(self):
        filler, browser = make_filler()

        reply = await asyncio.to_thread(browser.deliver, _handshake())
        await _settle()

        assert json.loads(reply)["responseToMessageId"] == "hs-1"
        assert filler.handshake_received
        filler.close()

    @pytest.mark.asyncio
    async def test_send_from_worker_thread_waits_for_handshake(self):
        filler, browser = make_filler()

        future = await asyncio.to_thread(filler.handler.send_form_persist_async)
        await _settle()
        assert isinstance(future, concurrent.futures.Future)
        assert browser.scripts == []

        browser.deliver(_handshake())
        await asyncio.wait_for(asyncio.wrap_future(future), 1)
        assert browser.sent_types == ["ui.form.persist"]
        filler.close()

    @pytest.mark.asyncio
    async def test_sends_racing_the_handshake_are_all_delivered(self):
        filler, browser = make_filler()

        def send_batch():
            return [filler.handler.send_form_persist_async() for _ in range(50)]

        batch = asyncio.get_running_loop().run_in_executor(None, send_batch)
        browser.deliver(_handshake())
        futures = await batch

        await asyncio.wait_for(asyncio.gather(*(asyncio.wrap_future(f) for f in futures)), 2)
        assert browser.sent_types == ["ui.form.persist"] * 50
        filler.close()
