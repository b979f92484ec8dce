from __future__ import annotations

import base64
import unittest
from typing import Any, Callable, Dict, List

from playwright.async_api import Error as PlaywrightError

from framecast.errors import ProtocolError
from framecast.models import ScreenshotOptions
from framecast.protocol import (
    BUDGET_EXPIRED_EVENT,
    LOAD_EVENT,
    POLICY_PAUSE,
    ProtocolSession,
    describe_exception,
)


class StubCDPSession:
    """Records ``send`` calls and lets tests emit events, like Playwright's CDPSession."""

    def __init__(self) -> None:
        self.sent: List[tuple] = []
        self.responses: Dict[str, Any] = {}
        self.listeners: Dict[str, Dict[Callable, Callable]] = {}
        self.detached = False

    async def send(self, method: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
        self.sent.append((method, params))
        response = self.responses.get(method, {})
        if isinstance(response, Exception):
            raise response
        if method == "Page.navigate" and not response.get("errorText"):
            self.emit(LOAD_EVENT, {"timestamp": 1.0})
        return response

    def on(self, event: str, handler: Callable) -> None:
        self.listeners.setdefault(event, {})[handler] = handler

    def once(self, event: str, handler: Callable) -> None:
        def wrapper(params):
            self.remove_listener(event, handler)
            handler(params)
        self.listeners.setdefault(event, {})[handler] = wrapper

    def remove_listener(self, event: str, handler: Callable) -> None:
        self.listeners.get(event, {}).pop(handler, None)

    def emit(self, event: str, params: Dict[str, Any]) -> None:
        for handler in list(self.listeners.get(event, {}).values()):
            handler(params)

    async def detach(self) -> None:
        self.detached = True


class ProtocolSessionTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.cdp = StubCDPSession()
        self.session = ProtocolSession(self.cdp)

    async def test_set_time_budget_params(self) -> None:
        self.cdp.responses["Emulation.setVirtualTimePolicy"] = {"virtualTimeTicksBase": 12345.5}
        base = await self.session.set_time_budget(policy=POLICY_PAUSE, initial_virtual_time=10_000)
        self.assertEqual(base, 12345.5)
        self.assertEqual(self.cdp.sent[-1], (
            "Emulation.setVirtualTimePolicy", {"policy": "pause", "initialVirtualTime": 10_000},
        ))

        await self.session.set_time_budget(
            16, policy="pauseIfNetworkFetchesPending", max_task_starvation_count=100_000,
            wait_for_navigation=True,
        )
        self.assertEqual(self.cdp.sent[-1][1], {
            "policy": "pauseIfNetworkFetchesPending",
            "budget": 16,
            "maxVirtualTimeTaskStarvationCount": 100_000,
            "waitForNavigation": True,
        })

    async def test_render_frame_decodes_screenshot(self) -> None:
        self.cdp.responses["HeadlessExperimental.beginFrame"] = {
            "hasDamage": True,
            "screenshotData": base64.b64encode(b"\xff\xd8jpeg").decode("ascii"),
        }
        data = await self.session.render_frame(11_001.0, screenshot=ScreenshotOptions(format="jpeg", quality=85))
        self.assertEqual(data, b"\xff\xd8jpeg")
        self.assertEqual(self.cdp.sent[-1][1], {
            "frameTimeTicks": 11_001.0,
            "screenshot": {"format": "jpeg", "quality": 85},
        })

    async def test_render_frame_without_screenshot(self) -> None:
        self.cdp.responses["HeadlessExperimental.beginFrame"] = {"hasDamage": False}
        self.assertIsNone(await self.session.render_frame(10_016.0, no_display_updates=True))
        self.assertEqual(self.cdp.sent[-1][1], {"frameTimeTicks": 10_016.0, "noDisplayUpdates": True})

    async def test_playwright_errors_become_protocol_errors(self) -> None:
        self.cdp.responses["HeadlessExperimental.beginFrame"] = PlaywrightError("Target closed")
        with self.assertRaises(ProtocolError):
            await self.session.render_frame(1.0)

    async def test_budget_expired_event(self) -> None:
        fired = []
        self.session.on_budget_expired(lambda: fired.append(True))
        self.cdp.emit(BUDGET_EXPIRED_EVENT, {})
        self.assertEqual(fired, [True])

    async def test_navigate_waits_for_load(self) -> None:
        await self.session.navigate("https://example.test/")
        self.assertEqual(self.cdp.sent[-1], ("Page.navigate", {"url": "https://example.test/"}))

    async def test_navigation_error(self) -> None:
        self.cdp.responses["Page.navigate"] = {"errorText": "net::ERR_NAME_NOT_RESOLVED"}
        with self.assertRaises(ProtocolError):
            await self.session.navigate("https://nowhere.invalid/")
        self.assertEqual(self.cdp.listeners[LOAD_EVENT], {})

    async def test_close_detaches_once(self) -> None:
        await self.session.close()
        await self.session.close()
        self.assertTrue(self.cdp.detached)


class DescribeExceptionTests(unittest.TestCase):
    def test_with_exception_object(self) -> None:
        details = {
            "text": "Uncaught",
            "exception": {"description": "ReferenceError: x is not defined"},
            "url": "https://example.test/app.js",
            "lineNumber": 7,
        }
        self.assertEqual(
            describe_exception(details),
            "ReferenceError: x is not defined at <https://example.test/app.js>:7",
        )

    def test_text_only(self) -> None:
        self.assertEqual(describe_exception({"text": "Uncaught (in promise)", "lineNumber": 0}),
                         "Uncaught (in promise):0")


if __name__ == "__main__":  # pragma: no cover - convenience
    unittest.main()
