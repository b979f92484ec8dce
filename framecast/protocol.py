# framecast/protocol.py
from __future__ import annotations
import asyncio
import base64
import logging
from typing import Any, Callable, Dict, Optional

from playwright.async_api import CDPSession, Error as PlaywrightError

from .errors import ProtocolError
from .models import ScreenshotOptions

logger = logging.getLogger("framecast.protocol")

POLICY_PAUSE = "pause"
POLICY_PAUSE_IF_NETWORK_FETCHES_PENDING = "pauseIfNetworkFetchesPending"

BUDGET_EXPIRED_EVENT = "Emulation.virtualTimeBudgetExpired"
EXCEPTION_THROWN_EVENT = "Runtime.exceptionThrown"
LOAD_EVENT = "Page.loadEventFired"


def describe_exception(details: Dict[str, Any]) -> str:
    """One-line description of a ``Runtime.exceptionThrown`` payload."""
    exception = details.get("exception") or {}
    msg = exception.get("description") or details.get("text") or "unknown error"
    if details.get("url"):
        msg += f" at <{details['url']}>"
    return f"{msg}:{details.get('lineNumber', '?')}"


class ProtocolSession:
    """Time-control view over a DevTools session with begin-frame control enabled."""

    def __init__(self, cdp: CDPSession) -> None:
        self._cdp = cdp
        self._closed = False

    async def _send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            return await self._cdp.send(method, params or {})
        except PlaywrightError as exc:
            raise ProtocolError(f"{method} failed: {exc}") from exc

    async def enable(self) -> None:
        await asyncio.gather(
            self._send("Page.enable"),
            self._send("Log.enable"),
            self._send("Runtime.enable"),
            self._send("HeadlessExperimental.enable"),
        )

    async def set_time_budget(
        self,
        budget: Optional[float] = None,
        *,
        policy: str,
        initial_virtual_time: Optional[float] = None,
        max_task_starvation_count: Optional[int] = None,
        wait_for_navigation: bool = False,
    ) -> float:
        params: Dict[str, Any] = {"policy": policy}
        if budget is not None:
            params["budget"] = budget
        if initial_virtual_time is not None:
            params["initialVirtualTime"] = initial_virtual_time
        if max_task_starvation_count is not None:
            params["maxVirtualTimeTaskStarvationCount"] = max_task_starvation_count
        if wait_for_navigation:
            params["waitForNavigation"] = True
        result = await self._send("Emulation.setVirtualTimePolicy", params)
        return float(result.get("virtualTimeTicksBase", 0.0))

    async def render_frame(
        self,
        frame_time: float,
        *,
        no_display_updates: Optional[bool] = None,
        screenshot: Optional[ScreenshotOptions] = None,
    ) -> Optional[bytes]:
        params: Dict[str, Any] = {"frameTimeTicks": frame_time}
        if no_display_updates is not None:
            params["noDisplayUpdates"] = no_display_updates
        if screenshot is not None:
            params["screenshot"] = screenshot.to_protocol()
        result = await self._send("HeadlessExperimental.beginFrame", params)
        data = result.get("screenshotData")
        if data is None:
            return None
        return base64.b64decode(data)

    def on_budget_expired(self, callback: Callable[[], None]) -> None:
        self._cdp.on(BUDGET_EXPIRED_EVENT, lambda _params: callback())

    def on_exception_thrown(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self._cdp.on(EXCEPTION_THROWN_EVENT, lambda params: callback(params.get("exceptionDetails") or {}))

    async def navigate(self, url: str) -> None:
        """Navigate the target and wait for its load event."""
        loaded: asyncio.Future = asyncio.get_running_loop().create_future()

        def _on_load(_params) -> None:
            if not loaded.done():
                loaded.set_result(True)

        self._cdp.once(LOAD_EVENT, _on_load)
        result = await self._send("Page.navigate", {"url": url})
        if result.get("errorText"):
            self._cdp.remove_listener(LOAD_EVENT, _on_load)
            raise ProtocolError(f"navigation to {url} failed: {result['errorText']}")
        logger.debug("Navigated to %s, waiting for load", url)
        await loaded

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._cdp.detach()
        except PlaywrightError as exc:
            raise ProtocolError(f"detach failed: {exc}") from exc
