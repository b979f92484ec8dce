from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from framecast.models import ScreenshotOptions


class FakeProtocolSession:
    """In-memory stand-in for :class:`framecast.protocol.ProtocolSession`.

    Every budgeted ``set_time_budget`` call is answered with an asynchronous
    budget-expired event on the next loop iteration, like Chromium does once
    the granted virtual time has run out.
    """

    def __init__(self, time_base: float = 10_000.0) -> None:
        self.time_base = time_base
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.navigated: List[str] = []
        self.closed = False
        self.outstanding_budgets = 0
        self._expired_listeners: List[Callable[[], None]] = []
        self._exception_listeners: List[Callable[[Dict[str, Any]], None]] = []
        self.on_render: Optional[Callable[[int], None]] = None
        self.on_full_render: Optional[Callable[[], None]] = None
        self.screenshot_payload: Optional[bytes] = None
        self._screens = 0

    # -- protocol surface -----------------------------------------------------

    async def set_time_budget(self, budget=None, *, policy, initial_virtual_time=None,
                              max_task_starvation_count=None, wait_for_navigation=False) -> float:
        self.calls.append(("set_time_budget", {
            "budget": budget,
            "policy": policy,
            "initial_virtual_time": initial_virtual_time,
            "max_task_starvation_count": max_task_starvation_count,
            "wait_for_navigation": wait_for_navigation,
        }))
        if budget is not None:
            if self.outstanding_budgets:
                raise AssertionError("budget granted while another one is outstanding")
            self.outstanding_budgets += 1
            asyncio.get_running_loop().call_soon(self._expire)
        return self.time_base

    async def render_frame(self, frame_time: float, *, no_display_updates=None,
                           screenshot: Optional[ScreenshotOptions] = None) -> Optional[bytes]:
        self.calls.append(("render_frame", {
            "frame_time": frame_time,
            "no_display_updates": no_display_updates,
            "screenshot": screenshot,
        }))
        if no_display_updates is False and self.on_full_render is not None:
            self.on_full_render()
        if screenshot is None:
            return None
        self._screens += 1
        if self.on_render is not None:
            self.on_render(self._screens)
        if self.screenshot_payload is not None:
            return self.screenshot_payload
        return f"frame@{frame_time:.2f}".encode()

    def on_budget_expired(self, callback: Callable[[], None]) -> None:
        self._expired_listeners.append(callback)

    def on_exception_thrown(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self._exception_listeners.append(callback)

    async def navigate(self, url: str) -> None:
        self.calls.append(("navigate", {"url": url}))
        self.navigated.append(url)

    async def close(self) -> None:
        self.closed = True

    # -- helpers --------------------------------------------------------------

    def _expire(self) -> None:
        self.outstanding_budgets -= 1
        for listener in self._expired_listeners:
            listener()

    def throw(self, details: Dict[str, Any]) -> None:
        for listener in self._exception_listeners:
            listener(details)

    def calls_named(self, name: str) -> List[Dict[str, Any]]:
        return [params for call, params in self.calls if call == name]

    @property
    def budgets(self) -> List[float]:
        return [c["budget"] for c in self.calls_named("set_time_budget") if c["budget"] is not None]

    @property
    def screenshots(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls_named("render_frame") if c["screenshot"] is not None]

    @property
    def ticks(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls_named("render_frame") if c["no_display_updates"] is True]
