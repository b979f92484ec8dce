# framecast/clock.py
"""Virtual time control.

The remote engine is never handed a whole budget at once. Budgets are split into
chunks that end on animation-frame boundaries, and every boundary reached inside
a grant is announced to the renderer with a display-suppressed ``beginFrame`` so
its animation scheduling stays in step with virtual time.

:class:`VirtualClock` is the bookkeeping as a plain state machine: it consumes
budget-expired events and returns the commands the driver has to execute.
:class:`VirtualTimeController` is the asyncio driver that talks to the protocol
session.

Adapted from Chromium's headless ``virtual-time-controller.js`` test helper.
"""
from __future__ import annotations
import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from .errors import (
    ClockError,
    ClockNotInstalledError,
    ClockStoppedError,
    GrantOutstandingError,
    ProtocolError,
    UnexpectedExpiryError,
)
from .models import ScreenshotOptions
from .protocol import POLICY_PAUSE, POLICY_PAUSE_IF_NETWORK_FETCHES_PENDING

logger = logging.getLogger("framecast.clock")

DEFAULT_ANIMATION_FRAME_INTERVAL = 16
DEFAULT_MAX_TASK_STARVATION_COUNT = 100 * 1000
DEFAULT_TIMESTAMP_EPSILON = 0.01


class Phase(enum.Enum):
    UNINSTALLED = "uninstalled"
    PAUSED = "paused"
    CHUNKING = "chunking"
    EXPIRED = "expired"
    STOPPED = "stopped"


# ---------- events / commands ----------

@dataclass(frozen=True)
class BudgetExpired:
    pass


@dataclass(frozen=True)
class IssueAnimationTick:
    frame_time: float


@dataclass(frozen=True)
class IssueChunk:
    budget: float
    wait_for_navigation: bool


@dataclass(frozen=True)
class FireExpired:
    elapsed_time: float


Command = Union[IssueAnimationTick, IssueChunk, FireExpired]


@dataclass
class VirtualClockState:
    animation_frame_interval: float = DEFAULT_ANIMATION_FRAME_INTERVAL
    max_task_starvation_count: int = DEFAULT_MAX_TASK_STARVATION_COUNT
    time_base: float = 0.0
    elapsed_time: float = 0.0
    remaining_budget: float = 0.0
    last_granted_chunk: float = 0.0
    total_granted: float = 0.0


class VirtualClock:
    """Budget bookkeeping for one remote engine, free of any I/O."""

    def __init__(
        self,
        animation_frame_interval: float = DEFAULT_ANIMATION_FRAME_INTERVAL,
        max_task_starvation_count: int = DEFAULT_MAX_TASK_STARVATION_COUNT,
    ) -> None:
        if animation_frame_interval <= 0:
            raise ValueError("animation_frame_interval must be positive")
        self.state = VirtualClockState(
            animation_frame_interval=animation_frame_interval,
            max_task_starvation_count=max_task_starvation_count,
        )
        self.phase = Phase.UNINSTALLED
        self._stop_requested = False

    @property
    def outstanding(self) -> bool:
        return self.phase is Phase.CHUNKING

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def frame_time(self) -> float:
        return self.state.time_base + self.state.elapsed_time

    def install(self, time_base: float) -> None:
        if self.phase is not Phase.UNINSTALLED:
            raise ClockError(f"clock already installed (phase={self.phase.value})")
        self.state.time_base = time_base
        self.phase = Phase.PAUSED

    def advance_time_base(self, delta: float) -> None:
        # outside the budget: elapsed_time is untouched
        self.state.time_base += delta

    def grant(self, budget: float) -> List[Command]:
        if budget <= 0:
            raise ValueError(f"budget must be positive, got {budget}")
        if self.phase is Phase.UNINSTALLED:
            raise ClockNotInstalledError("grant before the clock was installed")
        if self.phase is Phase.STOPPED:
            raise ClockStoppedError("grant after the clock was stopped")
        if self.phase is Phase.CHUNKING:
            raise GrantOutstandingError(
                f"{self.state.remaining_budget}ms of the previous grant are still outstanding"
            )
        self.state.remaining_budget = budget
        self.state.total_granted += budget
        self.phase = Phase.CHUNKING
        return self._schedule_step()

    def expire(self, event: Optional[BudgetExpired] = None) -> List[Command]:
        if self.phase is not Phase.CHUNKING:
            raise UnexpectedExpiryError(f"budget expired while {self.phase.value}")
        st = self.state
        st.elapsed_time += st.last_granted_chunk
        st.remaining_budget = max(st.remaining_budget - st.last_granted_chunk, 0)
        if st.remaining_budget == 0:
            self.phase = Phase.STOPPED if self._stop_requested else Phase.EXPIRED
            return [FireExpired(st.elapsed_time)]
        return self._schedule_step()

    def stop(self) -> None:
        self._stop_requested = True
        self.state.remaining_budget = 0
        if self.phase in (Phase.PAUSED, Phase.EXPIRED):
            self.phase = Phase.STOPPED

    def _schedule_step(self) -> List[Command]:
        st = self.state
        commands: List[Command] = []
        boundary_offset = st.elapsed_time % st.animation_frame_interval
        if st.elapsed_time > 0 and st.remaining_budget > 0 and boundary_offset == 0:
            commands.append(IssueAnimationTick(self.frame_time))
        chunk = min(st.animation_frame_interval - boundary_offset, st.remaining_budget)
        st.last_granted_chunk = chunk
        commands.append(IssueChunk(chunk, wait_for_navigation=st.elapsed_time == 0))
        return commands


Callback = Callable[[float], Union[None, Awaitable[Any]]]


async def _invoke(callback: Optional[Callback], value: float) -> None:
    if callback is None:
        return
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class VirtualTimeController:
    """Drives a :class:`VirtualClock` against a protocol session.

    Expiry events from the session are queued and consumed by :meth:`run` one at
    a time, so callbacks never interleave with chunk bookkeeping.
    """

    def __init__(
        self,
        session,
        animation_frame_interval: float = DEFAULT_ANIMATION_FRAME_INTERVAL,
        max_task_starvation_count: int = DEFAULT_MAX_TASK_STARVATION_COUNT,
        timestamp_epsilon: float = DEFAULT_TIMESTAMP_EPSILON,
    ) -> None:
        if timestamp_epsilon <= 0:
            raise ValueError("timestamp_epsilon must be positive")
        self._session = session
        self._clock = VirtualClock(animation_frame_interval, max_task_starvation_count)
        self._epsilon = timestamp_epsilon
        self._events: asyncio.Queue[BudgetExpired] = asyncio.Queue()
        self._on_installed: Optional[Callback] = None
        self._on_expired: Optional[Callback] = None
        session.on_budget_expired(self._budget_expired)

    @property
    def clock(self) -> VirtualClock:
        return self._clock

    @property
    def stopped(self) -> bool:
        return self._clock.stop_requested

    def _budget_expired(self) -> None:
        self._events.put_nowait(BudgetExpired())

    def current_frame_time(self) -> float:
        return self._clock.frame_time

    def elapsed_time(self) -> float:
        return self._clock.state.elapsed_time

    async def install_initial_budget(
        self,
        budget: float,
        initial_virtual_time: float,
        on_installed: Optional[Callback],
        on_expired: Optional[Callback],
    ) -> None:
        time_base = await self._session.set_time_budget(
            policy=POLICY_PAUSE, initial_virtual_time=initial_virtual_time,
        )
        self._clock.install(time_base)
        logger.debug("Virtual time paused, base=%s", time_base)
        # the very first frame has to be fully rendered
        await self._session.render_frame(time_base, no_display_updates=False)
        if self._clock.stop_requested:
            logger.info("Stopped before the initial budget was granted")
            return
        self._on_installed = on_installed
        await self.grant_time(budget, on_expired)

    async def grant_time(self, budget: float, on_expired: Optional[Callback]) -> None:
        commands = self._clock.grant(budget)
        self._on_expired = on_expired
        await self._execute(commands)

    def stop_gracefully(self) -> None:
        """Revoke the rest of the current grant; the chunk in flight still expires."""
        self._clock.stop()

    async def capture_frame(self, options: ScreenshotOptions) -> bytes:
        frame_time = self.current_frame_time()
        data = await self._session.render_frame(frame_time, screenshot=options)
        if data is None:
            raise ProtocolError(f"no screenshot data for frame at {frame_time}")
        # next capture must present a strictly greater timestamp
        self._clock.advance_time_base(self._epsilon)
        return data

    async def run(self) -> None:
        """Process expiry events until no grant is left outstanding."""
        while self._clock.outstanding:
            event = await self._events.get()
            await self._execute(self._clock.expire(event))

    async def _execute(self, commands: List[Command]) -> None:
        for command in commands:
            if isinstance(command, IssueAnimationTick):
                await self._session.render_frame(command.frame_time, no_display_updates=True)
            elif isinstance(command, IssueChunk):
                await self._session.set_time_budget(
                    command.budget,
                    policy=POLICY_PAUSE_IF_NETWORK_FETCHES_PENDING,
                    max_task_starvation_count=self._clock.state.max_task_starvation_count,
                    wait_for_navigation=command.wait_for_navigation,
                )
                if self._on_installed is not None:
                    on_installed, self._on_installed = self._on_installed, None
                    await _invoke(on_installed, self._clock.state.time_base)
            elif isinstance(command, FireExpired):
                on_expired, self._on_expired = self._on_expired, None
                await _invoke(on_expired, command.elapsed_time)
