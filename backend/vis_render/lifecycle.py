"""Service lifecycle: startup, listening, graceful drain on signals, stop."""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Callable
from enum import Enum
from types import FrameType

import uvicorn

logger = logging.getLogger(__name__)

PROCESS_STARTED_AT = time.monotonic()


def process_uptime() -> float:
    """Seconds since this process imported the service."""
    return time.monotonic() - PROCESS_STARTED_AT


class LifecycleState(str, Enum):
    STARTING = "starting"
    LISTENING = "listening"
    DRAINING = "draining"
    STOPPED = "stopped"


_ALLOWED_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.STARTING: {LifecycleState.LISTENING, LifecycleState.DRAINING, LifecycleState.STOPPED},
    LifecycleState.LISTENING: {LifecycleState.DRAINING},
    LifecycleState.DRAINING: {LifecycleState.STOPPED},
    LifecycleState.STOPPED: set(),
}


class LifecycleTransitionError(RuntimeError):
    """Raised on a transition the lifecycle does not allow."""


class InFlightTracker:
    """Counts requests that are currently being handled."""

    def __init__(self) -> None:
        self._count = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        return self._count

    def enter(self) -> None:
        self._count += 1
        self._idle.clear()

    def exit(self) -> None:
        if self._count == 0:
            raise RuntimeError("InFlightTracker.exit() called more often than enter().")
        self._count -= 1
        if self._count == 0:
            self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()


class ServiceLifecycle:
    """Explicit ``starting -> listening -> draining -> stopped`` state machine.

    When a :class:`LifecycleServer` drives the app, ``listening`` is entered
    only once the socket is bound *and* the app finished its own startup.
    Otherwise (e.g. in-process test clients) app startup alone is enough.
    """

    def __init__(
        self,
        tracker: InFlightTracker | None = None,
        *,
        on_listening: Callable[[], None] | None = None,
    ) -> None:
        self.tracker = tracker or InFlightTracker()
        self._on_listening = on_listening
        self._state = LifecycleState.STARTING
        self._bind_expected = False
        self._socket_bound = False
        self._app_ready = False
        self.history: list[LifecycleState] = [self._state]

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _transition(self, new_state: LifecycleState, *, reason: str | None = None) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise LifecycleTransitionError(f"Cannot move from {self._state.value} to {new_state.value}.")
        logger.info(
            "Service lifecycle %s -> %s",
            self._state.value,
            new_state.value,
            extra={
                "component": "lifecycle",
                "operation": "state_transition",
                "fromState": self._state.value,
                "toState": new_state.value,
                "reason": reason,
            },
        )
        self._state = new_state
        self.history.append(new_state)

    def expect_bind(self) -> None:
        self._bind_expected = True

    def _maybe_listen(self) -> None:
        if self._state is not LifecycleState.STARTING:
            return
        if self._app_ready and (self._socket_bound or not self._bind_expected):
            self._transition(LifecycleState.LISTENING)
            if self._on_listening is not None:
                self._on_listening()

    def app_ready(self) -> None:
        self._app_ready = True
        self._maybe_listen()

    def socket_bound(self) -> None:
        self._socket_bound = True
        self._maybe_listen()

    def begin_draining(self, reason: str) -> None:
        """Stop taking new work; idempotent."""
        if self._state in (LifecycleState.DRAINING, LifecycleState.STOPPED):
            return
        self._transition(LifecycleState.DRAINING, reason=reason)

    async def drain(self, reason: str = "shutdown") -> None:
        """Wait for in-flight requests, then stop."""
        self.begin_draining(reason)
        if self._state is LifecycleState.STOPPED:
            return
        if self.tracker.count:
            logger.info("Waiting for %d in-flight request(s) to finish", self.tracker.count)
        await self.tracker.wait_idle()
        self._transition(LifecycleState.STOPPED, reason=reason)

    def mark_failed(self, reason: str) -> None:
        if self._state is LifecycleState.STOPPED:
            return
        if self._state is LifecycleState.LISTENING:
            self._transition(LifecycleState.DRAINING, reason=reason)
        self._transition(LifecycleState.STOPPED, reason=reason)


class LifecycleServer(uvicorn.Server):
    """uvicorn server that reports bind and signal events to the lifecycle.

    SIGINT and SIGTERM are handled the same way: uvicorn closes the listening
    socket and waits, with no timeout, for open connections to finish.
    """

    def __init__(self, config: uvicorn.Config, *, lifecycle: ServiceLifecycle) -> None:
        super().__init__(config)
        self.lifecycle = lifecycle
        lifecycle.expect_bind()

    async def startup(self, sockets=None) -> None:  # type: ignore[no-untyped-def]
        await super().startup(sockets=sockets)
        if self.started and not self.should_exit:
            self.lifecycle.socket_bound()

    def handle_exit(self, sig: int, frame: FrameType | None) -> None:
        try:
            reason = signal.Signals(sig).name
        except ValueError:
            reason = f"signal {sig}"
        logger.info("Shutting down server (%s)...", reason)
        self.lifecycle.begin_draining(reason)
        super().handle_exit(sig, frame)
