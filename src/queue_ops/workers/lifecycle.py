"""Worker pool lifecycle state machine.

Drives start, stop and restart commands against the worker backend and
confirms each one from heartbeats. A command that is not confirmed within
the timeout leaves the pool in its transitional state with
``confirmed=False``; it is never reported as settled.

States::

    STOPPED --start--> STARTING --heartbeat running--> RUNNING
    RUNNING --stop---> STOPPING --heartbeat absent---> STOPPED
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from ..backends.interfaces import WorkerBackend
from ..circuit_breaker import BackendCircuitBreaker, CircuitOpenError
from ..config import WorkerSettings
from ..errors import InvalidTransitionError, WorkerCommandError
from ..models import WorkerStatus, utcnow

logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Lifecycle states of the worker pool."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of a start, stop or restart request.

    Attributes:
        action: The requested action.
        state: State after the request returned.
        confirmed: Whether a heartbeat confirmed the resulting state.
        command_sent: False when the request was an idempotent no-op.
        restarting: True while a restart is still awaiting confirmation.
        message: Human readable summary.
    """

    action: str
    state: WorkerState
    confirmed: bool
    command_sent: bool
    restarting: bool = False
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "state": self.state.value,
            "confirmed": self.confirmed,
            "command_sent": self.command_sent,
            "restarting": self.restarting,
            "message": self.message,
        }


@dataclass(frozen=True)
class LifecycleStatus:
    """Current lifecycle view, as served to the dashboard."""

    state: WorkerState
    confirmed: bool
    restarting: bool
    last_command: str | None
    last_command_at: datetime | None
    worker_status: WorkerStatus | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "confirmed": self.confirmed,
            "restarting": self.restarting,
            "last_command": self.last_command,
            "last_command_at": self.last_command_at.isoformat() if self.last_command_at else None,
            "worker_status": self.worker_status.to_dict() if self.worker_status else None,
        }


@dataclass(frozen=True)
class WorkerStateChange:
    """Payload delivered to lifecycle listeners."""

    old_state: WorkerState | None
    new_state: WorkerState
    confirmed: bool
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "old_state": self.old_state.value if self.old_state else None,
            "new_state": self.new_state.value,
            "confirmed": self.confirmed,
            "timestamp": self.timestamp.isoformat(),
        }


WorkerStateListener = Callable[[WorkerStateChange], None]


class WorkerLifecycleController:
    """Start/stop/restart controller for the worker pool.

    Usage:
        controller = WorkerLifecycleController(worker_backend, breaker,
                                               on_command=stats.invalidate)
        await controller.observe()
        result = await controller.start()
        if not result.confirmed:
            ...  # still STARTING, heartbeat not seen yet

    Idempotent requests (start while RUNNING or STARTING, stop while STOPPED
    or STOPPING) succeed without sending anything to the backend. A pending
    transition may be reversed: stop is accepted while STARTING and start
    while STOPPING.
    """

    def __init__(
        self,
        worker_backend: WorkerBackend,
        breaker: BackendCircuitBreaker,
        settings: WorkerSettings | None = None,
        on_command: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the controller.

        Args:
            worker_backend: Backend receiving commands and reporting heartbeats.
            breaker: Circuit breaker guarding the worker backend.
            settings: Confirmation timeout and poll interval.
            on_command: Called after every command sent, typically the
                stats aggregator's ``invalidate``.
            clock: Monotonic clock, injectable for tests.
            sleep: Async sleep, injectable for tests.
        """
        self._backend = worker_backend
        self._breaker = breaker
        self._settings = settings or WorkerSettings()
        self._on_command = on_command
        self._clock = clock
        self._sleep = sleep

        self._state: WorkerState | None = None
        self._confirmed = False
        self._restarting = False
        self._restart_since: datetime | None = None
        self._last_command: str | None = None
        self._last_command_at: datetime | None = None
        self._last_status: WorkerStatus | None = None
        self._listeners: list[WorkerStateListener] = []

    @property
    def state(self) -> WorkerState:
        """Current state; STOPPED until the first observation."""
        return self._state or WorkerState.STOPPED

    @property
    def confirmed(self) -> bool:
        return self._confirmed

    def on_state_change(self, listener: WorkerStateListener) -> None:
        """Register a listener called on every state transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: WorkerStateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def observe(self) -> WorkerStatus:
        """Read the heartbeat and reconcile the state with it.

        The first observation sets the initial state. Later observations
        confirm pending transitions and pick up changes made outside the
        control plane (a crashed pool, a manual start).

        Returns:
            The observed WorkerStatus.
        """
        status = await self._breaker.execute(self._backend.get_heartbeat)
        self._last_status = status

        if self._state is None:
            self._transition(
                WorkerState.RUNNING if status.is_running else WorkerState.STOPPED, confirmed=True
            )
        elif self._state in (WorkerState.STARTING, WorkerState.RUNNING) and status.is_running:
            if self._state == WorkerState.STARTING and not _is_after(status, self._restart_since):
                logger.debug("Heartbeat predates restart command, still awaiting confirmation")
            else:
                self._transition(WorkerState.RUNNING, confirmed=True)
                self._restarting = False
                self._restart_since = None
        elif self._state in (WorkerState.STOPPING, WorkerState.STOPPED) and not status.is_running:
            self._transition(WorkerState.STOPPED, confirmed=True)
        elif self._state == WorkerState.RUNNING and not status.is_running:
            logger.warning("Worker heartbeat lost while RUNNING, marking STOPPED")
            self._transition(WorkerState.STOPPED, confirmed=True)
        elif self._state == WorkerState.STOPPED and status.is_running:
            logger.info("Workers reported running while STOPPED, marking RUNNING")
            self._transition(WorkerState.RUNNING, confirmed=True)
        return status

    async def status(self) -> LifecycleStatus:
        """Observe the heartbeat and return the current lifecycle view."""
        await self.observe()
        return LifecycleStatus(
            state=self.state,
            confirmed=self._confirmed,
            restarting=self._restarting,
            last_command=self._last_command,
            last_command_at=self._last_command_at,
            worker_status=self._last_status,
        )

    async def start(self) -> LifecycleResult:
        """Start the worker pool.

        Returns:
            LifecycleResult; ``confirmed`` is False if no running heartbeat
            arrived within the confirmation timeout.

        Raises:
            WorkerCommandError: If the backend rejects the command.
            CircuitOpenError: If the worker backend circuit is open.
        """
        await self._ensure_observed()
        if self.state in (WorkerState.RUNNING, WorkerState.STARTING):
            return self._noop("start")

        await self._send("start", WorkerState.STARTING)
        return await self._confirm("start", expect_running=True)

    async def stop(self) -> LifecycleResult:
        """Stop the worker pool.

        Returns:
            LifecycleResult; ``confirmed`` is False if a running heartbeat
            was still seen when the confirmation timeout expired.

        Raises:
            WorkerCommandError: If the backend rejects the command.
            CircuitOpenError: If the worker backend circuit is open.
        """
        await self._ensure_observed()
        if self.state in (WorkerState.STOPPED, WorkerState.STOPPING):
            return self._noop("stop")

        await self._send("stop", WorkerState.STOPPING)
        return await self._confirm("stop", expect_running=False)

    async def restart(self) -> LifecycleResult:
        """Restart the worker pool from RUNNING or STOPPED.

        Uses the backend's atomic restart when available, otherwise a stop
        followed by a start. In the fallback the intermediate stop is not
        published as a state change.

        Raises:
            WorkerCommandError: If the backend rejects a command.
            CircuitOpenError: If the worker backend circuit is open.
        """
        await self._ensure_observed()
        if self.state not in (WorkerState.RUNNING, WorkerState.STOPPED):
            return self._noop("restart")

        self._restarting = True
        try:
            since: datetime | None = None
            if self._backend.supports_restart:
                # The pool may already be running, so only a heartbeat newer
                # than the command confirms it
                since = await self._send("restart", WorkerState.STARTING)
            else:
                if self.state == WorkerState.RUNNING:
                    await self._send("stop", None)
                    if not await self._await_heartbeat(expect_running=False):
                        logger.warning("Restart: stop not confirmed, starting anyway")
                await self._send("start", WorkerState.STARTING)
            result = await self._confirm("restart", expect_running=True, since=since)
        except BaseException:
            self._restarting = False
            self._restart_since = None
            raise
        if result.confirmed:
            self._restarting = False
        return LifecycleResult(
            action="restart",
            state=result.state,
            confirmed=result.confirmed,
            command_sent=True,
            restarting=self._restarting,
            message=result.message,
        )

    async def _ensure_observed(self) -> None:
        if self._state is None:
            await self.observe()

    def _noop(self, action: str) -> LifecycleResult:
        error = InvalidTransitionError(action, self.state.value)
        logger.info("%s (no-op)", error)
        return LifecycleResult(
            action=action,
            state=self.state,
            confirmed=self._confirmed,
            command_sent=False,
            restarting=self._restarting,
            message=f"Workers {self.state.value}, {action} ignored",
        )

    async def _send(self, action: str, pending_state: WorkerState | None) -> datetime:
        """Send a command, moving to ``pending_state`` first.

        The previous state is restored if the backend rejects the command.
        ``pending_state`` None keeps the current state unpublished.

        Returns:
            The time the command was issued.
        """
        previous, previous_confirmed = self._state, self._confirmed
        sent_at = utcnow()
        if pending_state is not None:
            self._transition(pending_state, confirmed=False)
        try:
            await self._breaker.execute(lambda: self._backend.send_command(action))
        except CircuitOpenError:
            self._restore(previous, previous_confirmed)
            raise
        except Exception as e:
            self._restore(previous, previous_confirmed)
            logger.error("Worker backend rejected %s: %s", action, e)
            raise WorkerCommandError(action, str(e)) from e
        finally:
            self._notify_command()

        self._last_command = action
        self._last_command_at = sent_at
        self._restart_since = sent_at if action == "restart" else None
        logger.info("Sent %s command to workers", action)
        return sent_at

    async def _confirm(
        self, action: str, expect_running: bool, since: datetime | None = None
    ) -> LifecycleResult:
        target = WorkerState.RUNNING if expect_running else WorkerState.STOPPED
        if await self._await_heartbeat(expect_running, since):
            self._transition(target, confirmed=True)
            self._restart_since = None
            message = f"Workers {target.value}"
        else:
            logger.warning(
                "%s not confirmed within %.1fs, workers remain %s",
                action,
                self._settings.confirm_timeout_seconds,
                self.state.value,
            )
            message = f"{action} sent, awaiting heartbeat confirmation"
        self._notify_command()
        return LifecycleResult(
            action=action,
            state=self.state,
            confirmed=self._confirmed,
            command_sent=True,
            restarting=self._restarting and not self._confirmed,
            message=message,
        )

    async def _await_heartbeat(
        self, expect_running: bool, since: datetime | None = None
    ) -> bool:
        """Poll heartbeats until one matches ``expect_running``.

        With ``since`` set, the matching heartbeat must be dated at or after it.
        """
        deadline = self._clock() + self._settings.confirm_timeout_seconds
        while True:
            try:
                status = await self._breaker.execute(self._backend.get_heartbeat)
            except CircuitOpenError:
                raise
            except Exception as e:
                logger.warning("Heartbeat read failed during confirmation: %s", e)
            else:
                self._last_status = status
                if status.is_running == expect_running and _is_after(status, since):
                    return True
            if self._clock() >= deadline:
                return False
            await self._sleep(self._settings.confirm_poll_interval_seconds)

    def _notify_command(self) -> None:
        if self._on_command is not None:
            self._on_command()

    def _restore(self, state: WorkerState | None, confirmed: bool) -> None:
        if state is None:
            return
        self._transition(state, confirmed=confirmed)

    def _transition(self, new_state: WorkerState, confirmed: bool) -> None:
        old_state = self._state
        self._confirmed = confirmed
        if old_state == new_state:
            return
        self._state = new_state
        logger.info(
            "Workers %s -> %s%s",
            old_state.value if old_state else "unknown",
            new_state.value,
            "" if confirmed else " (unconfirmed)",
        )
        change = WorkerStateChange(
            old_state=old_state, new_state=new_state, confirmed=confirmed, timestamp=utcnow()
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.warning("Worker state listener failed: %s", e, exc_info=True)


def _is_after(status: WorkerStatus, since: datetime | None) -> bool:
    if since is None:
        return True
    return status.last_heartbeat is not None and status.last_heartbeat >= since
