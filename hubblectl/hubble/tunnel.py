"""Supervised port-forward tunnels to in-cluster services.

Each session runs one supervisor task that dials the target, checks
liveness at a fixed interval and redials with exponential backoff after any
failure. State transitions are published to the session's event queue for
observers such as the CLI.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import typer
from loguru import logger

from hubblectl.infra.constants import DEFAULT_CONSTANTS, HubbleConstants
from hubblectl.infra.k8s import KubernetesController, KubernetesError, PortForwardHandle

from .errors import TunnelError


class TunnelState(str, Enum):
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"
    CLOSED = "Closed"


@dataclass(frozen=True)
class TunnelEvent:
    state: TunnelState
    reason: str = ""


@dataclass(frozen=True)
class ClusterTarget:
    """A service port inside the cluster."""

    service: str
    namespace: str
    port: int

    def __str__(self) -> str:
        return f"{self.namespace}/{self.service}:{self.port}"


class Backoff:
    """Exponential backoff delays, doubling from ``initial`` up to ``maximum``."""

    def __init__(self, initial: float, maximum: float) -> None:
        self.initial = initial
        self.maximum = maximum
        self._next = initial

    def next(self) -> float:
        delay = self._next
        self._next = min(self._next * 2, self.maximum)
        return delay

    def reset(self) -> None:
        self._next = self.initial


class TunnelSession:
    """A local port bound to a cluster target, supervised in the background."""

    def __init__(self, local_port: int, target: ClusterTarget) -> None:
        self.local_port = local_port
        self.target = target
        self.state = TunnelState.CONNECTING
        self.last_reason = ""
        self.events: asyncio.Queue[TunnelEvent] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._connected = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"TunnelSession(localhost:{self.local_port} -> {self.target}, {self.state.value})"

    @property
    def closed(self) -> bool:
        return self.state == TunnelState.CLOSED

    def _publish(self, state: TunnelState, reason: str = "") -> None:
        self.state = state
        if reason:
            self.last_reason = reason
        if state == TunnelState.CONNECTED:
            self._connected.set()
        logger.debug(f"Tunnel localhost:{self.local_port} -> {self.target}: {state.value} {reason}")
        self.events.put_nowait(TunnelEvent(state, reason))

    async def wait_closed(self) -> None:
        """Block until the supervisor exits."""
        if self._task is not None:
            await asyncio.shield(self._task)


class TunnelManager:
    """Starts and stops supervised tunnels."""

    def __init__(
        self,
        controller: KubernetesController,
        constants: HubbleConstants = DEFAULT_CONSTANTS,
        *,
        keepalive_interval: float | None = None,
        backoff_initial: float | None = None,
        backoff_max: float | None = None,
        launch_browser: Callable[[str], Any] = typer.launch,
    ) -> None:
        self.controller = controller
        self.constants = constants
        self.keepalive_interval = (
            keepalive_interval
            if keepalive_interval is not None
            else constants.TUNNEL_KEEPALIVE_INTERVAL
        )
        self.backoff_initial = (
            backoff_initial if backoff_initial is not None else constants.TUNNEL_BACKOFF_INITIAL
        )
        self.backoff_max = backoff_max if backoff_max is not None else constants.TUNNEL_BACKOFF_MAX
        self.launch_browser = launch_browser

    async def start(
        self,
        local_port: int,
        target: ClusterTarget,
        *,
        browser_url: str | None = None,
        connect_timeout: float | None = None,
    ) -> TunnelSession:
        """Start a session and return once it first reaches Connected.

        Args:
            local_port: Local port to bind
            target: Service port to forward to
            browser_url: URL opened once on the first Connected
            connect_timeout: Give up after this many seconds (retry forever if None)

        Raises:
            TunnelError: If ``connect_timeout`` passes before the first Connected
        """
        session = TunnelSession(local_port, target)
        session._task = asyncio.create_task(self._supervise(session, browser_url))
        connected = asyncio.create_task(session._connected.wait())
        try:
            await asyncio.wait(
                {connected, session._task},
                timeout=connect_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self.stop(session)
            raise
        finally:
            connected.cancel()

        if session._connected.is_set():
            return session

        await self.stop(session)
        raise TunnelError(
            f"Unable to forward localhost:{local_port} to {target}",
            details=session.last_reason or "Timed out waiting for the tunnel to connect.",
        )

    async def stop(self, session: TunnelSession) -> None:
        """Stop the supervisor and release the local listener."""
        session._stop.set()
        if session._task is None:
            return
        try:
            await session._task
        except asyncio.CancelledError:
            if not session._task.cancelled():
                raise

    async def _pause(self, session: TunnelSession, delay: float) -> None:
        try:
            await asyncio.wait_for(session._stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _check(self, target: ClusterTarget) -> str | None:
        """Return why ``target`` cannot take connections, or None if it can."""
        try:
            if not await self.controller.service_ready(target.service, target.namespace):
                return f"service {target.service} has no ready endpoints"
        except KubernetesError as e:
            return str(e)
        return None

    async def _keepalive(self, session: TunnelSession, backoff: Backoff) -> str | None:
        """Return a failure reason, or None once the session is stopped.

        The backoff is reset only after the connection passes a liveness check.
        """
        while True:
            await self._pause(session, self.keepalive_interval)
            if session._stop.is_set():
                return None
            reason = await self._check(session.target)
            if reason is not None:
                return reason
            backoff.reset()

    async def _close_handle(self, handle: PortForwardHandle) -> None:
        try:
            await handle.close()
        except KubernetesError as e:
            logger.warning(f"Error closing port forward on {handle.local_port}: {e}")

    async def _supervise(self, session: TunnelSession, browser_url: str | None) -> None:
        target = session.target
        backoff = Backoff(self.backoff_initial, self.backoff_max)
        browser_opened = False
        try:
            while not session._stop.is_set():
                session._publish(TunnelState.CONNECTING)
                try:
                    handle = await self.controller.open_port_forward(
                        target.service,
                        target.namespace,
                        remote_port=target.port,
                        local_port=session.local_port,
                    )
                except KubernetesError as e:
                    session._publish(TunnelState.DISCONNECTED, str(e))
                    await self._pause(session, backoff.next())
                    continue

                # The listener can be bound with no ready backends behind it
                try:
                    reason = await self._check(target)
                except asyncio.CancelledError:
                    await self._close_handle(handle)
                    raise
                if reason is not None:
                    await self._close_handle(handle)
                    session._publish(TunnelState.DISCONNECTED, reason)
                    await self._pause(session, backoff.next())
                    continue

                session._publish(TunnelState.CONNECTED)
                if browser_url and not browser_opened:
                    browser_opened = True
                    logger.info(f"Opening {browser_url}")
                    self.launch_browser(browser_url)

                try:
                    reason = await self._keepalive(session, backoff)
                finally:
                    await self._close_handle(handle)
                if reason is None:
                    break
                session._publish(TunnelState.DISCONNECTED, reason)
                await self._pause(session, backoff.next())
        finally:
            session._publish(TunnelState.CLOSED)
