"""Process Supervisor — spawns slapd and decides when it is really ready.

State machine::

    UNSTARTED -> SPAWNED -> READY_SIGNAL_RECEIVED -> PORT_OPEN -> READY -> TERMINATED
         \\__________\\______________\\___________________> FAILED

Readiness needs two signals, checked in this order:

1. slapd logs a line ending with the ready marker (``slapd starting``).
2. A TCP connect to the plaintext listener succeeds.

The log line is written when slapd begins initializing its listeners; the
socket may accept a moment later. Either signal alone is flaky.

INVARIANT: READY is only reachable through every predecessor state, in
order. Every wait carries a deadline; when one expires the process is
killed and the failure is raised. There is no degraded "ready".
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from collections.abc import Sequence
from enum import Enum
from pathlib import Path

from ldap_test_server.config.models import StartupConfig
from ldap_test_server.errors import PortTimeoutError, ReadinessTimeoutError, StartupError
from ldap_test_server.infrastructure.network import is_tcp_port_open

logger = logging.getLogger(__name__)

# slapd debug output can contain long lines (schema dumps); raise the
# StreamReader line limit well above the 64 KiB default.
_STDERR_LINE_LIMIT = 1024 * 1024
_STDERR_TAIL = 20


class SupervisorState(str, Enum):
    """Lifecycle state of a supervised slapd process."""

    UNSTARTED = "unstarted"
    SPAWNED = "spawned"
    READY_SIGNAL_RECEIVED = "ready_signal_received"
    PORT_OPEN = "port_open"
    READY = "ready"
    FAILED = "failed"
    TERMINATED = "terminated"


_TRANSITIONS: dict[SupervisorState, frozenset[SupervisorState]] = {
    SupervisorState.UNSTARTED: frozenset({SupervisorState.SPAWNED, SupervisorState.FAILED}),
    SupervisorState.SPAWNED: frozenset(
        {SupervisorState.READY_SIGNAL_RECEIVED, SupervisorState.FAILED}
    ),
    SupervisorState.READY_SIGNAL_RECEIVED: frozenset(
        {SupervisorState.PORT_OPEN, SupervisorState.FAILED}
    ),
    SupervisorState.PORT_OPEN: frozenset({SupervisorState.READY, SupervisorState.FAILED}),
    SupervisorState.READY: frozenset({SupervisorState.TERMINATED}),
    SupervisorState.FAILED: frozenset(),
    SupervisorState.TERMINATED: frozenset(),
}


def is_process_alive(pid: int) -> bool:
    """Return True when a process id appears to be alive on this host."""
    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False

    return True


class ProcessSupervisor:
    """Owns one slapd process from spawn to kill.

    Args:
        daemon: slapd executable.
        config_dir: Fully assembled ``-F`` configuration directory.
        urls: Listener URLs passed to ``-h`` (plaintext first).
        probe_host: Host for the TCP readiness probe.
        probe_port: Plaintext port for the TCP readiness probe.
        startup: Marker, deadlines and poll interval.
    """

    def __init__(
        self,
        daemon: str,
        *,
        config_dir: Path,
        urls: Sequence[str],
        probe_host: str,
        probe_port: int,
        startup: StartupConfig,
    ) -> None:
        self._daemon = daemon
        self._config_dir = config_dir
        self._urls = tuple(urls)
        self._probe_host = probe_host
        self._probe_port = probe_port
        self._startup = startup
        self._process: asyncio.subprocess.Process | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL)
        self._state = SupervisorState.UNSTARTED
        self.history: list[SupervisorState] = [SupervisorState.UNSTARTED]

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    @property
    def command(self) -> list[str]:
        """The slapd argv used to spawn the daemon."""
        return [
            self._daemon,
            "-F",
            str(self._config_dir),
            "-d",
            self._startup.debug_flags,
            "-h",
            " ".join(self._urls),
        ]

    def _transition(self, new_state: SupervisorState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            msg = f"invalid supervisor transition {self._state.value} -> {new_state.value}"
            raise RuntimeError(msg)
        self._state = new_state
        self.history.append(new_state)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn slapd and block until it is ready.

        Raises:
            StartupError: slapd could not be spawned, exited early, or one
                of the readiness deadlines expired. The process has been
                killed and reaped by the time this propagates.
        """
        if self._state is not SupervisorState.UNSTARTED:
            msg = f"supervisor already started (state: {self._state.value})"
            raise RuntimeError(msg)

        try:
            await self._spawn()
            self._transition(SupervisorState.SPAWNED)

            await self._wait_for_ready_signal()
            self._transition(SupervisorState.READY_SIGNAL_RECEIVED)

            await self._wait_for_port()
            self._transition(SupervisorState.PORT_OPEN)
        except BaseException:
            await self._abort()
            raise

        self._drain_task = asyncio.create_task(self._drain_stderr())
        self._transition(SupervisorState.READY)
        logger.debug("Started ldap server on %s", " ".join(self._urls))

    async def _spawn(self) -> None:
        command = self.command
        logger.debug("Spawning %s", " ".join(command))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                limit=_STDERR_LINE_LIMIT,
            )
        except OSError as exc:
            msg = f"Failed to start slapd server: {exc}"
            raise StartupError(msg) from exc

    async def _read_until_marker(self) -> bool:
        assert self._process is not None and self._process.stderr is not None
        marker = self._startup.ready_marker
        while True:
            raw = await self._process.stderr.readline()
            if not raw:
                return False
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            self._stderr_tail.append(line)
            logger.debug("slapd: %s", line)
            if line.rstrip().endswith(marker):
                return True

    async def _wait_for_ready_signal(self) -> None:
        timeout = self._startup.ready_timeout
        try:
            found = await asyncio.wait_for(self._read_until_marker(), timeout)
        except TimeoutError as exc:
            msg = (
                f"Failed to start slapd server: timeout, no line ending with "
                f"{self._startup.ready_marker!r} within {timeout}s{self._tail_text()}"
            )
            raise ReadinessTimeoutError(msg) from exc

        if not found:
            msg = (
                "Failed to start slapd server: slapd exited before becoming ready"
                f"{self._tail_text()}"
            )
            raise StartupError(msg)

    async def _poll_port(self) -> None:
        assert self._process is not None
        port = self._probe_port
        while not await is_tcp_port_open(
            self._probe_host, port, timeout=self._startup.connect_timeout
        ):
            if self._process.returncode is not None:
                msg = (
                    f"Failed to start slapd server: slapd exited with "
                    f"{self._process.returncode} before port {port} opened{self._tail_text()}"
                )
                raise StartupError(msg)
            logger.debug("tcp port %d is not open yet, waiting...", port)
            await asyncio.sleep(self._startup.port_poll_interval)

    async def _wait_for_port(self) -> None:
        timeout = self._startup.port_timeout
        try:
            await asyncio.wait_for(self._poll_port(), timeout)
        except TimeoutError as exc:
            msg = f"Failed to start slapd server, port {self._probe_port} not open after {timeout}s"
            raise PortTimeoutError(msg) from exc

    async def _drain_stderr(self) -> None:
        """Keep forwarding slapd stderr so the daemon never blocks on a full pipe."""
        assert self._process is not None and self._process.stderr is not None
        while True:
            raw = await self._process.stderr.readline()
            if not raw:
                return
            logger.debug("slapd: %s", raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    async def _abort(self) -> None:
        self._transition(SupervisorState.FAILED)
        process = self._process
        if process is None:
            return
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
        logger.debug("slapd pid %s killed after failed startup", process.pid)

    def _tail_text(self) -> str:
        if not self._stderr_tail:
            return ""
        return "; last slapd output:\n" + "\n".join(self._stderr_tail)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def terminate(self) -> None:
        """Forcefully kill slapd. Never raises; failures are logged."""
        if self._state is not SupervisorState.READY:
            return
        process = self._process
        assert process is not None

        if self._drain_task is not None and not self._drain_task.done():
            try:
                self._drain_task.cancel()
            except RuntimeError as exc:
                logger.debug("could not cancel slapd stderr reader: %s", exc)

        if process.returncode is None:
            try:
                process.kill()
            except (OSError, RuntimeError) as exc:
                logger.warning("failed to kill slapd server: %s, pid: %s", exc, process.pid)
            else:
                logger.debug("killed slapd server pid: %s", process.pid)
        self._transition(SupervisorState.TERMINATED)

    async def aterminate(self) -> None:
        """Kill slapd and wait until the process has been reaped."""
        was_ready = self._state is SupervisorState.READY
        self.terminate()
        if not was_ready or self._process is None:
            return
        await self._process.wait()
        if self._drain_task is not None:
            await asyncio.gather(self._drain_task, return_exceptions=True)
