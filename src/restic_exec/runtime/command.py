"""Generic restic command execution.

restic-exec runtime module

This module provides:
- One-shot execution of the restic binary with inherited environment
- Concurrent stdout/stderr draining into line buffers (no pipe deadlocks)
- Optional stdin fed from a remote exec session
- Signal delivery while the subprocess is alive
- Thread-safe result accessors, usable before, during and after the run

Key design points:
- POSIX: start_new_session=True so terminal signals reach restic only
  through the registry
- Every failure lands in a single error field, first writer wins, with the
  precedence bridge failure > exit failure > collector failure
- The bridge task is owned by the run and awaited before it terminates
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import TextIO

from anyio.abc import ObjectSendStream
from prometheus_client.registry import Collector

from ..config import get_config
from ..errors import (
    CollectionError,
    CommandError,
    CommandNotRunningError,
    ExitError,
    LaunchError,
    RemoteBridgeError,
)
from ..registry import DEFAULT_SLOT, CommandRegistry
from ..remote import KubernetesPodExec, PodExec, PodExecParams
from ..reporting import NO_REPORTS, ReportCapability, WebhookPayload
from .bridge import RemoteStdinBridge
from .collector import collect_output

__all__ = [
    "CommandOptions",
    "CommandState",
    "GenericCommand",
]

logger = logging.getLogger(__name__)


async def _discard_rest(reader: asyncio.StreamReader, stream: str) -> None:
    """Keep a failed pipe drained so the subprocess cannot block writing to it."""
    discarded = 0
    try:
        while chunk := await reader.read(65536):
            discarded += len(chunk)
    except OSError as e:
        logger.debug(f"Discarding {stream} stopped: {e}")
    if discarded:
        logger.debug(f"Discarded {discarded} bytes of {stream} after read failure")


class CommandState(str, Enum):
    """Lifecycle of a GenericCommand."""

    IDLE = "idle"
    STARTED = "started"
    COLLECTING = "collecting"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class CommandOptions:
    """Per-invocation options.

    Attributes:
        echo: Write every output line to the console as it arrives
        stdin: Feed stdin from the remote exec session described by ``pod``
        pod: Remote workload to read stdin from (required when stdin=True)
        live: Channel receiving every output line in real time. Publishing
            blocks until the subscriber takes the line, so only pass a
            channel that is being consumed.
    """

    echo: bool = False
    stdin: bool = False
    pod: PodExecParams | None = None
    live: ObjectSendStream[str] | None = None

    def __post_init__(self) -> None:
        if self.stdin and self.pod is None:
            raise ValueError("stdin=True requires pod exec parameters")


class GenericCommand:
    """A single restic invocation.

    A command runs once. Output and the error can be read from any thread at
    any time; reads before termination return a snapshot of what has been
    collected so far.

    Example:
        registry = CommandRegistry()
        command = GenericCommand(registry)
        await command.run(["snapshots", "--json"])

        if command.error is None:
            process(command.stdout)
    """

    def __init__(
        self,
        registry: CommandRegistry,
        *,
        slot: str = DEFAULT_SLOT,
        binary: str | None = None,
        pod_exec: PodExec | None = None,
        reports: ReportCapability = NO_REPORTS,
        console: TextIO | None = None,
        max_line_bytes: int | None = None,
        chunk_size: int | None = None,
    ) -> None:
        config = get_config()
        self._registry = registry
        self._slot = slot
        self._binary = binary or config.restic_binary
        self._pod_exec = pod_exec
        self._reports = reports
        self._console = console
        self._max_line_bytes = max_line_bytes or config.max_line_bytes
        self._chunk_size = chunk_size or config.bridge_chunk_size

        self._lock = threading.Lock()
        self._state = CommandState.IDLE
        self._argv: list[str] = []
        self._process: asyncio.subprocess.Process | None = None
        self._returncode: int | None = None
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._error: CommandError | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def slot(self) -> str:
        return self._slot

    @property
    def state(self) -> CommandState:
        with self._lock:
            return self._state

    @property
    def argv(self) -> list[str]:
        with self._lock:
            return list(self._argv)

    @property
    def pid(self) -> int | None:
        with self._lock:
            return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        with self._lock:
            return self._returncode

    @property
    def stdout(self) -> list[str]:
        """Lines written to stdout so far."""
        with self._lock:
            return list(self._stdout)

    @property
    def stderr(self) -> list[str]:
        """Lines written to stderr so far."""
        with self._lock:
            return list(self._stderr)

    @property
    def error(self) -> CommandError | None:
        """The recorded failure, or None."""
        with self._lock:
            return self._error

    def webhook_data(self) -> list[WebhookPayload]:
        """Payloads to marshal to JSON and send to a webhook. Empty by default."""
        return self._reports.webhook_payloads(self)

    def metric_collectors(self) -> list[Collector]:
        """Collectors to push to a metrics gateway. Empty by default."""
        return self._reports.metric_collectors(self)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(
        self,
        args: Sequence[str],
        options: CommandOptions | None = None,
    ) -> None:
        """Run restic with ``args`` and wait for it to finish.

        Failures are not raised; they are recorded and exposed via ``error``.

        Args:
            args: Arguments passed to restic as a literal vector
            options: Per-invocation options

        Raises:
            CommandError: If this command has already been run
        """
        options = options or CommandOptions()

        with self._lock:
            if self._state is not CommandState.IDLE:
                raise CommandError(f"command already run (state={self._state.value})")
            self._state = CommandState.STARTED
            self._argv = [self._binary, *args]
            argv = list(self._argv)

        try:
            await self._start(argv, options)
        finally:
            self._terminate()

    async def _start(self, argv: list[str], options: CommandOptions) -> None:
        bridge: RemoteStdinBridge | None = None
        if options.stdin:
            bridge = RemoteStdinBridge(
                self._get_pod_exec(),
                options.pod,
                chunk_size=self._chunk_size,
            )
            try:
                await bridge.open()
            except RemoteBridgeError as e:
                self._record_error(e)
                return

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if bridge else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self._max_line_bytes,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to start {argv[0]}: {e}")
            self._record_error(LaunchError(argv, e))
            if bridge is not None:
                bridge.stop()
            return

        with self._lock:
            self._process = process
        logger.debug(f"Started subprocess pid={process.pid} argv={argv}")
        self._registry.set_running(self, self._slot)

        await self._collect(process, bridge, options)

    async def _collect(
        self,
        process: asyncio.subprocess.Process,
        bridge: RemoteStdinBridge | None,
        options: CommandOptions,
    ) -> None:
        with self._lock:
            self._state = CommandState.COLLECTING

        echo = None
        if options.echo:
            echo = self._console if self._console is not None else sys.stdout

        bridge_task: asyncio.Task[None] | None = None
        if bridge is not None:
            bridge_task = asyncio.create_task(
                self._feed_stdin(bridge, process),
                name=f"restic-stdin-{process.pid}",
            )

        try:
            results = await asyncio.gather(
                self._drain(process.stdout, "stdout", self._stdout, echo, options.live),
                self._drain(process.stderr, "stderr", self._stderr, echo, options.live),
            )
            collector_errors = [err for err in results if err is not None]
            returncode = await process.wait()
            with self._lock:
                self._returncode = returncode
        except BaseException:
            # run() was cancelled; do not leave restic behind
            self._kill(process)
            await process.wait()
            raise
        finally:
            if bridge_task is not None:
                bridge.stop()
                await bridge_task

        logger.debug(f"Subprocess completed pid={process.pid} returncode={returncode}")

        with self._lock:
            if self._error is None:
                if returncode != 0:
                    self._error = ExitError(self._binary, returncode)
                elif collector_errors:
                    self._error = collector_errors[0]
            error = self._error

        if error is not None:
            logger.warning(f"{' '.join(self._argv[:2])} failed: {error}")

    async def _drain(
        self,
        reader: asyncio.StreamReader,
        stream: str,
        target: list[str],
        echo: TextIO | None,
        live: ObjectSendStream[str] | None,
    ) -> CollectionError | None:
        _, error = await collect_output(
            reader,
            stream=stream,
            echo=echo,
            live=live,
            on_line=partial(self._append, target),
        )
        if error is not None:
            await _discard_rest(reader, stream)
        return error

    async def _feed_stdin(
        self,
        bridge: RemoteStdinBridge,
        process: asyncio.subprocess.Process,
    ) -> None:
        error = await bridge.copy_into(process.stdin, partial(self._kill, process))
        if error is not None:
            self._record_error(error)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def send_signal(self, sig: signal.Signals) -> None:
        """Deliver ``sig`` to the running subprocess.

        Raises:
            CommandNotRunningError: If no subprocess is alive
        """
        with self._lock:
            process = self._process
            if process is None or process.returncode is not None:
                raise CommandNotRunningError(f"{self._binary} is not running")
            try:
                os.kill(process.pid, sig)
            except ProcessLookupError as e:
                raise CommandNotRunningError(f"{self._binary} already exited") from e
        logger.debug(f"Sent {sig.name} to pid={process.pid}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_pod_exec(self) -> PodExec:
        if self._pod_exec is None:
            self._pod_exec = KubernetesPodExec()
        return self._pod_exec

    def _append(self, target: list[str], line: str) -> None:
        with self._lock:
            target.append(line)

    def _record_error(self, error: CommandError) -> bool:
        with self._lock:
            if self._error is not None:
                logger.debug(f"Keeping earlier error, dropping: {error}")
                return False
            self._error = error
            return True

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
            logger.debug(f"Killed subprocess pid={process.pid}")
        except ProcessLookupError:
            pass

    def _terminate(self) -> None:
        with self._lock:
            self._state = CommandState.TERMINATED

    def __repr__(self) -> str:
        with self._lock:
            state = self._state
            pid = self._process.pid if self._process is not None else None
        return (
            f"GenericCommand(binary={self._binary}, "
            f"slot={self._slot}, "
            f"state={state.value}, "
            f"pid={pid})"
        )
