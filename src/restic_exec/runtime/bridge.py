"""Bridge from a remote exec session into a local subprocess's stdin."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

import anyio

from ..errors import RemoteBridgeError, RemoteExecError
from ..remote.types import PodExec, PodExecParams, RemoteSession

__all__ = ["RemoteStdinBridge"]

logger = logging.getLogger(__name__)


class RemoteStdinBridge:
    """Copies the stdout of a remote exec session into a local pipe.

    Remote-side failures are the root cause of whatever the local process
    does afterwards, so they kill the local process and are reported as a
    ``RemoteBridgeError``. A local-side break (the subprocess closed its stdin
    or exited) is not a bridge failure; the subprocess's exit status already
    explains it.

    Example:
        bridge = RemoteStdinBridge(pod_exec, params, chunk_size=65536)
        await bridge.open()
        error = await bridge.copy_into(process.stdin, process.kill)
    """

    def __init__(
        self,
        pod_exec: PodExec,
        params: PodExecParams,
        *,
        chunk_size: int,
    ) -> None:
        self._pod_exec = pod_exec
        self._params = params
        self._chunk_size = chunk_size
        self._session: RemoteSession | None = None
        self._stopped = False

    async def open(self) -> None:
        """Establish the remote session.

        Raises:
            RemoteBridgeError: If the session cannot be established
        """
        try:
            self._session = await anyio.to_thread.run_sync(self._pod_exec, self._params)
        except Exception as e:
            logger.error(f"Remote stdin from {self._params} could not be established: {e!r}")
            raise RemoteBridgeError(f"remote stdin from {self._params}: {e}") from e

    async def copy_into(
        self,
        stdin: asyncio.StreamWriter,
        kill: Callable[[], None],
    ) -> RemoteBridgeError | None:
        """Copy remote bytes into ``stdin`` until the remote stream ends.

        ``stdin`` is closed on every exit path so the subprocess sees end of
        input.

        Args:
            stdin: The subprocess's stdin pipe
            kill: Forcibly terminates the subprocess

        Returns:
            The bridge failure, or None if the copy ended cleanly
        """
        if self._session is None:
            raise RuntimeError("bridge is not open")

        session = self._session
        copied = 0
        try:
            while True:
                chunk = await anyio.to_thread.run_sync(session.read, self._chunk_size)
                if not chunk:
                    break
                stdin.write(chunk)
                await stdin.drain()
                copied += len(chunk)

        except RemoteExecError as e:
            if self._stopped:
                logger.debug(f"Remote stdin stopped after {copied} bytes: {e}")
                return None

            kill()
            logger.error(f"Remote stdin from {self._params} broke after {copied} bytes: {e}")
            diagnostic = session.stderr_text().strip()
            if diagnostic:
                logger.error(f"Stderr of remote exec: {diagnostic!r}")
            error = RemoteBridgeError(
                diagnostic or f"remote stdin from {self._params} broke: {e}"
            )
            error.__cause__ = e
            return error

        except ConnectionError as e:
            logger.debug(f"Subprocess closed stdin after {copied} bytes: {e}")
            return None

        except Exception as e:
            if self._stopped:
                logger.debug(f"Remote stdin stopped after {copied} bytes: {e!r}")
                return None

            kill()
            logger.exception(f"Remote stdin from {self._params} failed after {copied} bytes")
            error = RemoteBridgeError(f"remote stdin from {self._params} failed: {e!r}")
            error.__cause__ = e
            return error

        finally:
            stdin.close()
            with contextlib.suppress(ConnectionError):
                await stdin.wait_closed()
            session.close()

        logger.debug(f"Remote stdin finished: {copied} bytes copied")
        return None

    def stop(self) -> None:
        """Stop copying; the remote stream ending now is not a failure."""
        self._stopped = True
        if self._session is not None:
            self._session.close()
