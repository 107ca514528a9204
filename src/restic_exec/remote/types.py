"""Types shared by remote exec implementations."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

__all__ = [
    "PodExec",
    "PodExecParams",
    "RemoteSession",
]


@dataclass(frozen=True)
class PodExecParams:
    """Locator for a command to execute inside a running workload.

    Attributes:
        namespace: Namespace of the pod
        pod: Pod name
        command: Command vector to run in the container
        container: Container name (None = the pod's default container)
    """

    namespace: str
    pod: str
    command: Sequence[str]
    container: str | None = None

    def __str__(self) -> str:
        target = f"{self.namespace}/{self.pod}"
        if self.container:
            target += f"/{self.container}"
        return target


class RemoteSession(Protocol):
    """An established remote exec stream.

    ``read`` and ``close`` may be called from different threads.
    """

    def read(self, size: int) -> bytes:
        """Block until remote stdout bytes are available.

        Returns at most ``size`` bytes, or ``b""`` once the stream has ended.

        Raises:
            RemoteExecError: If the stream broke or the remote command failed
        """
        ...

    def stderr_text(self) -> str:
        """Diagnostics the remote command has written to its stderr so far."""
        ...

    def close(self) -> None:
        """Stop the session. Pending and future reads return ``b""``."""
        ...


PodExec = Callable[[PodExecParams], RemoteSession]
