"""Kubernetes pod exec sessions.

Opens a websocket exec stream against a running pod and exposes its stdout
as a blocking byte reader, while accumulating the remote stderr as
diagnostics. The kubernetes client is synchronous, so sessions are meant to
be read from a worker thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.stream import stream
from websocket import WebSocketException

from ..config import get_config
from ..errors import RemoteExecError
from .types import PodExecParams

__all__ = [
    "KubernetesExecSession",
    "KubernetesPodExec",
    "load_core_api",
]

logger = logging.getLogger(__name__)


def load_core_api() -> client.CoreV1Api:
    """Build a CoreV1Api from in-cluster config, falling back to kubeconfig.

    Raises:
        RemoteExecError: If neither configuration can be loaded
    """
    try:
        k8s_config.load_incluster_config()
    except ConfigException:
        try:
            k8s_config.load_kube_config()
        except (ConfigException, OSError) as e:
            raise RemoteExecError(f"failed to load kubernetes config: {e}") from e
    return client.CoreV1Api()


def _as_bytes(data: str | bytes) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


class KubernetesExecSession:
    """Remote session backed by a kubernetes ``WSClient``."""

    def __init__(self, ws: Any, poll_interval: float) -> None:
        self._ws = ws
        self._poll_interval = poll_interval
        self._pending = bytearray()
        self._stderr = bytearray()
        self._stderr_lock = threading.Lock()
        self._closed = False

    def read(self, size: int) -> bytes:
        while True:
            if self._pending:
                chunk = bytes(self._pending[:size])
                del self._pending[:size]
                return chunk

            if self._closed:
                return b""

            try:
                if not self._ws.is_open():
                    # Frames received before the close are still buffered
                    self._drain_channels()
                    if self._pending:
                        continue
                    self._check_exit_status()
                    return b""

                self._ws.update(timeout=self._poll_interval)
                self._drain_channels()
            except (WebSocketException, OSError) as e:
                if self._closed:
                    return b""
                raise RemoteExecError(f"remote exec stream broke: {e}") from e
            except Exception as e:
                # WSClient.update() fails with TypeError once close() drops its socket
                if self._closed:
                    logger.debug(f"Exec stream read ended by close: {e!r}")
                    return b""
                raise

    def stderr_text(self) -> str:
        with self._stderr_lock:
            return self._stderr.decode("utf-8", errors="replace")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error closing exec stream: {e}")

    def _drain_channels(self) -> None:
        if self._ws.peek_stderr():
            data = _as_bytes(self._ws.read_stderr())
            with self._stderr_lock:
                self._stderr.extend(data)
        if self._ws.peek_stdout():
            self._pending.extend(_as_bytes(self._ws.read_stdout()))

    def _check_exit_status(self) -> None:
        try:
            returncode = self._ws.returncode
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise RemoteExecError(f"unreadable remote exit status: {e}") from e
        if returncode:
            raise RemoteExecError(f"remote command exited with code {returncode}")


class KubernetesPodExec:
    """``PodExec`` implementation using the kubernetes exec subresource.

    Example:
        pod_exec = KubernetesPodExec()
        session = pod_exec(PodExecParams(
            namespace="db",
            pod="postgres-0",
            container="postgres",
            command=["pg_dumpall"],
        ))
    """

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        *,
        poll_interval: float | None = None,
    ) -> None:
        self._core_api = core_api
        self._poll_interval = (
            poll_interval if poll_interval is not None
            else get_config().remote_poll_interval
        )

    def __call__(self, params: PodExecParams) -> KubernetesExecSession:
        """Open an exec stream against the pod.

        Raises:
            RemoteExecError: If the stream cannot be established
        """
        if self._core_api is None:
            self._core_api = load_core_api()

        exec_kwargs: dict[str, Any] = {
            "name": params.pod,
            "namespace": params.namespace,
            "command": list(params.command),
            "stderr": True,
            "stdout": True,
            "stdin": False,
            "tty": False,
            "binary": True,
            "_preload_content": False,
        }
        if params.container:
            exec_kwargs["container"] = params.container

        logger.debug(f"Opening exec stream to {params}: {list(params.command)}")
        try:
            ws = stream(self._core_api.connect_get_namespaced_pod_exec, **exec_kwargs)
        except ApiException as e:
            reason = e.reason or str(e)
            raise RemoteExecError(f"exec into {params} failed: {reason}") from e
        except (WebSocketException, OSError) as e:
            raise RemoteExecError(f"exec into {params} failed: {e}") from e

        logger.info(f"Exec stream established to {params}")
        return KubernetesExecSession(ws, self._poll_interval)
