"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import select
import socket
import stat
import sys
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from restic_exec.config import reload_config  # noqa: E402
from restic_exec.errors import RemoteExecError  # noqa: E402
from restic_exec.registry import CommandRegistry  # noqa: E402
from restic_exec.remote import PodExecParams  # noqa: E402

# 假 restic 脚本
FAKE_RESTIC_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_restic.py"


@pytest.fixture(autouse=True)
def _fresh_config():
    """每个测试结束后按当前环境变量重新加载配置。"""
    yield
    reload_config()


@pytest.fixture
def fake_restic(tmp_path: Path) -> str:
    """可直接执行的假 restic（shell 包装脚本）。"""
    shim = tmp_path / "restic"
    shim.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_RESTIC_PATH}" "$@"\n',
        encoding="utf-8",
    )
    shim.chmod(shim.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(shim)


@pytest.fixture
def registry() -> CommandRegistry:
    """空的命令注册表。"""
    return CommandRegistry()


@pytest.fixture
def pod_params() -> PodExecParams:
    """远程 exec 参数样本。"""
    return PodExecParams(
        namespace="db",
        pod="postgres-0",
        container="postgres",
        command=["pg_dumpall", "--clean"],
    )


class FakeSession:
    """内存中的远程会话。

    按顺序返回 chunks；之后若设置了 fail_with 则抛出 RemoteExecError，
    若 block=True 则阻塞到 close() 被调用，否则返回 EOF。
    """

    def __init__(
        self,
        chunks: Iterable[bytes] = (),
        *,
        fail_with: str | None = None,
        stderr: str = "",
        block: bool = False,
    ) -> None:
        self._chunks = list(chunks)
        self._fail_with = fail_with
        self._stderr = stderr
        self._block = block
        self.closed = threading.Event()
        self.reads = 0

    def read(self, size: int) -> bytes:
        self.reads += 1
        if self.closed.is_set():
            return b""
        if self._chunks:
            return self._chunks.pop(0)[:size]
        if self._fail_with is not None:
            raise RemoteExecError(self._fail_with)
        if self._block:
            self.closed.wait(10)
        return b""

    def stderr_text(self) -> str:
        return self._stderr

    def close(self) -> None:
        self.closed.set()


class FakePodExec:
    """记录调用参数的 PodExec。"""

    def __init__(
        self,
        session: FakeSession | None = None,
        *,
        error: str | Exception | None = None,
    ) -> None:
        self.session = session or FakeSession()
        self.error = error
        self.calls: list[PodExecParams] = []

    def __call__(self, params: PodExecParams) -> FakeSession:
        self.calls.append(params)
        if isinstance(self.error, Exception):
            raise self.error
        if self.error is not None:
            raise RemoteExecError(self.error)
        return self.session


@pytest.fixture
def make_pod_exec() -> Callable[..., FakePodExec]:
    """构造 FakePodExec 的工厂。

    Example:
        pod_exec = make_pod_exec([b"a\\n", b"b\\n"], fail_with="reset")
    """

    def factory(
        chunks: Iterable[bytes] = (),
        *,
        fail_with: str | None = None,
        stderr: str = "",
        block: bool = False,
        error: str | Exception | None = None,
    ) -> FakePodExec:
        session = FakeSession(chunks, fail_with=fail_with, stderr=stderr, block=block)
        return FakePodExec(session, error=error)

    return factory


class PollingWSClient:
    """按 kubernetes WSClient.update() 的方式轮询套接字的假 websocket。

    update() 先注册套接字、等待、再注销；close() 会把 sock 置为 None，
    因此与 close() 并发的 update() 会像真实客户端一样抛出 TypeError。
    远程端从不发送数据。
    """

    def __init__(self) -> None:
        self.sock, self._peer = socket.socketpair()
        self.polling = threading.Event()
        self._open = True

    def is_open(self) -> bool:
        return self._open

    def update(self, timeout: float = 0) -> None:
        if not self._open:
            return
        poll = select.poll()
        poll.register(self.sock, select.POLLIN)
        self.polling.set()
        poll.poll(int(timeout * 1000))
        poll.unregister(self.sock)

    def peek_stdout(self, timeout: float = 0) -> bytes:
        return b""

    def read_stdout(self, timeout: float | None = None) -> bytes:
        return b""

    def peek_stderr(self, timeout: float = 0) -> bytes:
        return b""

    def read_stderr(self, timeout: float | None = None) -> bytes:
        return b""

    @property
    def returncode(self) -> int:
        return 0

    def close(self, **kwargs) -> None:
        self._open = False
        sock, self.sock = self.sock, None
        if sock is not None:
            sock.close()
            self._peer.close()


@pytest.fixture
def polling_ws() -> Iterator[PollingWSClient]:
    """与 close() 竞争的假 websocket。"""
    ws = PollingWSClient()
    yield ws
    ws.close()
