"""restic-exec 异常类。

调用过程中的失败都会被收集到 GenericCommand 的唯一 error 字段中，
不会跨任务边界抛出。优先级（先写入者胜出）：
RemoteBridgeError > ExitError > CollectionError。
"""

from __future__ import annotations

import signal

__all__ = [
    "CommandError",
    "LaunchError",
    "RemoteExecError",
    "RemoteBridgeError",
    "CollectionError",
    "ExitError",
    "CommandNotRunningError",
]


class CommandError(Exception):
    """restic-exec 基础异常。"""
    pass


class LaunchError(CommandError):
    """子进程无法启动（可执行文件不存在、权限不足等）。

    Attributes:
        argv: 尝试启动的命令行
    """

    def __init__(self, argv: list[str], cause: BaseException) -> None:
        self.argv = argv
        super().__init__(f"failed to start {argv[0]}: {cause}")


class RemoteExecError(CommandError):
    """远程 exec 会话错误（建立失败、读取中断、远程命令非零退出）。"""
    pass


class RemoteBridgeError(CommandError):
    """stdin 桥接失败，最高优先级。

    Attributes:
        message: 记录的错误消息（远程 stderr 诊断信息优先）
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CollectionError(CommandError):
    """读取输出管道失败。

    Attributes:
        stream: 管道名称（stdout/stderr）
    """

    def __init__(self, stream: str, cause: BaseException) -> None:
        self.stream = stream
        super().__init__(f"failed to read {stream}: {cause}")


class ExitError(CommandError):
    """子进程以非零退出码或被信号终止。

    Attributes:
        returncode: 退出码（被信号终止时为负数）
        signal: 终止信号（仅当被信号终止时）
    """

    def __init__(self, binary: str, returncode: int) -> None:
        self.returncode = returncode
        self.signal: signal.Signals | None = None
        if returncode < 0:
            try:
                self.signal = signal.Signals(-returncode)
            except ValueError:
                pass
        if self.signal is not None:
            message = f"{binary} terminated by signal {self.signal.name}"
        else:
            message = f"{binary} exited with code {returncode}"
        super().__init__(message)


class CommandNotRunningError(CommandError):
    """请求发送信号时没有存活的子进程。"""
    pass
