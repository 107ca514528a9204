"""restic-exec 命令行入口。

运行一次 restic 调用：实时输出到控制台，转发信号，
并以 restic 的退出码退出。
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from .config import get_config
from .errors import CommandError, ExitError
from .registry import DEFAULT_SLOT, CommandRegistry
from .runtime import CommandOptions, GenericCommand
from .signal_forwarder import SignalForwarder

__all__ = ["run_command", "exit_code_for", "main"]

logger = logging.getLogger(__name__)


def exit_code_for(error: CommandError | None) -> int:
    """把调用结果转换为进程退出码。

    Args:
        error: GenericCommand.error

    Returns:
        0 表示成功；ExitError 沿用 restic 的退出码（信号终止为 128+signo）；
        其他失败为 1
    """
    if error is None:
        return 0
    if isinstance(error, ExitError):
        if error.returncode > 0:
            return error.returncode
        if error.signal is not None:
            return 128 + error.signal.value
    return 1


async def run_command(
    args: Sequence[str],
    *,
    slot: str = DEFAULT_SLOT,
    echo: bool = True,
    registry: CommandRegistry | None = None,
) -> int:
    """运行一次 restic 调用。

    Args:
        args: 传给 restic 的参数
        slot: 注册表槽位
        echo: 是否实时输出到控制台
        registry: 命令注册表（默认新建）

    Returns:
        进程退出码
    """
    registry = registry or CommandRegistry()
    forwarder = SignalForwarder(registry)
    command = GenericCommand(registry, slot=slot)

    await forwarder.start()
    try:
        await command.run(args, CommandOptions(echo=echo))
    finally:
        await forwarder.stop()
        registry.release(command, slot)

    error = command.error
    if error is not None:
        print(f"restic-exec: {error}", file=sys.stderr)
    return exit_code_for(error)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="restic-exec",
        description="Run restic with live output and signal forwarding",
    )
    parser.add_argument("--slot", default=DEFAULT_SLOT, help="Registry slot name")
    parser.add_argument(
        "-q", "--quiet", action="store_true",
        help="Do not echo restic output to the console",
    )
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for restic")
    namespace = parser.parse_args(argv)
    if namespace.args and namespace.args[0] == "--":
        namespace.args = namespace.args[1:]
    return namespace


def _configure_logging() -> None:
    config = get_config()

    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr（stdout 留给 restic 输出）
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 第三方库（kubernetes、websocket）只输出 WARNING 以上
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("restic_exec").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    namespace = _parse_args(argv)
    _configure_logging()
    logger.debug(f"Starting restic-exec: {get_config()}")

    code = asyncio.run(
        run_command(namespace.args, slot=namespace.slot, echo=not namespace.quiet)
    )
    sys.exit(code)


if __name__ == "__main__":
    main()
