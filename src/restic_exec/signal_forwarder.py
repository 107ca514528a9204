"""信号转发模块。

restic 子进程运行在独立的会话中，终端信号不会直接到达它。
SignalForwarder 在事件循环上安装信号处理器，把收到的 OS 信号
通过 CommandRegistry 转发给当前运行的命令。

支持的配置：
- REX_FORWARD_SIGNALS: 需要转发的信号列表
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Iterable
from typing import Optional

from .config import get_config
from .registry import CommandRegistry

__all__ = ["SignalForwarder"]

logger = logging.getLogger(__name__)


class SignalForwarder:
    """信号转发器。

    Example:
        ```python
        registry = CommandRegistry()
        forwarder = SignalForwarder(registry)

        async def main():
            await forwarder.start()
            try:
                await command.run(args)
            finally:
                await forwarder.stop()
        ```

    Attributes:
        registry: 命令注册表
        signals: 需要转发的信号
    """

    def __init__(
        self,
        registry: CommandRegistry,
        signals: Optional[Iterable[signal.Signals]] = None,
    ) -> None:
        """初始化信号转发器。

        Args:
            registry: 命令注册表
            signals: 需要转发的信号（默认从配置读取）
        """
        self.registry = registry
        self.signals = frozenset(signals) if signals is not None else get_config().forward_signals

        self._installed: list[signal.Signals] = []
        self._received: list[signal.Signals] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running: bool = False

    @property
    def received(self) -> list[signal.Signals]:
        """已收到的信号（按接收顺序）。"""
        return list(self._received)

    async def start(self) -> None:
        """安装信号处理器。

        必须在 asyncio 事件循环中调用。Windows 上不支持
        loop.add_signal_handler，此时只记录警告。
        """
        if self._running:
            logger.warning("SignalForwarder already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        if sys.platform == "win32":
            logger.warning("Signal forwarding is not supported on Windows")
            return

        for sig in sorted(self.signals):
            self._loop.add_signal_handler(sig, self._forward, sig)
            self._installed.append(sig)

        logger.debug(
            f"Signal handlers installed: {','.join(sig.name for sig in self._installed)}"
        )

    async def stop(self) -> None:
        """移除信号处理器，恢复默认行为。"""
        if not self._running:
            return

        self._running = False

        if self._loop:
            for sig in self._installed:
                try:
                    self._loop.remove_signal_handler(sig)
                except (ValueError, RuntimeError) as e:
                    logger.debug(f"Error removing handler for {sig.name}: {e}")
        self._installed.clear()

        logger.debug("Signal handlers removed")

    def _forward(self, sig: signal.Signals) -> None:
        """把信号转发给所有已登记的命令。"""
        self._received.append(sig)
        delivered = self.registry.signal_all(sig)
        if delivered:
            logger.info(f"{sig.name} received, forwarded to {delivered} command(s)")
        else:
            logger.info(f"{sig.name} received, no running command to forward to")
