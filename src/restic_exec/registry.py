"""运行中命令的注册表。

提供进程级别的"当前运行命令"查找，用于信号路由：
- CommandRegistry: 槽位 -> 最近启动的 GenericCommand
- 信号转发（单个槽位或全部槽位）

注册表只用于信号路由，从不读取命令的输出或错误。
"""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from .errors import CommandNotRunningError

if TYPE_CHECKING:
    from .runtime.command import GenericCommand

__all__ = ["CommandRegistry", "RegistryEntry", "DEFAULT_SLOT"]

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "default"


@dataclass
class RegistryEntry:
    """注册表条目。

    Attributes:
        slot: 逻辑槽位
        command: 关联的命令
        registered_at: 登记时间
    """

    slot: str
    command: "GenericCommand"
    registered_at: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        elapsed = (datetime.now() - self.registered_at).total_seconds()
        return (
            f"RegistryEntry(slot={self.slot}, "
            f"command={self.command!r}, "
            f"elapsed={elapsed:.1f}s)"
        )


class CommandRegistry:
    """运行中命令的注册表。

    每个槽位只保存最近一次登记的命令。命令终止时不会自动移除条目，
    下一次登记会直接覆盖；需要时调用方可以用 release() 显式移除。

    线程安全：所有读写都在注册表自己的锁内完成，
    信号转发在锁外调用命令，因此与命令内部的锁没有嵌套关系。

    Example:
        ```python
        registry = CommandRegistry()
        command = GenericCommand(registry, slot="backup")
        await command.run(["backup", "--stdin"], options)

        # 其他地方（例如信号处理器）
        registry.signal(signal.SIGTERM, slot="backup")
        ```
    """

    def __init__(self) -> None:
        """初始化注册表。"""
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def set_running(self, command: "GenericCommand", slot: str = DEFAULT_SLOT) -> None:
        """登记命令为槽位中当前运行的命令。

        Args:
            command: 刚启动子进程的命令
            slot: 逻辑槽位
        """
        entry = RegistryEntry(slot=slot, command=command)
        with self._lock:
            previous = self._entries.get(slot)
            self._entries[slot] = entry
        if previous is not None and previous.command is not command:
            logger.debug(f"Slot {slot} replaced: {previous}")
        logger.debug(f"Registered running command: {entry}")

    def running(self, slot: str = DEFAULT_SLOT) -> Optional["GenericCommand"]:
        """获取槽位中最近登记的命令。

        Args:
            slot: 逻辑槽位

        Returns:
            命令实例，如果槽位为空则返回 None
        """
        with self._lock:
            entry = self._entries.get(slot)
        return entry.command if entry else None

    def release(self, command: "GenericCommand", slot: str = DEFAULT_SLOT) -> bool:
        """移除槽位中的条目（仅当它仍指向给定命令）。

        Args:
            command: 要移除的命令
            slot: 逻辑槽位

        Returns:
            是否成功移除
        """
        with self._lock:
            entry = self._entries.get(slot)
            if entry is None or entry.command is not command:
                return False
            del self._entries[slot]
        logger.debug(f"Released slot {slot}")
        return True

    def signal(self, sig: signal.Signals, slot: str = DEFAULT_SLOT) -> bool:
        """向槽位中的命令转发信号。

        Args:
            sig: 要发送的信号
            slot: 逻辑槽位

        Returns:
            是否成功送达（槽位为空或子进程已退出时返回 False）
        """
        command = self.running(slot)
        if command is None:
            logger.debug(f"No command registered for slot {slot}, dropping {sig.name}")
            return False

        try:
            command.send_signal(sig)
        except CommandNotRunningError as e:
            logger.debug(f"Slot {slot} not running, dropping {sig.name}: {e}")
            return False

        logger.info(f"Forwarded {sig.name} to slot {slot}")
        return True

    def signal_all(self, sig: signal.Signals) -> int:
        """向所有槽位的命令转发信号。

        Args:
            sig: 要发送的信号

        Returns:
            成功送达的命令数量
        """
        delivered = 0
        for slot in self.slots():
            if self.signal(sig, slot):
                delivered += 1
        return delivered

    def slots(self) -> list[str]:
        """列出所有已登记的槽位。"""
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        """返回已登记的槽位数量。"""
        with self._lock:
            return len(self._entries)

    def __contains__(self, slot: str) -> bool:
        """检查槽位是否已登记。"""
        with self._lock:
            return slot in self._entries
