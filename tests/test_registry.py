"""CommandRegistry 模块测试。

测试注册表的基本功能：
- 登记与查找（同一槽位以最近登记为准）
- 比较后移除（release）
- 信号转发（单个槽位与全部槽位）
- 并发登记与查找
"""

from __future__ import annotations

import signal
import threading
from unittest import mock

from restic_exec.errors import CommandNotRunningError
from restic_exec.registry import DEFAULT_SLOT, CommandRegistry


def _command() -> mock.MagicMock:
    """创建模拟命令。"""
    return mock.MagicMock(name="GenericCommand")


class TestRegistration:
    """登记与查找测试。"""

    def test_empty_registry(self):
        """空注册表。"""
        registry = CommandRegistry()

        assert registry.running() is None
        assert len(registry) == 0
        assert registry.slots() == []
        assert DEFAULT_SLOT not in registry

    def test_set_running_default_slot(self):
        """默认槽位登记。"""
        registry = CommandRegistry()
        command = _command()

        registry.set_running(command)

        assert registry.running() is command
        assert registry.running(DEFAULT_SLOT) is command
        assert DEFAULT_SLOT in registry

    def test_most_recent_wins(self):
        """同一槽位以最近登记的命令为准。"""
        registry = CommandRegistry()
        first, second = _command(), _command()

        registry.set_running(first, "backup")
        registry.set_running(second, "backup")

        assert registry.running("backup") is second
        assert len(registry) == 1

    def test_slots_are_independent(self):
        """不同槽位互不影响。"""
        registry = CommandRegistry()
        backup, prune = _command(), _command()

        registry.set_running(backup, "backup")
        registry.set_running(prune, "prune")

        assert registry.running("backup") is backup
        assert registry.running("prune") is prune
        assert registry.slots() == ["backup", "prune"]

    def test_concurrent_registration(self):
        """并发登记与查找不会读到不完整的条目。"""
        registry = CommandRegistry()
        commands = [_command() for _ in range(8)]
        seen: list[object] = []

        def register(command):
            for _ in range(200):
                registry.set_running(command, "backup")
                seen.append(registry.running("backup"))

        threads = [threading.Thread(target=register, args=(c,)) for c in commands]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(command in commands for command in seen)
        assert registry.running("backup") in commands
        assert len(registry) == 1


class TestRelease:
    """release 测试。"""

    def test_release_own_entry(self):
        """移除仍指向自己的条目。"""
        registry = CommandRegistry()
        command = _command()
        registry.set_running(command, "backup")

        assert registry.release(command, "backup") is True
        assert "backup" not in registry

    def test_release_does_not_remove_newer_command(self):
        """槽位已被新命令占用时不移除。"""
        registry = CommandRegistry()
        old, new = _command(), _command()
        registry.set_running(old, "backup")
        registry.set_running(new, "backup")

        assert registry.release(old, "backup") is False
        assert registry.running("backup") is new

    def test_release_empty_slot(self):
        """空槽位返回 False。"""
        registry = CommandRegistry()

        assert registry.release(_command(), "missing") is False


class TestSignal:
    """信号转发测试。"""

    def test_signal_running_command(self):
        """信号转发给槽位中的命令。"""
        registry = CommandRegistry()
        command = _command()
        registry.set_running(command, "backup")

        assert registry.signal(signal.SIGTERM, "backup") is True
        command.send_signal.assert_called_once_with(signal.SIGTERM)

    def test_signal_empty_slot(self):
        """槽位为空时返回 False。"""
        registry = CommandRegistry()

        assert registry.signal(signal.SIGINT) is False

    def test_signal_exited_command(self):
        """子进程已退出时返回 False，不抛出异常。"""
        registry = CommandRegistry()
        command = _command()
        command.send_signal.side_effect = CommandNotRunningError("restic is not running")
        registry.set_running(command)

        assert registry.signal(signal.SIGINT) is False

    def test_signal_all(self):
        """向所有槽位转发，返回成功数量。"""
        registry = CommandRegistry()
        alive, exited = _command(), _command()
        exited.send_signal.side_effect = CommandNotRunningError("restic already exited")
        registry.set_running(alive, "backup")
        registry.set_running(exited, "check")

        assert registry.signal_all(signal.SIGTERM) == 1
        alive.send_signal.assert_called_once_with(signal.SIGTERM)
        exited.send_signal.assert_called_once_with(signal.SIGTERM)
