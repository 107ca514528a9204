"""REX 环境变量配置管理。

环境变量:
    REX_RESTIC_BINARY: restic 可执行文件
        - 默认 restic（从 PATH 查找）

    REX_MAX_LINE_MB: 单行输出上限（MiB）
        - 默认 64，限制在 1-1024
        - 超出上限的行会导致该输出流的读取失败

    REX_BRIDGE_CHUNK_KB: stdin 桥接每次读取的块大小（KiB）
        - 默认 64，限制在 1-16384

    REX_REMOTE_POLL_SECONDS: 远程 exec 会话的轮询间隔（秒）
        - 默认 1.0，限制在 0.05-30

    REX_FORWARD_SIGNALS: 转发给 restic 子进程的信号
        - 逗号分割，忽略大小写，可省略 SIG 前缀
        - 默认 SIGINT,SIGTERM
        - 例: "int,term,hup"

    REX_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import signal
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_FORWARD_SIGNALS = frozenset({signal.SIGINT, signal.SIGTERM})


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_clamped(
    value: str | None, default: float, lower: float, upper: float
) -> float:
    """解析数值环境变量，并限制在 [lower, upper] 范围内。"""
    if not value:
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    return max(lower, min(number, upper))


def _parse_signals(value: str | None) -> frozenset[signal.Signals]:
    """解析信号列表环境变量。

    Args:
        value: 环境变量值，逗号分割，忽略大小写

    Returns:
        信号集合，未设置或全部无效时返回默认值
    """
    if not value or not value.strip():
        return DEFAULT_FORWARD_SIGNALS

    signals = set()
    for item in value.split(","):
        name = item.strip().upper()
        if not name:
            continue
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        sig = getattr(signal.Signals, name, None)
        if sig is not None:
            signals.add(sig)

    return frozenset(signals) if signals else DEFAULT_FORWARD_SIGNALS


@dataclass
class Config:
    """REX 配置。

    Attributes:
        restic_binary: restic 可执行文件
        max_line_bytes: 单行输出上限（字节）
        bridge_chunk_size: stdin 桥接块大小（字节）
        remote_poll_interval: 远程 exec 轮询间隔（秒）
        forward_signals: 转发给子进程的信号
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    restic_binary: str = "restic"
    max_line_bytes: int = 64 * 1024 * 1024
    bridge_chunk_size: int = 64 * 1024
    remote_poll_interval: float = 1.0
    forward_signals: frozenset[signal.Signals] = field(
        default_factory=lambda: DEFAULT_FORWARD_SIGNALS
    )
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        signals_str = ",".join(sorted(sig.name for sig in self.forward_signals))
        return (
            f"Config(restic_binary={self.restic_binary}, "
            f"max_line_bytes={self.max_line_bytes}, "
            f"bridge_chunk_size={self.bridge_chunk_size}, "
            f"remote_poll_interval={self.remote_poll_interval}, "
            f"forward_signals={signals_str}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "restic-exec"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"rex_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("REX_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    max_line_mb = _parse_clamped(os.environ.get("REX_MAX_LINE_MB"), 64, 1, 1024)
    chunk_kb = _parse_clamped(os.environ.get("REX_BRIDGE_CHUNK_KB"), 64, 1, 16384)

    return Config(
        restic_binary=os.environ.get("REX_RESTIC_BINARY", "").strip() or "restic",
        max_line_bytes=int(max_line_mb * 1024 * 1024),
        bridge_chunk_size=int(chunk_kb * 1024),
        remote_poll_interval=_parse_clamped(
            os.environ.get("REX_REMOTE_POLL_SECONDS"), 1.0, 0.05, 30.0
        ),
        forward_signals=_parse_signals(os.environ.get("REX_FORWARD_SIGNALS")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
