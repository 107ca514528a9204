"""restic-exec - restic 命令执行引擎。

环境变量:
    REX_RESTIC_BINARY: restic 可执行文件 (默认 restic)
    REX_MAX_LINE_MB: 单行输出上限 (默认 64)
    REX_FORWARD_SIGNALS: 转发给 restic 的信号 (默认 SIGINT,SIGTERM)

用法:
    python -m restic_exec -- snapshots
"""

__version__ = "0.1.0"

from .app import main
from .registry import CommandRegistry
from .runtime import CommandOptions, CommandState, GenericCommand

__all__ = [
    "__version__",
    "CommandOptions",
    "CommandRegistry",
    "CommandState",
    "GenericCommand",
    "main",
]
