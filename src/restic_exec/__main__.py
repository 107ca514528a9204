"""restic-exec 入口点。

支持: python -m restic_exec -- snapshots --json
"""

from .app import main

if __name__ == "__main__":
    main()
