#!/usr/bin/env python3
"""Fake restic for integration testing.

This script stands in for the restic binary. The first argument selects the
behaviour, mirroring the shape of real restic subcommands.

Usage:
    python fake_restic.py snapshots
    python fake_restic.py fail [--code N]
    python fake_restic.py backup --stdin
    python fake_restic.py noisy [--lines N] [--interval SECONDS]
    python fake_restic.py wait
    python fake_restic.py longline --size BYTES [--code N]
    python fake_restic.py ignore-stdin
    python fake_restic.py env NAME

Behaviours:
    snapshots: prints two snapshot IDs and exits 0
    fail: writes partial output to both streams and exits with --code (1)
    backup --stdin: echoes every stdin line, then a summary line on stderr
    noisy: writes numbered lines to stdout and stderr alternately
    wait: prints "ready" and waits for SIGINT/SIGTERM, exits 3 when received
    longline: writes a single line of --size bytes with no trailing newline
    ignore-stdin: exits 0 without touching stdin
    env: prints the value of environment variable NAME
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import time
from typing import NoReturn


def _received(signum: int, frame) -> None:
    """Handle SIGINT/SIGTERM signals."""
    print(f"received {signal.Signals(signum).name}", flush=True)
    sys.exit(3)


def cmd_snapshots(args: argparse.Namespace) -> int:
    print("repo123")
    print("repo456")
    return 0


def cmd_fail(args: argparse.Namespace) -> int:
    print("partial output", flush=True)
    print("Fatal: unable to open config file: Stat: no such file or directory",
          file=sys.stderr, flush=True)
    return args.code


def cmd_backup(args: argparse.Namespace) -> int:
    if not args.stdin:
        print("Fatal: nothing to back up", file=sys.stderr)
        return 1

    total = 0
    for raw in sys.stdin.buffer:
        total += len(raw)
        sys.stdout.write(raw.decode("utf-8", errors="replace"))
        sys.stdout.flush()
    print(f"processed {total} bytes", file=sys.stderr)
    return 0


def cmd_noisy(args: argparse.Namespace) -> int:
    for i in range(args.lines):
        stream = sys.stdout if i % 2 == 0 else sys.stderr
        print(f"line-{i}", file=stream, flush=True)
        if args.interval:
            time.sleep(args.interval)
    return 0


def cmd_wait(args: argparse.Namespace) -> int:
    signal.signal(signal.SIGINT, _received)
    signal.signal(signal.SIGTERM, _received)
    print("ready", flush=True)
    deadline = time.time() + 30
    while time.time() < deadline:
        time.sleep(0.05)
    print("timed out", file=sys.stderr)
    return 4


def cmd_longline(args: argparse.Namespace) -> int:
    sys.stdout.write("x" * args.size)
    sys.stdout.flush()
    return args.code


def cmd_ignore_stdin(args: argparse.Namespace) -> int:
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    print(os.environ.get(args.name, ""))
    return 0


def main() -> NoReturn:
    parser = argparse.ArgumentParser(prog="restic", description="Fake restic for testing")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("snapshots").set_defaults(func=cmd_snapshots)

    fail = subparsers.add_parser("fail")
    fail.add_argument("--code", type=int, default=1)
    fail.set_defaults(func=cmd_fail)

    backup = subparsers.add_parser("backup")
    backup.add_argument("--stdin", action="store_true")
    backup.set_defaults(func=cmd_backup)

    noisy = subparsers.add_parser("noisy")
    noisy.add_argument("--lines", type=int, default=10)
    noisy.add_argument("--interval", type=float, default=0.0)
    noisy.set_defaults(func=cmd_noisy)

    subparsers.add_parser("wait").set_defaults(func=cmd_wait)

    longline = subparsers.add_parser("longline")
    longline.add_argument("--size", type=int, required=True)
    longline.add_argument("--code", type=int, default=0)
    longline.set_defaults(func=cmd_longline)

    subparsers.add_parser("ignore-stdin").set_defaults(func=cmd_ignore_stdin)

    env = subparsers.add_parser("env")
    env.add_argument("name")
    env.set_defaults(func=cmd_env)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
