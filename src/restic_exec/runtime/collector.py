"""Line-by-line output collection for subprocess pipes.

The per-line ceiling is enforced by the source: ``GenericCommand`` spawns
its subprocess with a stream limit equal to ``Config.max_line_bytes``, and
``asyncio.StreamReader.readline`` fails with ``ValueError`` when a single line
exceeds it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, TextIO

import anyio
from anyio.abc import ObjectSendStream

from ..errors import CollectionError

__all__ = [
    "LineSource",
    "collect_output",
]

logger = logging.getLogger(__name__)


class LineSource(Protocol):
    """Anything that yields newline-terminated byte lines, e.g. ``asyncio.StreamReader``."""

    async def readline(self) -> bytes:
        ...


def _decode_line(raw: bytes) -> str:
    if raw.endswith(b"\n"):
        raw = raw[:-1]
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


async def collect_output(
    source: LineSource,
    *,
    stream: str = "stdout",
    echo: TextIO | None = None,
    live: ObjectSendStream[str] | None = None,
    on_line: Callable[[str], None] | None = None,
) -> tuple[list[str], CollectionError | None]:
    """Drain a line source until end of stream.

    For every line, in arrival order: echo it, append it to the result,
    hand it to ``on_line`` and publish it to ``live``. Publishing waits until
    the subscriber takes the line, so a subscriber that never reads stalls
    collection.

    Args:
        source: Stream to read from
        stream: Name used in logs and errors
        echo: Console to write each line to immediately
        live: Channel for real-time subscribers
        on_line: Callback invoked with each complete line

    Returns:
        Tuple of (lines, error). On a read failure the lines collected so far
        are returned together with a ``CollectionError``.
    """
    lines: list[str] = []
    publishing = live is not None

    while True:
        try:
            raw = await source.readline()
        except (OSError, ValueError) as e:
            logger.warning(f"Reading {stream} failed after {len(lines)} line(s): {e}")
            return lines, CollectionError(stream, e)

        if not raw:
            break

        line = _decode_line(raw)

        if echo is not None:
            echo.write(line + "\n")
            echo.flush()

        lines.append(line)

        if on_line is not None:
            on_line(line)

        if publishing:
            try:
                await live.send(line)
            except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                logger.warning(f"Live subscriber for {stream} went away, no longer publishing")
                publishing = False

    logger.debug(f"Finished collecting {stream}: {len(lines)} line(s)")
    return lines, None
