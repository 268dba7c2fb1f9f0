"""Line sources: blocking text streams exposed as async iterators."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from concurrent.futures import CancelledError
from typing import AsyncIterable, AsyncIterator, List, Optional, TextIO

from .errors import InputError

logger = logging.getLogger(__name__)

_EOF = object()


def strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


async def read_lines(stream: Optional[TextIO] = None, maxsize: int = 100) -> AsyncIterator[str]:
    """
    Yield lines from a blocking text stream without blocking the event loop.

    A daemon thread does the reading and hands lines over through a bounded
    queue, so a slow consumer throttles the reader instead of growing memory.
    A failed read surfaces here as InputError.
    """
    stream = stream if stream is not None else sys.stdin
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
    stop = threading.Event()

    def _put(item) -> bool:
        try:
            asyncio.run_coroutine_threadsafe(queue.put(item), loop).result()
        except (RuntimeError, CancelledError):
            # Event loop closed or shutting down
            return False
        return True

    def _reader() -> None:
        # Replaced by _EOF or the read error; anything else leaves this in place
        item: object = InputError("line reader stopped unexpectedly")
        try:
            for line in iter(stream.readline, ""):
                if stop.is_set():
                    return
                if not _put(strip_line_ending(line)):
                    return
            item = _EOF
        except (OSError, ValueError) as e:
            # UnicodeDecodeError is a ValueError; so is reading a closed file
            item = e
        finally:
            if not stop.is_set():
                _put(item)

    thread = threading.Thread(target=_reader, name="LineReader", daemon=True)
    thread.start()
    logger.debug("📥 Line reader started")

    try:
        while True:
            item = await queue.get()
            if item is _EOF:
                logger.debug("📭 Line source reached end of input")
                return
            if isinstance(item, BaseException):
                raise InputError(f"Error reading from stdin: {item}") from item
            yield item
    finally:
        stop.set()


async def read_all_lines(source: AsyncIterable[str]) -> List[str]:
    """Drain a line source to end of input."""
    return [line async for line in source]


__all__ = ["read_lines", "read_all_lines", "strip_line_ending"]
