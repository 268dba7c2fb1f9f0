"""Groups incoming input lines into turns."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, AsyncIterable, List, Optional

from .config import Config
from .errors import InputError
from .lines import read_all_lines

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100

_END = object()


def join_lines(lines: List[str]) -> str:
    return "\n".join(lines)


class InputAggregator:
    """
    Turns a line source into a sequence of turn bodies.

    Immediate mode reads everything and produces a single turn. Debounced
    mode produces a turn whenever the input has been quiet for the debounce
    interval; a pump task keeps reading while a turn is being processed, so
    lines that arrive in the meantime end up in the next turn.
    """

    def __init__(
        self,
        source: AsyncIterable[str],
        config: Config,
        interval: Optional[float] = None,
        queue_size: int = QUEUE_SIZE,
    ) -> None:
        self.source = source
        self.config = config
        self.interval = config.debounce_seconds if interval is None else interval
        self.queue_size = queue_size
        self.reader_error: Optional[BaseException] = None
        self.lines_read = 0
        self.lines_dropped = 0
        self.turns_emitted = 0

    def turns(self) -> AsyncGenerator[str, None]:
        if self.config.stream:
            return self._debounced()
        return self._immediate()

    async def _immediate(self) -> AsyncGenerator[str, None]:
        lines = await read_all_lines(self.source)
        self.lines_read = len(lines)
        logger.debug(f"Read {len(lines)} lines from input")
        self.turns_emitted = 1
        yield join_lines(lines)

    async def _pump(self, queue: asyncio.Queue) -> None:
        iterator = self.source.__aiter__()
        try:
            async for line in iterator:
                await queue.put(line)
        except (InputError, OSError, ValueError) as e:
            self.reader_error = e
            logger.error(f"❌ Error reading input: {e}")
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
        await queue.put(_END)

    async def _debounced(self) -> AsyncGenerator[str, None]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        pump = asyncio.create_task(self._pump(queue))
        pending: Optional[asyncio.Future] = None
        buffered: List[str] = []
        ended = False

        logger.debug(f"⏱️ Debouncing input with a {self.interval}s window")
        try:
            while not ended:
                if pending is None:
                    pending = asyncio.ensure_future(queue.get())

                # Nothing to flush means nothing to time out on
                timeout = self.interval if buffered else None
                done, _ = await asyncio.wait({pending}, timeout=timeout)

                if pending in done:
                    item = pending.result()
                    pending = None
                    while item is not _END:
                        buffered.append(item)
                        self.lines_read += 1
                        logger.debug(f"Received input line: {item}")
                        if queue.empty():
                            break
                        item = queue.get_nowait()
                    else:
                        ended = True
                    continue

                turn = join_lines(buffered)
                logger.debug(f"Processing {len(buffered)} lines of input")
                buffered = []
                self.turns_emitted += 1
                yield turn

            if buffered:
                # A failed reader still hands over what it had already queued
                if self.config.flush_on_eof or self.reader_error is not None:
                    logger.debug(f"Flushing {len(buffered)} buffered lines at end of input")
                    turn = join_lines(buffered)
                    buffered = []
                    self.turns_emitted += 1
                    yield turn
                else:
                    self.lines_dropped += len(buffered)
                    logger.debug(f"⏭️ Dropping {len(buffered)} unflushed lines at end of input")
        finally:
            if pending is not None:
                pending.cancel()
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)


__all__ = ["InputAggregator", "join_lines", "QUEUE_SIZE"]
