"""Tests for turn formation from input lines."""

from __future__ import annotations

import asyncio
import time
from typing import List, Optional, Tuple

from inlama.aggregator import InputAggregator
from inlama.config import Config
from inlama.errors import InputError

FOLLOW = Config(stream=True)

# Timings below are the documented 1s scenario scaled down to 0.2s
INTERVAL = 0.2


def timed_source(events: List[Tuple[float, str]], linger: float = 0.0, error: Optional[Exception] = None):
    """Yield each line after sleeping its delay, then keep the source open for ``linger``."""

    async def source():
        for delay, line in events:
            await asyncio.sleep(delay)
            yield line
        if error is not None:
            raise error
        await asyncio.sleep(linger)

    return source()


def collect(aggregator: InputAggregator) -> List[str]:
    async def scenario():
        return [turn async for turn in aggregator.turns()]

    return asyncio.run(scenario())


def test_immediate_mode_yields_one_joined_turn() -> None:
    aggregator = InputAggregator(timed_source([(0, "a"), (0, "b"), (0, "c")]), Config())

    assert collect(aggregator) == ["a\nb\nc"]
    assert aggregator.lines_read == 3


def test_immediate_mode_with_empty_input_still_yields_a_turn() -> None:
    assert collect(InputAggregator(timed_source([]), Config())) == [""]


def test_lines_within_the_window_form_one_turn() -> None:
    # t, t+0.3, t+0.9 with a 1.0 interval, then a longer gap
    source = timed_source([(0, "one"), (0.06, "two"), (0.12, "three")], linger=INTERVAL * 3)
    aggregator = InputAggregator(source, FOLLOW, interval=INTERVAL)

    assert collect(aggregator) == ["one\ntwo\nthree"]
    assert aggregator.turns_emitted == 1


def test_quiet_gap_splits_turns() -> None:
    source = timed_source(
        [(0, "first"), (0.02, "batch"), (INTERVAL * 2.5, "second")],
        linger=INTERVAL * 3,
    )
    aggregator = InputAggregator(source, FOLLOW, interval=INTERVAL)

    assert collect(aggregator) == ["first\nbatch", "second"]


def test_no_turn_is_emitted_without_input() -> None:
    aggregator = InputAggregator(timed_source([], linger=INTERVAL * 3), FOLLOW, interval=INTERVAL)

    assert collect(aggregator) == []


def test_unflushed_lines_are_dropped_at_end_of_input() -> None:
    aggregator = InputAggregator(timed_source([(0, "a"), (0, "b")]), FOLLOW, interval=INTERVAL)

    assert collect(aggregator) == []
    assert aggregator.lines_dropped == 2


def test_flush_on_eof_sends_the_remaining_lines() -> None:
    config = Config(stream=True, flush_on_eof=True)
    aggregator = InputAggregator(timed_source([(0, "a"), (0, "b")]), config, interval=INTERVAL)

    assert collect(aggregator) == ["a\nb"]


def test_lines_arriving_during_a_turn_go_to_the_next_turn() -> None:
    source = timed_source(
        [(0, "first"), (INTERVAL * 1.5, "during-1"), (0.01, "during-2")],
        linger=INTERVAL * 4,
    )
    aggregator = InputAggregator(source, FOLLOW, interval=INTERVAL)

    async def scenario():
        turns = []
        async for turn in aggregator.turns():
            turns.append(turn)
            if len(turns) == 1:
                # Simulate a slow turn while the reader keeps queueing
                await asyncio.sleep(INTERVAL * 2)
        return turns

    assert asyncio.run(scenario()) == ["first", "during-1\nduring-2"]


def test_turn_fires_one_interval_after_the_last_line() -> None:
    source = timed_source([(0, "a"), (INTERVAL / 2, "b")], linger=INTERVAL * 3)
    aggregator = InputAggregator(source, FOLLOW, interval=INTERVAL)

    async def scenario():
        start = time.monotonic()
        async for turn in aggregator.turns():
            return turn, time.monotonic() - start

    turn, elapsed = asyncio.run(scenario())
    assert turn == "a\nb"
    # Last line at 0.5 * interval, so the flush lands around 1.5 * interval
    assert elapsed >= INTERVAL * 1.4


def test_reader_error_ends_input_and_is_recorded() -> None:
    source = timed_source([(0, "a")], error=InputError("Error reading from stdin: boom"))
    aggregator = InputAggregator(source, FOLLOW, interval=INTERVAL)

    assert collect(aggregator) == ["a"]
    assert isinstance(aggregator.reader_error, InputError)


def test_reader_error_flushes_queued_lines_with_default_config() -> None:
    source = timed_source(
        [(0, "already queued"), (0, "and this")],
        error=InputError("Error reading from stdin: Input/output error"),
    )
    aggregator = InputAggregator(source, Config(stream=True), interval=0.05)

    assert collect(aggregator) == ["already queued\nand this"]
    assert aggregator.lines_dropped == 0


def test_clean_end_of_input_still_drops_by_default() -> None:
    aggregator = InputAggregator(timed_source([(0, "late")]), Config(stream=True), interval=0.05)

    assert collect(aggregator) == []
    assert aggregator.reader_error is None
    assert aggregator.lines_dropped == 1


def test_closing_turns_early_stops_the_reader() -> None:
    closed = []

    async def endless():
        try:
            while True:
                await asyncio.sleep(0.05)
                yield "tick"
        finally:
            closed.append(True)

    aggregator = InputAggregator(endless(), FOLLOW, interval=0.01)

    async def scenario():
        turns = aggregator.turns()
        first = await turns.__anext__()
        await turns.aclose()
        return first

    assert asyncio.run(scenario()) == "tick"
    assert closed == [True]
