"""Conversation state and the turn-by-turn session loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from .aggregator import InputAggregator
from .client import ChunkCallback
from .sink import OutputSink

logger = logging.getLogger(__name__)


class TurnSender(Protocol):
    async def send(
        self,
        body: str,
        context: Optional[Sequence[int]],
        on_chunk: ChunkCallback,
    ) -> List[int]:  # pragma: no cover - protocol marker
        ...


@dataclass(frozen=True)
class SessionState:
    """Context carried between turns; ``None`` until the first turn completes."""

    context: Optional[List[int]] = None
    turns: int = 0

    @property
    def has_context(self) -> bool:
        return self.context is not None

    def advance(self, context: Sequence[int]) -> "SessionState":
        """Return the state after a successful turn; the new token replaces the old."""
        return SessionState(context=list(context), turns=self.turns + 1)


async def run_session(
    aggregator: InputAggregator,
    sink: OutputSink,
    client: TurnSender,
) -> SessionState:
    """
    Feed turns from the aggregator to the endpoint one at a time.

    Returns the final state once input is exhausted. Errors raised by the
    client end the session; the failed turn does not update the context.
    """
    config = aggregator.config
    state = SessionState()
    logger.info(f"🚀 Starting {'stream' if config.stream else 'oneshot'} session with model {config.model}")

    turns = aggregator.turns()
    try:
        async for body in turns:
            logger.debug(f"📤 Sending turn {state.turns + 1} ({len(body)} chars)")
            try:
                context = await client.send(body, state.context, sink.write)
            finally:
                sink.end_turn()
            state = state.advance(context)
            logger.info(f"✅ Turn {state.turns} completed with context of length {len(context)}")
    finally:
        await turns.aclose()

    logger.info(f"🔚 Session finished after {state.turns} turn(s)")
    return state


__all__ = ["SessionState", "TurnSender", "run_session"]
