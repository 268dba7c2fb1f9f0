"""Writes model output to the primary output stream."""

from __future__ import annotations

import sys
from typing import Optional, TextIO


class OutputSink:
    """Forwards response fragments verbatim, flushing after each one."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.turn_chars = 0
        self.last_char = ""

    def write(self, fragment: str) -> None:
        if not fragment:
            return
        self.stream.write(fragment)
        self.stream.flush()
        self.turn_chars += len(fragment)
        self.last_char = fragment[-1]

    def end_turn(self) -> None:
        """Terminate the current turn's output with a newline if it lacks one."""
        if self.turn_chars and self.last_char != "\n":
            self.stream.write("\n")
            self.stream.flush()
        self.turn_chars = 0
        self.last_char = ""


__all__ = ["OutputSink"]
