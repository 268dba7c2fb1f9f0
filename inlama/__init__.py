"""Stream stdin into a local LLM, one conversational turn at a time."""

from __future__ import annotations

__version__ = "0.1.0"
