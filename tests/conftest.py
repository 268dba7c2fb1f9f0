"""Shared helpers for the inlama test suite."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]

# Ensure the package is importable when running from a source checkout
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def record_line(
    response: str,
    done: bool = False,
    context: Optional[List[int]] = None,
    **extra,
) -> bytes:
    payload = {
        "model": "llama3.2",
        "created_at": "2024-05-01T12:00:00.000000Z",
        "response": response,
        "done": done,
    }
    if context is not None:
        payload["context"] = context
    payload.update(extra)
    return (json.dumps(payload) + "\n").encode("utf-8")


@pytest.fixture
def make_line():
    """Builds one newline-terminated generate record."""
    return record_line


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the user's config file and INLAMA_* variables out of the tests."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in (
        "CONFIG_FILE",
        "INLAMA_MODEL",
        "INLAMA_URL",
        "INLAMA_PROMPT",
        "INLAMA_BUFFER_TIME",
        "INLAMA_DEBUG",
        "INLAMA_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
