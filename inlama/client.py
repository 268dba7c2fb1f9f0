"""Async client for the streaming generate endpoint."""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import httpx

from .config import Config
from .errors import TransportError
from .records import RecordParser

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/generate"

# Generation may pause for a long time between records, so only connecting is bounded.
DEFAULT_TIMEOUT = httpx.Timeout(None, connect=30.0)

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]


def generate_url(base_url: str) -> str:
    return base_url.rstrip("/") + GENERATE_PATH


def build_request(
    body: str,
    config: Config,
    context: Optional[Sequence[int]] = None,
) -> Dict[str, Any]:
    """
    Build the JSON payload for one turn.

    ``context`` is only included when a previous turn produced one; an absent
    key starts a new conversation, while an empty list continues one.
    """
    request: Dict[str, Any] = {
        "model": config.model,
        "prompt": body,
        "system": config.prompt,
        "stream": True,
    }
    if context is not None:
        request["context"] = list(context)
    return request


class TurnClient:
    """Sends turns to the generate endpoint and streams the reply back."""

    def __init__(
        self,
        config: Config,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=transport)
        self.client = client
        self.requests_sent = 0

    async def __aenter__(self) -> "TurnClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def send(
        self,
        body: str,
        context: Optional[Sequence[int]],
        on_chunk: ChunkCallback,
    ) -> List[int]:
        """
        Send one turn and return the context token from the final record.

        Every decoded fragment is handed to ``on_chunk`` as soon as it is parsed.
        Returns an empty list when the stream ends without a ``done`` record.
        Raises TransportError if the request or the response stream fails;
        fragments already delivered are not retracted.
        """
        request = build_request(body, self.config, context)
        url = generate_url(self.config.url)

        if context is None:
            logger.debug("🆕 No existing context, starting new conversation")
        else:
            logger.debug(f"🔗 Using existing context of length {len(context)}")
        logger.debug(f"➡️ POST {url} (model={self.config.model})")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Request JSON: {json.dumps(request)}")

        parser = RecordParser()
        result: List[int] = []
        self.requests_sent += 1

        try:
            async with self.client.stream("POST", url, json=request) as response:
                logger.debug(f"✅ Request sent, status: {response.status_code}")
                if response.is_error:
                    logger.warning(f"⚠️ Generate endpoint answered HTTP {response.status_code}")

                async for chunk in response.aiter_bytes():
                    logger.debug(f"Received chunk of size: {len(chunk)}")
                    for record in parser.feed(chunk):
                        logger.debug(
                            f"Response {parser.decoded}: {len(record.response)} chars, done: {record.done}"
                        )
                        delivered = on_chunk(record.response)
                        if inspect.isawaitable(delivered):
                            await delivered
                        if record.done:
                            logger.debug(f"🏁 Final record received, context length: {len(record.context)}")
                            result = record.context
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Error talking to {url}: {e}") from e
        finally:
            parser.close()

        logger.debug(
            f"Response stream ended: {parser.decoded} records, {parser.skipped} skipped"
        )
        return result


__all__ = ["TurnClient", "build_request", "generate_url", "GENERATE_PATH"]
