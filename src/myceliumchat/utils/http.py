"""HTTP helpers shared by the gateway, overlay and protocol clients.

Response bodies from remote services are read with a size bound so a
misbehaving server cannot exhaust memory, and JSON bodies that fail to
parse are reported as ``ValueError`` by the caller's choice.
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp


DEFAULT_MAX_RESPONSE_SIZE = 1_048_576


def client_timeout(total: float) -> aiohttp.ClientTimeout:
    """Bounded per-request timeout used by every outbound call."""
    return aiohttp.ClientTimeout(total=total)


async def _read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body, failing once it exceeds ``max_size``.

    Loops until EOF because a single ``content.read(n)`` may return fewer
    bytes than available with chunked transfer-encoding.

    Raises:
        ValueError: If the body exceeds ``max_size``.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(
    response: aiohttp.ClientResponse,
    max_size: int = DEFAULT_MAX_RESPONSE_SIZE,
) -> Any:
    """Read and parse a JSON body with size enforcement.

    Returns:
        The parsed value, or ``None`` for an empty body.

    Raises:
        ValueError: If the body is too large or is not valid JSON
            (``json.JSONDecodeError`` is a ``ValueError``).
    """
    body = await _read_bounded(response, max_size)
    if not body.strip():
        return None
    return json.loads(body)
