"""Outbound HTTP with a total deadline.

httpx timeouts apply to each connect/read operation and restart with every
chunk received, so an endpoint that trickles its body can hold a worker far
longer than the configured timeout. ``send_with_deadline`` bounds the whole
exchange instead.
"""
from __future__ import annotations

import time
from typing import List, Optional, Tuple

import httpx


def _check_deadline(
    deadline: Optional[float], timeout: Optional[float], request: httpx.Request
) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise httpx.ReadTimeout(
            f"Request exceeded the {timeout:g}s total timeout", request=request
        )


def send_with_deadline(
    client: httpx.Client, request: httpx.Request, timeout: Optional[float]
) -> Tuple[httpx.Response, bytes]:
    """Send ``request`` and read the full body within ``timeout`` seconds.

    Returns the (closed) response and its body. Raises ``httpx.ReadTimeout``
    once the deadline passes, or any other ``httpx.HTTPError`` from the client.
    """
    deadline = time.monotonic() + timeout if timeout else None
    response = client.send(request, stream=True)
    try:
        chunks: List[bytes] = []
        _check_deadline(deadline, timeout, request)
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            _check_deadline(deadline, timeout, request)
    finally:
        response.close()
    return response, b"".join(chunks)
