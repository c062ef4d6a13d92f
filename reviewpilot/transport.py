# reviewpilot/transport.py
"""
Outbound HTTP client factory.

Every third-party call goes through `async_client()`. Tests install an
`httpx.MockTransport` into TRANSPORT to stub all upstreams in one place.
"""

from typing import Optional

import httpx

TRANSPORT: Optional[httpx.AsyncBaseTransport] = None


def async_client(timeout: Optional[float] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, transport=TRANSPORT)


def response_body(resp: httpx.Response):
    """Decoded JSON body, or the raw text when the body is not JSON."""
    try:
        return resp.json()
    except ValueError:
        return resp.text
