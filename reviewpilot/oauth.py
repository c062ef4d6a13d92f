# reviewpilot/oauth.py
"""
WordPress.com OAuth helpers: authorize URL, code-for-token exchange, and the
bearer-authenticated site listing. No refresh and no expiry tracking.
"""

import secrets
import time
from collections import deque
from typing import Any, Dict, List
from urllib.parse import urlencode

import httpx

from reviewpilot import config
from reviewpilot import monitoring
from reviewpilot import transport
from reviewpilot.errors import UpstreamError, require

# States handed out by build_authorize_url(). The callback only logs whether a
# returned state is in here; it does not reject unknown ones.
_ISSUED_STATES: deque = deque(maxlen=256)


def build_authorize_url() -> Dict[str, str]:
    state = secrets.token_urlsafe(12)
    _ISSUED_STATES.append(state)
    query = urlencode({
        "client_id": config.WORDPRESS_CLIENT_ID,
        "redirect_uri": config.WORDPRESS_REDIRECT_URI,
        "response_type": "code",
        "state": state,
        "scope": config.WORDPRESS_OAUTH_SCOPE,
    })
    return {"url": f"{config.WORDPRESS_AUTHORIZE_URL}?{query}", "state": state}


def was_issued(state: str) -> bool:
    return bool(state) and state in _ISSUED_STATES


async def _request(method: str, url: str, service: str, **kwargs) -> Any:
    start = time.time()
    try:
        async with transport.async_client(timeout=config.OAUTH_TIMEOUT) as client:
            resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        monitoring.observe_upstream(start, service, "transport_error")
        monitoring.logger.warning("WordPress.com request failed", extra={"service": service, "error": str(e)})
        raise UpstreamError(f"{service} request failed: {e}")

    body = transport.response_body(resp)
    if not resp.is_success:
        monitoring.observe_upstream(start, service, f"http_{resp.status_code}")
        monitoring.logger.warning("WordPress.com returned error status",
                                  extra={"service": service, "upstream_status": resp.status_code})
        raise UpstreamError(f"{service} returned {resp.status_code}",
                            upstream_status=resp.status_code, upstream_body=body)
    monitoring.observe_upstream(start, service, "success")
    return body


async def exchange_code(code: str) -> Dict[str, Any]:
    """Exchange an authorization code for {access_token, refresh_token}."""
    require(code, "Code required")
    data = await _request(
        "POST",
        config.WORDPRESS_TOKEN_URL,
        "oauth_token",
        data={
            "client_id": config.WORDPRESS_CLIENT_ID,
            "client_secret": config.WORDPRESS_CLIENT_SECRET,
            "redirect_uri": config.WORDPRESS_REDIRECT_URI,
            "code": code,
            "grant_type": "authorization_code",
        },
    )
    if not isinstance(data, dict):
        raise UpstreamError("Token endpoint returned a non-JSON body", upstream_body=data)
    return {"access_token": data.get("access_token"), "refresh_token": data.get("refresh_token")}


async def list_wordpress_sites(token: str) -> List[Dict[str, Any]]:
    """Sites visible to the token's account, as [{name, url, id}]."""
    require(token, "Missing authorization token")
    data = await _request(
        "GET",
        f"{config.WORDPRESS_API_BASE}/me/sites",
        "wpcom_sites",
        headers={"Authorization": f"Bearer {token}"},
    )
    sites = data.get("sites", []) if isinstance(data, dict) else []
    return [{"name": s.get("name"), "url": s.get("URL"), "id": s.get("ID")} for s in sites]
