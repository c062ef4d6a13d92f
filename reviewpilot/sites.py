# reviewpilot/sites.py
"""
Site registry: which target sites a user has connected, and with which key.

Storage is injected (SiteStore) so the registry never depends on process-wide
state; InMemorySiteStore is the default backing store. Concurrent writes for
the same user are last-write-wins.
"""

import time
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx
from pydantic import SecretStr

from reviewpilot import config
from reviewpilot import monitoring
from reviewpilot import transport
from reviewpilot.errors import AuthError, NotFoundError, ValidationError, require
from reviewpilot.schemas import Site, utcnow_iso

DEFAULT_SITE_NAME = "My WordPress Site"

VERIFY_HINTS = [
    "Is the AI Code Deployer plugin installed and activated on the site?",
    "Is the site URL correct (including http:// or https://)?",
    "Is the API key correct? Copy it again from the plugin settings page.",
    "Is the site reachable from this server (not behind a firewall or maintenance mode)?",
]


def normalize_site_url(site_url: str) -> str:
    """Strip surrounding whitespace and trailing slashes. Idempotent."""
    return (site_url or "").strip().rstrip("/")


def check_api_key(api_key: str) -> str:
    """Keys travel in an HTTP header, so they must be printable ASCII."""
    require(api_key, "apiKey required")
    if not api_key.isascii() or not api_key.isprintable():
        raise ValidationError("apiKey contains characters not allowed in an HTTP header")
    return api_key


def _check_scheme(site_url: str):
    if not (site_url.startswith("http://") or site_url.startswith("https://")):
        raise ValidationError("siteUrl must start with http:// or https://")


class SiteStore(ABC):
    """Get/put of a user's site list. Implementations own durability."""

    @abstractmethod
    def get(self, user_id: str) -> List[Site]:
        """Return the user's sites in insertion order; empty list if none."""

    @abstractmethod
    def put(self, user_id: str, sites: List[Site]) -> None:
        """Replace the user's site list."""


class InMemorySiteStore(SiteStore):
    def __init__(self):
        self._sites: Dict[str, List[Site]] = {}

    def get(self, user_id: str) -> List[Site]:
        return list(self._sites.get(user_id, []))

    def put(self, user_id: str, sites: List[Site]) -> None:
        self._sites[user_id] = list(sites)


class SiteRegistry:
    def __init__(self, store: Optional[SiteStore] = None):
        self.store = store or InMemorySiteStore()

    def _replace_or_append(self, user_id: str, site: Site) -> Site:
        sites = self.store.get(user_id)
        for i, existing in enumerate(sites):
            if existing.site_url == site.site_url:
                sites[i] = site
                break
        else:
            sites.append(site)
        self.store.put(user_id, sites)
        return site

    def register(self, user_id: str, site_url: str, api_key: str,
                 name: Optional[str] = None, setup_method: str = "direct") -> Site:
        """
        Record a site for a user without probing it. Re-registering the same
        URL replaces key and timestamp in place; a new URL is appended.
        """
        require(user_id, "userId required")
        require(site_url, "siteUrl required")
        check_api_key(api_key)
        site_url = normalize_site_url(site_url)
        _check_scheme(site_url)

        sites = self.store.get(user_id)
        for i, existing in enumerate(sites):
            if existing.site_url == site_url:
                update = {"api_key": SecretStr(api_key), "created_at": utcnow_iso()}
                if existing.api_key.get_secret_value() != api_key:
                    # a new key is unverified until checked again
                    update["verified"] = False
                if name:
                    update["name"] = name
                site = existing.model_copy(update=update)
                sites[i] = site
                break
        else:
            site = Site(
                id=str(uuid.uuid4()),
                name=name or DEFAULT_SITE_NAME,
                site_url=site_url,
                api_key=api_key,
                setup_method=setup_method or "direct",
            )
            sites.append(site)
        self.store.put(user_id, sites)
        monitoring.logger.info("Site registered", extra={"user_id": user_id, "site_url": site.site_url})
        return site

    async def verify_and_register(self, user_id: str, site_url: str, api_key: str,
                                  site_name: Optional[str] = None) -> Site:
        """
        Check the site's status endpoint with the key (single attempt, 5s) and
        register it as verified on success. Raises AuthError with hints otherwise.
        """
        require(user_id, "userId required")
        require(site_url, "siteUrl required")
        check_api_key(api_key)
        site_url = normalize_site_url(site_url)
        _check_scheme(site_url)

        status_url = f"{site_url}{config.PLUGIN_NAMESPACE}/status"
        start = time.time()
        try:
            async with transport.async_client(timeout=config.VERIFY_TIMEOUT) as client:
                resp = await client.get(status_url, headers={config.API_KEY_HEADER: api_key})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            monitoring.observe_upstream(start, "site_status", "transport_error")
            monitoring.inc_site_verification("unreachable")
            monitoring.logger.warning("Site verification failed", extra={"site_url": site_url, "error": str(e)})
            raise AuthError("Could not verify WordPress site", hints=VERIFY_HINTS,
                            details={"reason": str(e)})

        if not resp.is_success:
            monitoring.observe_upstream(start, "site_status", f"http_{resp.status_code}")
            monitoring.inc_site_verification("rejected")
            monitoring.logger.warning("Site verification rejected",
                                      extra={"site_url": site_url, "upstream_status": resp.status_code})
            raise AuthError("Could not verify WordPress site", hints=VERIFY_HINTS,
                            details={"upstream_status": resp.status_code,
                                     "upstream_body": transport.response_body(resp)})

        monitoring.observe_upstream(start, "site_status", "success")
        monitoring.inc_site_verification("success")
        site = Site(
            id=str(uuid.uuid4()),
            name=site_name or DEFAULT_SITE_NAME,
            site_url=site_url,
            api_key=api_key,
            setup_method="direct",
            verified=True,
            created_at=utcnow_iso(),
        )
        return self._replace_or_append(user_id, site)

    def list_sites(self, user_id: str) -> List[Dict[str, str]]:
        return [{"siteUrl": s.site_url, "createdAt": s.created_at} for s in self.store.get(user_id)]

    def get_site(self, user_id: str, site_url: str) -> Optional[Site]:
        site_url = normalize_site_url(site_url)
        for s in self.store.get(user_id):
            if s.site_url == site_url:
                return s
        return None

    def remove_site(self, user_id: str, site_url: str) -> Site:
        """Drop one site from the user's list. Raises NotFoundError if absent."""
        require(user_id, "userId required")
        require(site_url, "siteUrl required")
        site_url = normalize_site_url(site_url)
        sites = self.store.get(user_id)
        remaining = [s for s in sites if s.site_url != site_url]
        if len(remaining) == len(sites):
            raise NotFoundError(f"Site {site_url} is not registered")
        self.store.put(user_id, remaining)
        monitoring.logger.info("Site removed", extra={"user_id": user_id, "site_url": site_url})
        return next(s for s in sites if s.site_url == site_url)
