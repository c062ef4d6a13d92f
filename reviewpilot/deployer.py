# reviewpilot/deployer.py
"""
Pushes generated code to the deployer plugin on a target site.

The plugin exposes, under config.PLUGIN_NAMESPACE:
  POST /deploy        {"code": "...", "code_type": "css|js|html"}
  POST /deploy-batch  {"deployments": [{"code": ..., "code_type": ...}, ...]}
both authenticated with the X-API-Key header. Whether a batch is applied
all-or-nothing is up to the site; this client only relays the response body.
"""

import time
from typing import Any, Dict, List

import httpx

from reviewpilot import config
from reviewpilot import monitoring
from reviewpilot import transport
from reviewpilot.errors import DeploymentError, ValidationError, require
from reviewpilot.sites import check_api_key, normalize_site_url

CODE_TYPES = ("css", "js", "html")


def validate_code_type(code_type: Any) -> str:
    if code_type not in CODE_TYPES:
        raise ValidationError(f"Invalid codeType {code_type!r}; must be one of: {', '.join(CODE_TYPES)}")
    return code_type


def _validate_target(site_url: str, api_key: str) -> str:
    require(site_url, "siteUrl required")
    check_api_key(api_key)
    return normalize_site_url(site_url)


async def _post(url: str, api_key: str, payload: Dict[str, Any], code_type_label: str) -> Any:
    start = time.time()
    try:
        async with transport.async_client(timeout=config.DEPLOY_TIMEOUT) as client:
            resp = await client.post(url, json=payload, headers={config.API_KEY_HEADER: api_key})
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        monitoring.observe_upstream(start, "deploy", "transport_error")
        monitoring.inc_deployment(code_type_label, "fail")
        monitoring.logger.warning("Deployment request failed", extra={"url": url, "error": str(e)})
        raise DeploymentError(f"Deployment request failed: {e}")

    body = transport.response_body(resp)
    if not resp.is_success:
        monitoring.observe_upstream(start, "deploy", f"http_{resp.status_code}")
        monitoring.inc_deployment(code_type_label, "fail")
        monitoring.logger.warning("Deployment rejected", extra={"url": url, "upstream_status": resp.status_code})
        raise DeploymentError(
            f"Deployment failed with status {resp.status_code}",
            upstream_status=resp.status_code,
            upstream_body=body,
        )

    monitoring.observe_upstream(start, "deploy", "success")
    monitoring.inc_deployment(code_type_label, "success")
    if isinstance(body, str):
        return {"raw": body}
    return body


async def deploy_single(site_url: str, api_key: str, code: str, code_type: str) -> Any:
    """Deploy one code item; returns the site's response body verbatim."""
    site_url = _validate_target(site_url, api_key)
    require(code, "code required")
    validate_code_type(code_type)

    monitoring.logger.info("Deploying code", extra={"site_url": site_url, "code_type": code_type})
    url = f"{site_url}{config.PLUGIN_NAMESPACE}/deploy"
    return await _post(url, api_key, {"code": code, "code_type": code_type}, code_type)


async def deploy_batch(site_url: str, api_key: str, deployments: List[Dict[str, Any]]) -> Any:
    """
    Deploy several code items in one request. Every item is validated before
    anything is sent; per-item outcomes are whatever the site reports.
    """
    site_url = _validate_target(site_url, api_key)
    if not isinstance(deployments, list) or not deployments:
        raise ValidationError("deployments must be a non-empty list")

    items = []
    for i, item in enumerate(deployments):
        if not isinstance(item, dict):
            raise ValidationError(f"deployments[{i}] must be an object")
        require(item.get("code"), f"deployments[{i}].code required")
        code_type = item.get("codeType", item.get("code_type"))
        try:
            validate_code_type(code_type)
        except ValidationError as e:
            raise ValidationError(f"deployments[{i}]: {e.message}")
        items.append({"code": item["code"], "code_type": code_type})

    monitoring.logger.info("Deploying code batch", extra={"site_url": site_url, "count": len(items)})
    url = f"{site_url}{config.PLUGIN_NAMESPACE}/deploy-batch"
    return await _post(url, api_key, {"deployments": items}, "batch")
