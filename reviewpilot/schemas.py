# reviewpilot/schemas.py
import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr


def utcnow_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


class Site(BaseModel):
    """A registered target site. api_key is a SecretStr so it never shows up in logs or reprs."""
    id: str
    name: str
    site_url: str
    api_key: SecretStr
    setup_method: str = "direct"  # "direct" | "oauth"
    verified: bool = False
    created_at: str = Field(default_factory=utcnow_iso)

    def public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "siteUrl": self.site_url,
            "setupMethod": self.setup_method,
            "verified": self.verified,
            "createdAt": self.created_at,
        }


# ---------------------------------------------------------------------------
# Request bodies. Every field is optional: presence is checked by the domain
# code so a missing field is a 400 with a plain message.
# ---------------------------------------------------------------------------
class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TokenRequest(_Body):
    code: Optional[str] = None


class RegisterSiteRequest(_Body):
    userId: Optional[str] = None
    siteUrl: Optional[str] = None
    apiKey: Optional[str] = None
    siteName: Optional[str] = None
    setupMethod: Optional[str] = None


class DirectSetupRequest(_Body):
    userId: Optional[str] = None
    siteUrl: Optional[str] = None
    apiKey: Optional[str] = None
    siteName: Optional[str] = None


class PromptRequest(_Body):
    review: Optional[str] = None


class CodeRequest(_Body):
    prompt: Optional[str] = None


class DeployCodeRequest(_Body):
    siteUrl: Optional[str] = None
    apiKey: Optional[str] = None
    code: Optional[str] = None
    codeType: Optional[str] = None


class DeployCodesRequest(_Body):
    siteUrl: Optional[str] = None
    apiKey: Optional[str] = None
    deployments: Optional[List[Dict[str, Any]]] = None


class ReviewToDeployRequest(_Body):
    review: Optional[str] = None
    siteUrl: Optional[str] = None
    apiKey: Optional[str] = None
    userId: Optional[str] = None


class NewReviewRequest(_Body):
    text: Optional[str] = None
    source: Optional[str] = None


class PromptDraftRequest(_Body):
    promptDraft: Optional[str] = None


class ReviewDeployRequest(_Body):
    siteUrl: Optional[str] = None
    apiKey: Optional[str] = None
    userId: Optional[str] = None
    codeType: Optional[str] = None
