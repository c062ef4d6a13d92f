# reviewpilot/workflow.py
import datetime
import threading
import time
from typing import Any, Dict, List, Optional

# Import modules (not bare functions) so monkeypatching in tests works correctly
import reviewpilot.llm_client as _llm_client
import reviewpilot.deployer as _deployer
from reviewpilot import db as dbmod
from reviewpilot import monitoring
from reviewpilot.errors import NotFoundError, ValidationError, require
from reviewpilot.sites import SiteRegistry, normalize_site_url

# Review status machine: new -> promptGenerated -> codeGenerated -> deployed
STATUS_NEW = "new"
STATUS_PROMPT_GENERATED = "promptGenerated"
STATUS_CODE_GENERATED = "codeGenerated"
STATUS_DEPLOYED = "deployed"


class WorkflowCoordinator:
    """
    Sequences review -> prompt -> code -> deployment. Each stage's output is
    stored on the review so the workflow can resume from any completed stage.
    Nothing advances on its own; every transition is an explicit call.
    """

    def __init__(self, registry: Optional[SiteRegistry] = None):
        self.registry = registry or SiteRegistry()
        self._selected: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()
        self._last_id = 0

    # ------------------------------------------------------------------
    # Review collection
    # ------------------------------------------------------------------
    def _next_id(self) -> int:
        now_ms = int(time.time() * 1000)
        with self._lock:
            if not self._last_id:
                self._last_id = dbmod.max_review_id()
            self._last_id = max(now_ms, self._last_id + 1)
            return self._last_id

    def add_review(self, text: str, source: str = "manual") -> Dict[str, Any]:
        require(text, "Review text required")
        review_id = self._next_id()
        created_at = datetime.datetime.fromtimestamp(review_id / 1000, tz=datetime.timezone.utc).replace(tzinfo=None)
        review = dbmod.save_review(review_id, text.strip(), source or "manual", created_at)
        monitoring.logger.info("Review added", extra={"review_id": review_id, "source": review["source"]})
        return review

    def list_reviews(self) -> List[Dict[str, Any]]:
        return dbmod.list_reviews()

    def get_review(self, review_id: int) -> Dict[str, Any]:
        review = dbmod.get_review(review_id)
        if review is None:
            raise NotFoundError(f"Review {review_id} not found")
        return review

    def delete_review(self, review_id: int) -> None:
        with self._lock:
            if not dbmod.delete_review(review_id):
                raise NotFoundError(f"Review {review_id} not found")
            if self._selected and self._selected["id"] == review_id:
                self._selected = None

    # ------------------------------------------------------------------
    # Selected view
    # ------------------------------------------------------------------
    @property
    def selected(self) -> Optional[Dict[str, Any]]:
        return dict(self._selected) if self._selected else None

    def start_workflow(self, review_id: int) -> Dict[str, Any]:
        review = self.get_review(review_id)
        with self._lock:
            self._selected = review
        return dict(review)

    def clear_selection(self) -> None:
        with self._lock:
            self._selected = None

    def _persist_review_updates(self, review_id: int, updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply updates to the stored review and, if it is the selected one, to
        the selected view, under one lock so the two never diverge.
        """
        with self._lock:
            review = dbmod.update_review(review_id, updates)
            if review is None:
                raise NotFoundError(f"Review {review_id} not found")
            if self._selected and self._selected["id"] == review_id:
                self._selected = review
        return dict(review)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    async def generate_prompt(self, review_id: int) -> Dict[str, Any]:
        review = self.get_review(review_id)
        prompt = await _llm_client.generate_prompt(review["text"])
        return self._persist_review_updates(review_id, {
            "generatedPrompt": prompt,
            "promptDraft": prompt,
            "status": STATUS_PROMPT_GENERATED,
        })

    def update_prompt_draft(self, review_id: int, draft: str) -> Dict[str, Any]:
        # generated code is left as is until the next generate_code call
        if draft is None:
            raise ValidationError("promptDraft required")
        return self._persist_review_updates(review_id, {"promptDraft": draft})

    async def generate_code(self, review_id: int, prompt: Optional[str] = None) -> Dict[str, Any]:
        review = self.get_review(review_id)
        prompt = (prompt or "").strip() or review.get("promptDraft") or review.get("generatedPrompt")
        if not prompt or not prompt.strip():
            raise ValidationError("Please generate or refine the prompt first")
        generated = await _llm_client.generate_code(prompt)
        return self._persist_review_updates(review_id, {
            "generatedCode": generated["code"],
            "codeType": generated["code_type"],
            "codeDescription": generated["description"],
            "status": STATUS_CODE_GENERATED,
        })

    async def deploy(self, review_id: int, site_url: str, api_key: Optional[str] = None,
                     code_type: Optional[str] = None, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Deploy the review's generated code. When no api_key is given, the key
        stored for (user_id, site_url) in the registry is used.
        """
        review = self.get_review(review_id)
        if not review.get("generatedCode"):
            raise ValidationError("Please generate code first")
        require(site_url, "siteUrl required")
        if not api_key and user_id:
            site = self.registry.get_site(user_id, site_url)
            if site is not None:
                api_key = site.api_key.get_secret_value()
        require(api_key, "apiKey required")
        code_type = code_type or review.get("codeType")

        response = await _deployer.deploy_single(site_url, api_key, review["generatedCode"], code_type)
        deployment = dbmod.save_deployment({
            "review_id": review_id,
            "site_url": normalize_site_url(site_url),
            "user_id": user_id,
            "code_type": code_type,
            "response": response,
        })
        updated = self._persist_review_updates(review_id, {"status": STATUS_DEPLOYED, "codeType": code_type})
        return {"deployment": deployment, "review": updated, "response": response}

    async def review_to_deploy(self, review_text: str, site_url: str, api_key: str,
                               user_id: str) -> Dict[str, Any]:
        """
        Run all three stages for a fresh review. Inputs are checked before any
        upstream call; a failing stage leaves the review at the last completed one.
        """
        require(review_text, "review required")
        require(site_url, "siteUrl required")
        require(api_key, "apiKey required")
        require(user_id, "userId required")

        review = self.add_review(review_text, source="pipeline")
        review = await self.generate_prompt(review["id"])
        review = await self.generate_code(review["id"])
        result = await self.deploy(review["id"], site_url, api_key, user_id=user_id)
        review = result["review"]
        return {
            "reviewId": review["id"],
            "prompt": review["generatedPrompt"],
            "code": review["generatedCode"],
            "codeType": review["codeType"],
            "description": review["codeDescription"],
            "deployment": result["deployment"],
        }

    def list_deployments(self) -> List[Dict[str, Any]]:
        return dbmod.list_deployments()

    def summary(self) -> Dict[str, int]:
        """Dashboard counters over stored reviews and deployments."""
        reviews = dbmod.list_reviews()
        return {
            "total": len(reviews),
            "pending": sum(1 for r in reviews if r["status"] != STATUS_DEPLOYED),
            "codeGenerated": sum(1 for r in reviews if r["status"] == STATUS_CODE_GENERATED),
            "deployments": len(dbmod.list_deployments()),
        }
