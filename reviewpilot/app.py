# reviewpilot/app.py
import time
from typing import Optional
from urllib.parse import urlencode

# Load .env BEFORE any reviewpilot imports (they read env vars at import time)
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request, Header, Path, Query
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, PlainTextResponse, RedirectResponse

from reviewpilot import config
from reviewpilot import monitoring
from reviewpilot import db as dbmod
from reviewpilot import deployer
from reviewpilot import llm_client
from reviewpilot import oauth
from reviewpilot.errors import PilotError, ValidationError
from reviewpilot.schemas import (
    TokenRequest, RegisterSiteRequest, DirectSetupRequest, PromptRequest, CodeRequest,
    DeployCodeRequest, DeployCodesRequest, ReviewToDeployRequest, NewReviewRequest,
    PromptDraftRequest, ReviewDeployRequest,
)
from reviewpilot.sites import SiteRegistry
from reviewpilot.workflow import WorkflowCoordinator

app = FastAPI(title="Review Pilot API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize DB tables on startup
dbmod.init_db()

# instantiate registry and coordinator once
registry = SiteRegistry()
coordinator = WorkflowCoordinator(registry=registry)


# ---------------------------------------------------------------------------
# Metrics middleware
# ---------------------------------------------------------------------------
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.time()
    method = request.method
    status = "500"
    try:
        response = await call_next(request)
        status = str(response.status_code)
        return response
    finally:
        # label by route template; raw paths carry user ids
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or "unmatched"
        monitoring.observe_request(start, endpoint, method, status)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(PilotError)
async def pilot_error_handler(request: Request, exc: PilotError):
    if exc.status_code >= 500:
        monitoring.logger.error("Request failed", extra={"path": request.url.path, "error_code": exc.error_code,
                                                         "error": exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    err = ValidationError("Invalid request body", details={"errors": exc.errors()})
    return JSONResponse(status_code=err.status_code, content=jsonable_encoder(err.to_dict()))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    monitoring.logger.exception("Unhandled exception in request", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "error_code": "E_INTERNAL", "details": {"exception": str(exc)}},
    )


# ---------------------------------------------------------------------------
# Health / metrics
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "ok", "hasKey": bool(config.GEMINI_API_KEY)}


@app.get("/metrics")
async def metrics():
    if not monitoring.PROMETHEUS_ENABLED:
        return PlainTextResponse("Prometheus disabled", status_code=404)
    payload, content_type = monitoring.prometheus_metrics_response()
    return Response(content=payload, media_type=content_type)


# ---------------------------------------------------------------------------
# WordPress.com OAuth
# ---------------------------------------------------------------------------
@app.get("/oauth/authorize-url")
async def authorize_url():
    built = oauth.build_authorize_url()
    return {"authorizeUrl": built["url"], "state": built["state"]}


@app.get("/auth/callback")
async def auth_callback(code: Optional[str] = None, state: Optional[str] = None):
    if not code:
        return RedirectResponse(f"{config.FRONTEND_URL}?{urlencode({'error': 'no_code'})}", status_code=302)
    if not oauth.was_issued(state):
        monitoring.logger.warning("OAuth callback with unknown state")
    query = urlencode({"code": code, "state": state or ""})
    return RedirectResponse(f"{config.FRONTEND_URL}?{query}", status_code=302)


@app.post("/oauth/token")
async def oauth_token(req: TokenRequest):
    return await oauth.exchange_code(req.code)


@app.get("/list-wordpress-sites")
async def list_wordpress_sites(authorization: Optional[str] = Header(default=None)):
    token = (authorization or "").replace("Bearer ", "", 1).strip()
    sites = await oauth.list_wordpress_sites(token)
    return {"sites": sites}


# ---------------------------------------------------------------------------
# Site registry
# ---------------------------------------------------------------------------
@app.post("/wordpress/register")
async def register_site(req: RegisterSiteRequest):
    site = registry.register(req.userId, req.siteUrl, req.apiKey,
                             name=req.siteName, setup_method=req.setupMethod or "direct")
    return {"success": True, "site": site.public()}


@app.get("/wordpress/sites/{user_id}")
async def list_sites(user_id: str = Path(..., description="User whose sites to list")):
    return {"sites": registry.list_sites(user_id)}


@app.delete("/wordpress/sites/{user_id}")
async def remove_site(user_id: str = Path(..., description="User whose site to remove"),
                      siteUrl: Optional[str] = Query(default=None)):
    site = registry.remove_site(user_id, siteUrl)
    return {"success": True, "site": site.public()}


@app.post("/setup/direct")
async def setup_direct(req: DirectSetupRequest):
    monitoring.logger.info("Received /setup/direct request", extra={"site_url": req.siteUrl})
    site = await registry.verify_and_register(req.userId, req.siteUrl, req.apiKey, site_name=req.siteName)
    return {
        "success": True,
        "site": {"id": site.id, "name": site.name, "siteUrl": site.site_url, "createdAt": site.created_at},
    }


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------
@app.post("/generate-prompt")
async def generate_prompt(req: PromptRequest):
    monitoring.logger.info("Received /generate-prompt request", extra={"review_preview": (req.review or "")[:200]})
    prompt = await llm_client.generate_prompt(req.review)
    return {"prompt": prompt}


@app.post("/generate-code")
async def generate_code(req: CodeRequest):
    monitoring.logger.info("Received /generate-code request", extra={"prompt_preview": (req.prompt or "")[:200]})
    generated = await llm_client.generate_code(req.prompt)
    return generated


# ---------------------------------------------------------------------------
# Deployment
# ---------------------------------------------------------------------------
@app.post("/deploy-code")
async def deploy_code(req: DeployCodeRequest):
    deployment = await deployer.deploy_single(req.siteUrl, req.apiKey, req.code, req.codeType)
    return {"success": True, "deployment": deployment}


@app.post("/deploy-codes")
async def deploy_codes(req: DeployCodesRequest):
    deployment = await deployer.deploy_batch(req.siteUrl, req.apiKey, req.deployments)
    return {"success": True, "deployment": deployment}


@app.post("/review-to-deploy")
async def review_to_deploy(req: ReviewToDeployRequest):
    monitoring.logger.info("Received /review-to-deploy request", extra={"user_id": req.userId})
    pipeline = await coordinator.review_to_deploy(req.review, req.siteUrl, req.apiKey, req.userId)
    return {"success": True, "pipeline": pipeline}


# ---------------------------------------------------------------------------
# Reviews and workflow
# ---------------------------------------------------------------------------
@app.get("/reviews")
async def list_reviews():
    return {"reviews": coordinator.list_reviews()}


@app.post("/reviews", status_code=201)
async def add_review(req: NewReviewRequest):
    return {"review": coordinator.add_review(req.text, source=req.source or "manual")}


@app.get("/reviews/{review_id}")
async def get_review(review_id: int):
    return {"review": coordinator.get_review(review_id)}


@app.delete("/reviews/{review_id}")
async def delete_review(review_id: int):
    coordinator.delete_review(review_id)
    return {"success": True}


@app.post("/reviews/{review_id}/start")
async def start_workflow(review_id: int):
    return {"review": coordinator.start_workflow(review_id)}


@app.get("/workflow/selected")
async def selected_review():
    return {"review": coordinator.selected}


@app.delete("/workflow/selected")
async def clear_selected_review():
    coordinator.clear_selection()
    return {"review": None}


@app.get("/dashboard/summary")
async def dashboard_summary():
    return coordinator.summary()


@app.post("/reviews/{review_id}/generate-prompt")
async def review_generate_prompt(review_id: int):
    review = await coordinator.generate_prompt(review_id)
    return {"review": review, "prompt": review["generatedPrompt"]}


@app.put("/reviews/{review_id}/prompt-draft")
async def review_prompt_draft(review_id: int, req: PromptDraftRequest):
    return {"review": coordinator.update_prompt_draft(review_id, req.promptDraft)}


@app.post("/reviews/{review_id}/generate-code")
async def review_generate_code(review_id: int, req: Optional[CodeRequest] = None):
    review = await coordinator.generate_code(review_id, prompt=req.prompt if req else None)
    return {
        "review": review,
        "code": review["generatedCode"],
        "code_type": review["codeType"],
        "description": review["codeDescription"],
    }


@app.post("/reviews/{review_id}/deploy")
async def review_deploy(review_id: int, req: ReviewDeployRequest):
    result = await coordinator.deploy(review_id, req.siteUrl, api_key=req.apiKey,
                                      code_type=req.codeType, user_id=req.userId)
    return {"success": True, "deployment": result["deployment"], "review": result["review"]}


@app.get("/deployments")
async def list_deployments():
    return {"deployments": coordinator.list_deployments()}


def main():
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
