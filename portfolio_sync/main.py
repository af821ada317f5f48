"""FastAPI webhook receiver triggering incremental portfolio syncs"""

import asyncio
import hashlib
import hmac
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import sanitize_log_extra
from portfolio_sync.jobs.portfolio_sync import run_incremental_sync
from portfolio_sync.orchestrator import PortfolioSyncOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

REPOSITORY_ACTIONS = ("created", "publicized")

app = FastAPI(
    title=settings.APP_NAME,
    description="GitHub webhook receiver keeping the portfolio data file in sync",
    version=settings.APP_VERSION,
)

# Replaced in tests
orchestrator_factory: Callable[[], PortfolioSyncOrchestrator] = PortfolioSyncOrchestrator

# One sync at a time in this process
sync_lock = asyncio.Lock()

# Store last run stats (in-memory, for simple deployment)
last_stats: Dict[str, Any] = {}


def verify_signature(payload_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an `X-Hub-Signature-256` header against the raw request body."""
    if not signature or not secret:
        return False

    expected = hmac.new(secret.encode(), payload_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature)


def resolve_sync_target(event: Optional[str], payload: Dict[str, Any]) -> tuple[Optional[str], str]:
    """
    Decide whether an event should trigger a sync

    Returns:
        (full_name, reason); full_name is None when the event is ignored
    """
    repository = payload.get("repository") if isinstance(payload.get("repository"), dict) else {}
    full_name = repository.get("full_name")
    if not isinstance(full_name, str) or "/" not in full_name:
        return None, "Payload has no repository"

    if event == "push":
        ref = str(payload.get("ref") or "")
        branch = ref.removeprefix("refs/heads/")
        allowed = list(settings.webhook_branches)
        default_branch = repository.get("default_branch")
        if isinstance(default_branch, str) and default_branch:
            allowed.append(default_branch)
        if branch not in allowed:
            return None, f"Branch {branch or '?'} ignored"
        return full_name, f"Push to {branch}"

    if event == "repository":
        action = payload.get("action")
        if action not in REPOSITORY_ACTIONS:
            return None, f"Repository action {action} ignored"
        return full_name, f"Repository {action}"

    return None, f"Event {event} ignored"


async def run_sync_task(full_name: str) -> None:
    async with sync_lock:
        try:
            stats = await run_incremental_sync(full_name, orchestrator=orchestrator_factory())
            last_stats["incremental"] = stats
            logger.info(f"Webhook sync completed: {full_name} {stats.get('action')}")
        except Exception as e:
            logger.error(f"Webhook sync failed for {full_name}: {e}", exc_info=True)
            last_stats["incremental"] = {"repository": full_name, "success": False, "error": str(e)}


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "stats": "/api/stats",
            "webhook": "POST /webhook",
        },
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "portfolio-sync",
        "version": settings.APP_VERSION,
        "secret_configured": bool(settings.WEBHOOK_SECRET),
    }


@app.get("/api/stats")
async def get_stats():
    """Get last webhook sync statistics"""
    return last_stats.get("incremental", {"last_run": None})


@app.post("/webhook")
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_github_event: str = Header(None),
    x_hub_signature_256: str = Header(None),
):
    """Receive GitHub push/repository events and schedule an incremental sync."""
    body = await request.body()

    if not settings.WEBHOOK_SECRET:
        logger.error("WEBHOOK_SECRET not configured, rejecting webhook")
        raise HTTPException(status_code=503, detail="Webhook secret not configured")

    if not verify_signature(body, x_hub_signature_256, settings.WEBHOOK_SECRET):
        logger.warning(
            "Invalid webhook signature",
            extra=sanitize_log_extra(event=x_github_event, signature=x_hub_signature_256),
        )
        raise HTTPException(status_code=401, detail="Invalid signature")

    if x_github_event == "ping":
        return {"status": "ok", "message": "pong"}

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    full_name, reason = resolve_sync_target(x_github_event, payload)
    if full_name is None:
        logger.info(f"Ignoring {x_github_event} event: {reason}")
        return {"status": "ignored", "event": x_github_event, "reason": reason}

    logger.info(f"{reason} detected for {full_name}, scheduling incremental sync")
    background_tasks.add_task(run_sync_task, full_name)
    return {
        "status": "started",
        "event": x_github_event,
        "repository": full_name,
        "message": "Incremental sync started in background",
    }
