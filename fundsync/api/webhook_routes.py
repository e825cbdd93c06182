"""FundSync - Raisely Webhook Routes."""

import hmac
import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from fundsync.config import settings
from fundsync.connectors.raisely.transformer import extract_webhook_profile
from fundsync.core.errors import ProfileValidationError, SyncError
from fundsync.core.logging import get_logger
from fundsync.sync.orchestrator import SyncOrchestrator

logger = get_logger("api.webhook")

router = APIRouter(tags=["Webhook"])

VERIFIED = {"status": "ok", "message": "Webhook endpoint verified"}

SAMPLE_WEBHOOK = {
    "type": "profile.created",
    "data": {
        "profile": {
            "name": "Test Fundraiser",
            "campaign": {"name": "Test Campaign"},
            "description": "This is a test fundraiser",
            "target": 50000,
            "total": 15000,
            "path": "test-campaign/test-fundraiser",
            "uuid": "test-uuid-123",
            "status": "DRAFT",
        }
    },
}


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Dependency - orchestrator over the app's store and resolver context."""
    return SyncOrchestrator(request.app.state.store, request.app.state.resolver_context)


def _error_detail(message: str, error: Exception) -> str:
    """Internal error text is only exposed in development."""
    if settings.is_development:
        return f"{message}: {error}"
    return message


async def _read_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")
    return body if isinstance(body, dict) else {}


def _check_secret(body: Dict[str, Any]) -> None:
    expected = settings.webhook_secret
    if not expected:
        return
    data = body.get("data")
    nested = data.get("secret") if isinstance(data, dict) else None
    provided = str(body.get("secret") or nested or "")
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Webhook rejected: invalid secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


async def _process(body: Dict[str, Any], orchestrator: SyncOrchestrator) -> Dict[str, Any]:
    profile, event = extract_webhook_profile(body)
    if profile is None:
        raise HTTPException(status_code=400, detail="Invalid webhook payload: missing profile")

    logger.info(f"📨 Webhook event: {event.value}")
    try:
        outcome = await orchestrator.sync_raw(profile, event)
    except ProfileValidationError as e:
        logger.warning(f"⚠️  Invalid fundraiser data: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid fundraiser data: {e}")
    except SyncError as e:
        logger.error(f"❌ Webhook processing error: {e}")
        raise HTTPException(
            status_code=500, detail=_error_detail("Webhook processing failed", e)
        )
    except Exception as e:
        logger.exception("❌ Unexpected webhook processing error")
        raise HTTPException(
            status_code=500, detail=_error_detail("Webhook processing failed", e)
        )

    return {
        "success": True,
        "message": "Fundraiser synced successfully",
        "fundraiser": outcome.profile_name,
        "campaign": outcome.campaign,
        "action": outcome.action.value,
    }


@router.get("/webhook/raisely")
async def verify_webhook():
    """Verification ping from Raisely when the webhook is registered."""
    return VERIFIED


@router.post("/webhook/raisely")
async def handle_raisely_webhook(
    request: Request,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Sync a profile.created / profile.updated event into Storyblok.

    Empty bodies and bodies without a ``data`` field are verification pings.
    """
    logger.info(f"📨 Received Raisely webhook: {request.headers.get('user-agent', 'Unknown')}")
    body = await _read_body(request)
    if not body or "data" not in body:
        return VERIFIED

    _check_secret(body)
    return await _process(body, orchestrator)


@router.post("/test/webhook", include_in_schema=False)
async def test_webhook(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Sync a built-in sample profile (development only)."""
    if not settings.is_development:
        raise HTTPException(status_code=404, detail="Route not found")
    return await _process(SAMPLE_WEBHOOK, orchestrator)
