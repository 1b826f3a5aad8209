# receipt_agent/api/endpoints.py
import json
import logging
import time
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from receipt_agent.config import settings
from receipt_agent.services.ai_agent import AIAnalysisAgent
from receipt_agent.services.database_service import DatabaseService
from receipt_agent.services.minio_client import MinioClient
from receipt_agent.services.webhook_handler import WebhookHandler, verify_subscription
from receipt_agent.services.whatsapp_client import WhatsAppClient

logger = logging.getLogger(__name__)

router = APIRouter()


# Process-wide service instances, created on first use
@lru_cache
def get_database_service() -> DatabaseService:
    return DatabaseService()


@lru_cache
def get_minio_client() -> MinioClient:
    return MinioClient()


@lru_cache
def get_webhook_handler() -> WebhookHandler:
    return WebhookHandler(
        whatsapp=WhatsAppClient(),
        db_service=get_database_service(),
        storage=get_minio_client(),
        ai_agent=AIAnalysisAgent(),
    )


@router.get("/webhook")
async def verify_webhook(
        hub_mode: Optional[str] = Query(None, alias="hub.mode"),
        hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
        hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """Webhook subscription handshake"""
    try:
        if verify_subscription(hub_mode, hub_verify_token, settings.whatsapp_verify_token):
            logger.info("Webhook verified")
            return PlainTextResponse(hub_challenge or "")

        logger.warning(f"Webhook verification failed (mode={hub_mode})")
        return JSONResponse(status_code=403, content={"error": "Verification failed"})

    except Exception as e:
        logger.exception(f"Fatal error during verification: {e}")
        return PlainTextResponse("Internal Server Error", status_code=500)


@router.post("/webhook")
async def receive_webhook(request: Request, handler: WebhookHandler = Depends(get_webhook_handler)):
    """Inbound WhatsApp events"""
    try:
        body = await request.body()
        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("Webhook body is not JSON")
            payload = None

        logger.debug(f"Incoming webhook body: {body.decode(errors='replace')}")
        return PlainTextResponse(await handler.handle_event(payload))

    except Exception as e:
        logger.exception(f"Fatal error handling webhook: {e}")
        return PlainTextResponse("Internal Server Error", status_code=500)


@router.get("/health")
async def health_check(db_service: DatabaseService = Depends(get_database_service)):
    """Dependency health"""
    services_status = {
        "minio": await check_minio_health(),
        "database": await db_service.check_connection(),
        "timestamp": time.time()
    }

    all_healthy = all(services_status.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content=services_status
    )


async def check_minio_health():
    try:
        return get_minio_client().check_connection()
    except Exception:
        return False
