"""
Webhook API endpoints: provider callbacks and the inbound chat channel
"""
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from origination.api.v1.dependencies import verify_chat_api_key
from origination.core.config import settings
from origination.core.dependencies import get_chat_dedup_cache, get_orchestrator, get_webhook_service
from origination.schemas.chat import ChatWebhookAck
from origination.schemas.webhooks import WebhookAck
from origination.services.orchestrator import ConversationOrchestrator
from origination.services.webhooks import (
    FUNDER, KYC, SIGNATURE_HEADERS, SIGNER, IdempotencyCache, WebhookService, parse_chat_event,
)
from origination.utils.exceptions import InvalidPayloadError
from origination.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


async def _provider_webhook(provider: str, request: Request, service: WebhookService) -> Dict[str, bool]:
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS[provider])
    try:
        return await service.handle(provider, raw_body, signature)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[red]Error processing {provider} webhook:[/red] {e!r}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")


@router.post("/webhooks/signer", response_model=WebhookAck)
async def signer_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """
    Electronic signature events (sign, auto_close, cancel, refusal, deadline).
    Signed with HMAC-SHA256 in the Content-Hmac header.
    """
    return await _provider_webhook(SIGNER, request, service)


@router.post("/webhooks/funder", response_model=WebhookAck)
async def funder_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """Funding operation status events"""
    return await _provider_webhook(FUNDER, request, service)


@router.post("/webhooks/kyc", response_model=WebhookAck)
async def kyc_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    """Identity verification decisions"""
    return await _provider_webhook(KYC, request, service)


@router.post("/webhooks/chat", response_model=ChatWebhookAck)
async def chat_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    _: Any = Depends(verify_chat_api_key),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    dedup: IdempotencyCache = Depends(get_chat_dedup_cache),
):
    """
    Inbound chat messages from the gateway.

    Answers right away; the conversation pipeline runs as a background task.
    """
    try:
        payload = await request.json()
    except ValueError as e:
        raise InvalidPayloadError() from e

    message = parse_chat_event(payload, settings.chat.max_inbound_length)
    if message is None:
        return ChatWebhookAck(status="ignored", accepted=False)

    if message.external_id and dedup.check_and_mark(f"chat:{message.external_id}"):
        logger.info(f"[dim]Duplicate chat message ignored: {message.external_id}[/dim]")
        return ChatWebhookAck(status="duplicate", accepted=False)

    background_tasks.add_task(orchestrator.handle, message)
    return ChatWebhookAck(status="received", accepted=True)
