"""
Chat transport webhook.

The chat provider posts every channel event here. Events are verified,
parsed and dispatched on the in-process event bus after the response has
been sent, so slow subscribers never delay the provider's delivery.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Request
from pydantic import ValidationError

from api.dependencies import AppSettings, ChatClient, EventBus
from api.middleware.exception_handlers import AppException, WebhookSignatureError
from api.middleware.request_context import bind_webhook_event
from models.error_models import ErrorCode
from models.event_models import ChatEvent
from models.schemas.agents import WebhookAck
from utils.logger import logger

SIGNATURE_HEADER = "X-Signature"

router = APIRouter()


@router.post(
    "/webhook",
    response_model=WebhookAck,
    summary="Chat webhook",
    description="Receives chat transport events (message.new, ai_indicator.stop, ...).",
    responses={
        401: {"description": "Signature mismatch"},
        422: {"description": "Payload is not a chat event"},
    },
)
async def receive_event(
    request: Request,
    background_tasks: BackgroundTasks,
    chat_client: ChatClient,
    event_bus: EventBus,
    settings: AppSettings,
) -> WebhookAck:
    body = await request.body()

    if settings.verify_webhook_signatures:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature or not chat_client.verify_webhook(body, signature):
            raise WebhookSignatureError()

    try:
        event = ChatEvent.model_validate_json(body)
    except ValidationError as e:
        raise AppException(
            code=ErrorCode.VALIDATION_INVALID_FORMAT,
            message="Invalid webhook payload",
            reason=str(e.errors()[0]["msg"]) if e.errors() else None,
        ) from e

    bind_webhook_event(event.type, event.channel_cid)
    logger.debug(f"Webhook event {event.type}", event_type=event.type, cid=event.channel_cid)
    background_tasks.add_task(event_bus.emit, event)
    return WebhookAck()
