import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from ..deps import get_provider_router, get_repository
from ..models import WebhookAck, WebhookPayload
from ..services.routing import ProviderRouter
from ..services.webhooks import handle_workflow_notification
from ..storage.repo import TaskRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

INVALID_PAYLOAD_MSG = "Invalid payload, but webhook received"


@router.post("/runninghub", response_model=WebhookAck)
async def runninghub_webhook(request: Request,
                             repo: TaskRepository = Depends(get_repository),
                             providers: ProviderRouter = Depends(get_provider_router)):
    """Always answers 200 so the provider does not keep redelivering."""
    try:
        payload = WebhookPayload.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("Unreadable webhook body: %s", e)
        return WebhookAck(message=INVALID_PAYLOAD_MSG)

    ack = await handle_workflow_notification(
        payload.external_id, payload.raw_status, payload.error_detail, repo, providers
    )
    return WebhookAck(**ack)
