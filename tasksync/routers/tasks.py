import asyncio
import logging
import time
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from ..auth import require_token
from ..config import settings
from ..deps import get_provider_router, get_repository
from ..errors import ProviderUnavailable, TaskSyncError
from ..models import NewRequest, TaskResponse, StatusResponse
from ..services.routing import ProviderRouter, get_model_info, is_workflow_model
from ..services.sync import sync_one
from ..storage.repo import TaskRepository
from ..storage.schema import NewTask, TaskRecord, TaskStatus, TaskUpdate

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_QUERY_FAILED = "Failed to query task status"


@router.post("/new", response_model=TaskResponse)
async def new_task(payload: NewRequest,
                   x_user_id: str | None = Header(default=None),
                   repo: TaskRepository = Depends(get_repository),
                   providers: ProviderRouter = Depends(get_provider_router),
                   _=Depends(require_token)):
    info = get_model_info(payload.model)
    if info is None:
        raise HTTPException(status_code=400, detail=f"Unsupported model: {payload.model}")

    workflow = is_workflow_model(payload.model)
    if workflow:
        if not payload.user_photo_url:
            raise HTTPException(status_code=400, detail="user_photo_url is required for this model")
        if not payload.top_clothes_url and not payload.bottom_clothes_url:
            raise HTTPException(status_code=400, detail="top_clothes_url or bottom_clothes_url is required")
    elif not payload.prompt:
        raise HTTPException(status_code=400, detail="prompt is required for this model")

    rec = await repo.create(NewTask(
        model=payload.model,
        user_id=x_user_id,
        input_url=payload.user_photo_url if workflow else payload.input_image_url,
    ))

    try:
        if workflow:
            external_id = await providers.runninghub.create_tryon_task(
                payload.user_photo_url,
                payload.top_clothes_url,
                payload.bottom_clothes_url,
                webhook_url=settings.runninghub_webhook_url,
            )
        else:
            external_id = await providers.gateway.create_prediction(
                info.provider_model,
                payload.prompt,
                aspect_ratio=payload.aspect_ratio,
                input_image_url=payload.input_image_url,
                user_id=x_user_id,
            )
    except ProviderUnavailable as e:
        logger.warning("Submission of task %s failed: %s", rec.id, e)
        await repo.delete(rec.id)
        raise HTTPException(status_code=502, detail=str(e))

    await repo.update(rec.id, TaskUpdate(external_task_id=external_id))
    logger.info("Task %s submitted as %s", rec.id, external_id)
    return TaskResponse(taskid=rec.id)


def _status_response(rec: TaskRecord, error: str | None = None) -> StatusResponse:
    return StatusResponse(
        id=rec.id,
        status=rec.status.display,
        model=rec.model,
        output_url=rec.output_url,
        error=rec.error_msg or error,
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(task_id: int = Query(..., alias="task_id"),
                     longpoll: bool = False,
                     x_user_id: str | None = Header(default=None),
                     repo: TaskRepository = Depends(get_repository),
                     providers: ProviderRouter = Depends(get_provider_router),
                     _=Depends(require_token)):
    rec = await repo.get(task_id)
    if not rec or (x_user_id and rec.user_id != x_user_id):
        raise HTTPException(status_code=404, detail="Unknown task")

    deadline = time.monotonic() + settings.max_status_longpoll_seconds
    while True:
        if rec.status is not TaskStatus.PROCESSING or not rec.is_dispatched:
            return _status_response(rec)
        try:
            await sync_one(rec, providers.provider_for(rec.model), repo, providers.sync_options_for(rec.model))
        except TaskSyncError as e:
            logger.warning("Status sync of task %s failed: %s", rec.id, e)
            return _status_response(rec, STATUS_QUERY_FAILED)
        rec = await repo.get(task_id) or rec
        if not longpoll or rec.status is not TaskStatus.PROCESSING or time.monotonic() >= deadline:
            return _status_response(rec)
        await asyncio.sleep(settings.status_poll_interval_seconds)
