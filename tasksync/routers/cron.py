from fastapi import APIRouter, Depends
from ..auth import require_cron_secret
from ..deps import get_provider_router, get_repository
from ..models import SweepResponse
from ..services.routing import ProviderRouter
from ..services.sweep import sweep
from ..storage.repo import TaskRepository

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/task-sync", response_model=SweepResponse)
async def task_sync(repo: TaskRepository = Depends(get_repository),
                    providers: ProviderRouter = Depends(get_provider_router),
                    _=Depends(require_cron_secret)):
    summary = await sweep(repo, providers)
    return SweepResponse(results=summary)
