from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from ..config import settings
from ..providers.base import StatusProviderAdapter
from ..providers.prediction import PredictionStatusProvider
from ..providers.workflow import WorkflowStatusProvider
from ..storage.schema import TaskRecord
from .gateway import AIGatewayClient
from .relocation import LocalObjectStorage, ResultRelocator
from .runninghub import RunningHubClient
from .sync import SyncOptions

PREDICTION = "prediction"
WORKFLOW = "workflow"


@dataclass(frozen=True)
class ModelInfo:
    provider: str
    provider_model: str
    description: str


MODELS: Dict[str, ModelInfo] = {
    "flux-pro": ModelInfo(PREDICTION, "black-forest-labs/flux-1.1-pro", "FLUX 1.1 Pro"),
    "flux-dev": ModelInfo(PREDICTION, "black-forest-labs/flux-dev", "FLUX Dev"),
    "flux-schnell": ModelInfo(PREDICTION, "black-forest-labs/flux-schnell", "FLUX Schnell"),
    "flux-general": ModelInfo(PREDICTION, "black-forest-labs/flux-dev", "FLUX General with LoRA support"),
    "flux-free-schnell": ModelInfo(PREDICTION, "black-forest-labs/flux-schnell", "FLUX Schnell, free tier"),
    "flux-krea-dev": ModelInfo(PREDICTION, "black-forest-labs/flux-krea-dev", "FLUX Krea Dev"),
    settings.workflow_model: ModelInfo(WORKFLOW, "clothing-tryon", "Clothing virtual try-on workflow"),
}


def get_model_info(model: str) -> Optional[ModelInfo]:
    return MODELS.get(model)


def is_workflow_model(model: str) -> bool:
    return model == settings.workflow_model


class ProviderRouter:
    """Chooses the provider adapter and sync options for a task's model tag."""

    def __init__(self, gateway: AIGatewayClient, runninghub: RunningHubClient, relocator: ResultRelocator):
        self.gateway = gateway
        self.runninghub = runninghub
        self.relocator = relocator

    def provider_for(self, model: str) -> StatusProviderAdapter:
        if is_workflow_model(model):
            return WorkflowStatusProvider(self.runninghub.get_task_status, self.runninghub.get_task_result)
        return PredictionStatusProvider(self.gateway.get_task_status)

    def sync_options_for(self, model: str) -> SyncOptions:
        # both providers host results on short-lived URLs, so results are always copied over
        return SyncOptions(fetch_result_on_success=True, on_result_fetched=self.relocator.hook())

    def partition_by_provider(self, tasks: Iterable[TaskRecord]) -> List[Tuple[str, List[TaskRecord]]]:
        """Split tasks into (provider name, tasks) groups, workflow tasks first."""
        tasks = list(tasks)
        workflow = [t for t in tasks if is_workflow_model(t.model)]
        prediction = [t for t in tasks if not is_workflow_model(t.model)]
        return [(name, group) for name, group in ((WORKFLOW, workflow), (PREDICTION, prediction)) if group]


@lru_cache(maxsize=1)
def get_router() -> ProviderRouter:
    return ProviderRouter(
        gateway=AIGatewayClient(),
        runninghub=RunningHubClient(),
        relocator=ResultRelocator(LocalObjectStorage()),
    )
