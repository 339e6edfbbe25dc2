from functools import lru_cache

from .services.routing import ProviderRouter, get_router
from .storage.repo import TaskRepository
from .storage.retry import default_repository


@lru_cache(maxsize=1)
def get_repository() -> TaskRepository:
    return default_repository()


def get_provider_router() -> ProviderRouter:
    return get_router()
