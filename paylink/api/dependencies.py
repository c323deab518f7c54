"""FastAPI dependencies shared by the routers."""

from functools import lru_cache

from paylink.config import Settings, settings
from paylink.database import get_session
from paylink.providers.registry import ProviderRegistry
from paylink.queue.broker import get_broker

__all__ = ["get_settings", "get_registry", "get_session", "get_broker"]


def get_settings() -> Settings:
    return settings


@lru_cache
def get_registry() -> ProviderRegistry:
    return ProviderRegistry(settings)
