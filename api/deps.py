"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Query, Request

from api.config import Settings, get_settings
from api.exceptions import ConfigurationError
from worker.audit.generator import AuditProvider, ProviderConfig, ProviderType, get_provider
from worker.audit.history import HistoryStore

__all__ = ["SettingsDep", "ProviderDep", "HistoryDep", "PaginationDep", "PaginationParams"]


# Settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_audit_provider(settings: SettingsDep) -> AuditProvider:
    """Get the configured audit provider."""
    if not settings.generator_enabled:
        raise ConfigurationError(
            "OpenAI API key not configured. Set OPENAI_API_KEY environment variable."
        )
    return get_provider(ProviderType.OPENAI, ProviderConfig.from_settings(settings))


ProviderDep = Annotated[AuditProvider, Depends(get_audit_provider)]


def get_history(request: Request) -> HistoryStore:
    """Get the history store created at application startup."""
    store: HistoryStore = request.app.state.history_store
    return store


HistoryDep = Annotated[HistoryStore, Depends(get_history)]


class PaginationParams:
    """Pagination query parameters."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-indexed)"),
        per_page: int = Query(20, ge=1, le=100, description="Items per page"),
    ):
        self.page = page
        self.per_page = per_page
        self.offset = (page - 1) * per_page
        self.limit = per_page


PaginationDep = Annotated[PaginationParams, Depends()]
