from __future__ import annotations

from fastapi import APIRouter, Depends

from parley import __version__
from parley.api.deps import get_settings, get_store
from parley.api.schemas import HealthResponse
from parley.config.settings import Settings
from parley.domain.errors import StoreError
from parley.store.base import Store
from parley.utils.logger import api_logger

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    settings: Settings = Depends(get_settings),  # noqa: B008
    store: Store = Depends(get_store),  # noqa: B008
):
    config_valid, config_errors = settings.validation_status()
    store_status = "ok"
    try:
        await store.ping()
    except StoreError as e:
        api_logger.warning("Health check: store unavailable", error=str(e))
        store_status = "unavailable"
    return HealthResponse(
        version=__version__,
        config_valid=config_valid,
        config_errors=config_errors,
        store=store_status,
    )
