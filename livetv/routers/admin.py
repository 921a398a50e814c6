"""
Admin maintenance endpoints.
"""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from livetv.dependencies import (
    get_channel_cache,
    get_config_service,
    get_http_client,
    get_refresher,
)
from livetv.services.channel_cache import ChannelCache
from livetv.services.config_service import ConfigService
from livetv.services.cron import run_live_cron
from livetv.services.live_refresher import LiveSourceRefresher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


class ConfigFileRequest(BaseModel):
    config_file: Optional[str] = None


@router.post("/live/refresh")
async def refresh_live_sources(cache: ChannelCache = Depends(get_channel_cache)):
    """
    Drop every cached channel list. Sources reload on next access.
    """
    cache.clear_all()
    logger.info("Live channel cache cleared")
    return {"success": True, "message": "Live channel cache cleared"}


@router.delete("/live/{key}/cache")
async def evict_live_source(key: str, cache: ChannelCache = Depends(get_channel_cache)):
    """
    Drop the cached channels of one live source.
    """
    cache.delete(key)
    return {"success": True, "key": key}


@router.post("/config/apply")
async def apply_config_file(
    body: Optional[ConfigFileRequest] = None,
    config_service: ConfigService = Depends(get_config_service),
):
    """
    Merge the config file into the admin config, optionally replacing it first.
    """
    config = await config_service.apply_config_file(body.config_file if body else None)
    return {
        "success": True,
        "sources": len(config.source_config),
        "categories": len(config.custom_categories),
        "live_sources": len(config.live_config),
    }


@router.post("/config/reset")
async def reset_config(config_service: ConfigService = Depends(get_config_service)):
    """
    Rebuild the admin config from the stored config file.
    """
    config = await config_service.reset_config()
    return {"success": True, "live_sources": len(config.live_config)}


@router.post("/cron")
async def trigger_cron(
    config_service: ConfigService = Depends(get_config_service),
    refresher: LiveSourceRefresher = Depends(get_refresher),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Run the scheduled live refresh now.
    """
    results = await run_live_cron(config_service, refresher, client)
    return {"status": "completed", **results}
