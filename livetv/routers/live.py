"""
Live channel API endpoints.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from livetv.dependencies import get_config_service, get_refresher, get_store
from livetv.services.config_service import ConfigService
from livetv.services.errors import LiveSourceError, LiveSourceNotFoundError
from livetv.services.live_refresher import LiveSourceRefresher
from livetv.services.store import KVStore, m3u_content_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/live", tags=["live"])


@router.get("/sources")
async def list_live_sources(config_service: ConfigService = Depends(get_config_service)):
    """
    List enabled live sources.
    """
    config = await config_service.get_config()
    sources = [live for live in config.live_config if not live.disabled]
    return {
        "success": True,
        "data": [live.model_dump(by_alias=True) for live in sources],
    }


@router.get("/channels")
async def get_live_channels(
    source: Optional[str] = Query(None, description="Live source key"),
    config_service: ConfigService = Depends(get_config_service),
    refresher: LiveSourceRefresher = Depends(get_refresher),
):
    """
    Get the channels of a live source, with saved user edits applied.
    """
    if not source:
        raise HTTPException(status_code=400, detail="Missing live source parameter")

    config = await config_service.get_config()
    try:
        channels = await refresher.get_live_channels(config, source)
    except LiveSourceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LiveSourceError as e:
        logger.error(f"Failed to load channels for {source}: {e}")
        raise HTTPException(status_code=500, detail=f"Cannot load channel data: {e}")

    if channels is None:
        raise HTTPException(status_code=404, detail="Live source has no channels")

    return {
        "success": True,
        "data": [ch.model_dump(by_alias=True, exclude_none=True) for ch in channels.channels],
    }


@router.get("/epg")
async def get_channel_epg(
    source: str = Query(..., description="Live source key"),
    tvg_id: str = Query(..., alias="tvgId", description="Channel tvg-id"),
    config_service: ConfigService = Depends(get_config_service),
    refresher: LiveSourceRefresher = Depends(get_refresher),
):
    """
    Get guide entries for one channel. Empty until the guide has loaded.
    """
    config = await config_service.get_config()
    try:
        channels = await refresher.get_live_channels(config, source)
    except LiveSourceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except LiveSourceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    programmes = channels.epgs.get(tvg_id, []) if channels else []
    return {
        "success": True,
        "data": {
            "tvgId": tvg_id,
            "source": source,
            "epgUrl": channels.epg_url if channels else "",
            "programmes": [p.model_dump() for p in programmes],
        },
    }


@router.get("/m3u")
async def get_stored_m3u(
    key: Optional[str] = Query(None, description="Stored playlist key"),
    store: KVStore = Depends(get_store),
):
    """
    Serve a playlist stored in the durable store.
    """
    if not key:
        raise HTTPException(status_code=400, detail="Missing key parameter")

    content = await store.get(m3u_content_key(key))
    if not content:
        raise HTTPException(status_code=404, detail="M3U content not found")

    return Response(
        content=content,
        media_type="application/vnd.apple.mpegurl",
        headers={"Cache-Control": "public, max-age=3600"},
    )
