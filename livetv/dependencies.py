"""FastAPI dependencies: services stored on app.state, provided via Depends()."""
import httpx
from fastapi import Request

from livetv.services.channel_cache import ChannelCache
from livetv.services.config_service import ConfigService
from livetv.services.live_refresher import LiveSourceRefresher
from livetv.services.store import KVStore


def get_store(request: Request) -> KVStore:
    return request.app.state.store


def get_channel_cache(request: Request) -> ChannelCache:
    return request.app.state.channel_cache


def get_config_service(request: Request) -> ConfigService:
    return request.app.state.config_service


def get_refresher(request: Request) -> LiveSourceRefresher:
    return request.app.state.refresher


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
