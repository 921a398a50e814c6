"""
Live source refresh service.
Fetches M3U playlists, parses them into the channel cache and loads
programme guides in the background.
"""
import asyncio
import logging
from typing import Optional

import httpx

from livetv.config import Settings, get_settings
from livetv.models.admin import AdminConfig
from livetv.models.live import LiveChannels, LiveSourceConfig
from livetv.services.channel_cache import ChannelCache
from livetv.services.epg_parser import parse_epg
from livetv.services.errors import (
    LiveSourceNotFoundError,
    M3UContentMissingError,
    M3UFetchError,
)
from livetv.services.m3u_parser import parse_m3u
from livetv.services.store import KVStore, m3u_content_key

logger = logging.getLogger(__name__)

# Playlist kept in the durable store and served by /api/live/m3u
STORED_M3U_MARKER = "/api/live/m3u?key="


class LiveSourceRefresher:
    """Keeps the channel cache in sync with the configured live sources."""

    def __init__(
        self,
        cache: ChannelCache,
        store: KVStore,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.cache = cache
        self.store = store
        self.settings = settings or get_settings()
        self.client = client

    def user_agent(self, live: LiveSourceConfig) -> str:
        return live.ua or self.settings.default_user_agent

    async def refresh(self, live: LiveSourceConfig) -> int:
        """
        Refresh one live source.

        Returns the parsed channel count. When the playlist cannot be
        downloaded but the source was cached before, the cached count is
        returned and the cache is left as it was.

        Raises:
            M3UFetchError: download failed and nothing is cached
            M3UContentMissingError: stored playlist pointer has no content
        """
        try:
            content = await self._load_playlist(live)
        except M3UFetchError as e:
            cached = self.cache.peek(live.key)
            if cached is not None:
                logger.warning(f"Refresh of live source {live.key} failed, keeping cached channels: {e}")
                return cached.channel_number
            raise

        result = parse_m3u(live.key, content)
        epg_url = live.epg or result.tvg_url

        generation = self.cache.put(live.key, LiveChannels(
            channel_number=len(result.channels),
            channels=result.channels,
            epg_url=epg_url,
            epgs={},
        ))

        if epg_url:
            tvg_ids = [ch.tvg_id for ch in result.channels if ch.tvg_id]
            task = asyncio.create_task(
                self._load_epg(live.key, generation, epg_url, self.user_agent(live), tvg_ids)
            )
            self.cache.track_epg_task(live.key, task)

        logger.info(f"Refreshed live source {live.key}: {len(result.channels)} channels")
        return len(result.channels)

    async def _load_playlist(self, live: LiveSourceConfig) -> str:
        url = live.url

        if STORED_M3U_MARKER in url:
            stored_key = url.split("key=", 1)[1]
            content = await self.store.get(m3u_content_key(stored_key))
            if not content:
                raise M3UContentMissingError(live.key, f"No stored M3U content for {stored_key}")
            return content

        if url.startswith("/") and not url.startswith("//"):
            url = f"{self.settings.base_url}{url}"

        return await self._fetch(live.key, url, self.user_agent(live))

    async def _fetch(self, key: str, url: str, user_agent: str) -> str:
        headers = {"User-Agent": user_agent}
        timeout = self.settings.m3u_fetch_timeout

        try:
            if self.client is not None:
                response = await self.client.get(url, headers=headers, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                    response = await client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise M3UFetchError(key, f"Cannot reach M3U file {url}: {e!r}") from e

        if not response.is_success:
            raise M3UFetchError(key, f"HTTP {response.status_code}: {response.reason_phrase}")

        return response.text

    async def _load_epg(self, key: str, generation: int, epg_url: str, user_agent: str, tvg_ids: list[str]):
        try:
            epgs = await parse_epg(epg_url, user_agent, tvg_ids, client=self.client)
            if self.cache.attach_epgs(key, generation, epgs):
                logger.info(f"Loaded EPG for live source {key}: {len(epgs)} channels")
        except Exception as e:
            logger.warning(f"EPG load failed for live source {key}: {e}")

    async def refresh_all(self, config: AdminConfig) -> dict[str, int]:
        """
        Refresh every enabled live source concurrently.

        One failing source does not affect the others; it is recorded with
        zero channels. Channel counts are written back into the config.
        """
        sources = [live for live in config.live_config if not live.disabled]
        results = await asyncio.gather(
            *(self.refresh(live) for live in sources),
            return_exceptions=True,
        )

        counts = {}
        for live, result in zip(sources, results):
            if isinstance(result, BaseException):
                if isinstance(result, M3UFetchError):
                    logger.warning(f"Live source {live.name or live.key} unavailable: {result}")
                else:
                    logger.error(f"Failed to refresh live source {live.name or live.key}: {result!r}")
                live.channel_number = 0
            else:
                live.channel_number = result
            counts[live.key] = live.channel_number

        return counts

    async def get_live_channels(self, config: AdminConfig, key: str) -> Optional[LiveChannels]:
        """
        Channels for a live source, refreshing it first if it was never loaded.

        Returns None when the source has no channels.
        """
        if key not in self.cache:
            live = next((source for source in config.live_config if source.key == key), None)
            if live is None:
                raise LiveSourceNotFoundError(key, f"Live source '{key}' does not exist")

            if await self.refresh(live) == 0:
                return None

        return await self.cache.get(key)
