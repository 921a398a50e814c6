"""
In-process channel cache.

One entry per live source key, replaced wholesale on every successful
refresh. Reads overlay the user-edited channel list from the durable
store so saved edits show up without invalidating anything.
"""
import asyncio
import logging
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from livetv.models.live import Channel, LiveChannels, ProgrammeEntry
from livetv.services.store import KVStore

logger = logging.getLogger(__name__)

_channel_list = TypeAdapter(list[Channel])


class ChannelCache:
    """Process-scoped map of live source key to parsed channels."""

    def __init__(self, store: KVStore):
        self.store = store
        self._entries: dict[str, LiveChannels] = {}
        self._generations: dict[str, int] = {}
        self._epg_tasks: dict[str, asyncio.Task] = {}
        self._next_generation = 0

    def init(self):
        """Start from an empty cache."""
        self.clear()

    def clear(self):
        self.clear_all()
        self._generations.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def peek(self, key: str) -> Optional[LiveChannels]:
        """Cached entry, without re-reading the user overlay."""
        return self._entries.get(key)

    def put(self, key: str, entry: LiveChannels) -> int:
        """Replace the entry for key and return its new generation."""
        self._next_generation += 1
        self._entries[key] = entry
        self._generations[key] = self._next_generation
        return self._next_generation

    def generation(self, key: str) -> Optional[int]:
        return self._generations.get(key)

    async def get(self, key: str) -> Optional[LiveChannels]:
        """
        Get the cached entry with the saved user edits applied.

        The overlay is re-read from the store on every hit; the overlaid
        copy replaces the cached entry, so guide data attaches to it.
        """
        if key not in self._entries:
            return None

        saved = await self.store.get_channel_overlay(key)

        # Re-read after the await, a refresh may have replaced the entry
        entry = self._entries.get(key)
        if entry is None or saved is None:
            return entry

        try:
            channels = _channel_list.validate_python(saved)
        except ValidationError as e:
            logger.error(f"Saved channels for {key} do not match the channel schema: {e}")
            return entry

        entry = entry.model_copy(update={"channels": channels})
        entry.channel_number = entry.enabled_count()
        self._entries[key] = entry
        return entry

    def attach_epgs(self, key: str, generation: int, epgs: dict[str, list[ProgrammeEntry]]) -> bool:
        """Store guide data if the entry is still the one the guide was fetched for."""
        entry = self._entries.get(key)
        if entry is None or self._generations.get(key) != generation:
            logger.debug(f"Dropping stale EPG result for {key}")
            return False
        entry.epgs = epgs
        return True

    def track_epg_task(self, key: str, task: asyncio.Task):
        """Register the background guide task for key, cancelling any previous one."""
        previous = self._epg_tasks.get(key)
        if previous is not None and not previous.done():
            previous.cancel()
        self._epg_tasks[key] = task

        def _forget(done: asyncio.Task):
            if self._epg_tasks.get(key) is done:
                del self._epg_tasks[key]

        task.add_done_callback(_forget)

    def epg_task(self, key: str) -> Optional[asyncio.Task]:
        return self._epg_tasks.get(key)

    def _cancel_epg_task(self, key: str):
        task = self._epg_tasks.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    def delete(self, key: str):
        """Evict one source, used when it is removed."""
        self._entries.pop(key, None)
        self._cancel_epg_task(key)

    def clear_all(self):
        """Evict every source."""
        for key in list(self._epg_tasks):
            self._cancel_epg_task(key)
        self._entries.clear()
