"""
Admin configuration service.
Loads the persisted admin config, seeds it from the config file on first
start and keeps the current copy in memory.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from livetv.config import Settings, get_settings
from livetv.models.admin import (
    AdminConfig,
    ApiSource,
    CustomCategory,
    SiteConfig,
    SubscriptionConfig,
    UserConfig,
    UserEntry,
)
from livetv.models.live import LiveSourceConfig
from livetv.services.config_merge import config_self_check, load_file_config, refine_config
from livetv.services.store import KVStore

logger = logging.getLogger(__name__)


class ConfigService:
    """Owns the in-memory admin config."""

    def __init__(self, store: KVStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self._config: Optional[AdminConfig] = None

    def read_config_file(self) -> str:
        """Read the config file from disk, empty if missing."""
        path = Path(self.settings.config_file_path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read config file {path}: {e}")
            return ""

    async def build_initial_config(
        self,
        config_file: str,
        config_subscription: Optional[SubscriptionConfig] = None,
        source_subscription: Optional[SubscriptionConfig] = None,
        live_subscription: Optional[SubscriptionConfig] = None,
    ) -> AdminConfig:
        """Build a fresh admin config from a config file and the registered users."""
        file_config = load_file_config(config_file)

        try:
            usernames = await self.store.get_all_users()
        except aiosqlite.Error as e:
            logger.warning(f"Could not list users: {e}")
            usernames = []

        owner = self.settings.owner_username
        users = [UserEntry(username=owner, role="owner")]
        users += [UserEntry(username=name) for name in usernames if name != owner]

        return AdminConfig(
            config_file=config_file,
            config_subscription=config_subscription,
            source_subscription=source_subscription,
            live_subscription=live_subscription,
            site_config=SiteConfig(
                site_name=self.settings.app_name,
                site_interface_cache_time=file_config.cache_time or 7200,
            ),
            user_config=UserConfig(users=users),
            source_config=[
                ApiSource(key=key, name=site.name, api=site.api, detail=site.detail, from_="config")
                for key, site in file_config.api_site.items()
            ],
            custom_categories=[
                CustomCategory(
                    name=category.name or category.query,
                    type=category.type,
                    query=category.query,
                    from_="config",
                )
                for category in file_config.custom_category
            ],
            live_config=[
                LiveSourceConfig(key=key, name=live.name, url=live.url, ua=live.ua, epg=live.epg, from_="config")
                for key, live in file_config.lives.items()
            ],
        )

    async def get_config(self) -> AdminConfig:
        """
        Get the admin config.

        Falls back to a config built from the config file when the store
        has none (saved) or does not answer in time (not saved, not cached).
        """
        if self._config is not None:
            return self._config

        config = None
        timed_out = False
        needs_save = False
        try:
            config = await asyncio.wait_for(
                self.store.get_admin_config(), timeout=self.settings.store_timeout
            )
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("Store timed out loading admin config, using config file")

        if config is None:
            logger.info("No stored admin config, building from config file")
            config = await self.build_initial_config(self.read_config_file())
            needs_save = not timed_out

        config = config_self_check(config, self.settings.owner_username)
        logger.info(
            f"Admin config loaded: {len(config.source_config)} sources, "
            f"{len(config.live_config)} live sources, {len(config.custom_categories)} categories"
        )

        if timed_out:
            return config

        self._config = config
        if needs_save:
            await self.store.save_admin_config(config)
        return config

    async def save_config(self, config: AdminConfig):
        """Persist the admin config and make it current."""
        seen = set()
        live_config = []
        for live in config.live_config:
            if live.key in seen:
                logger.warning(f"Duplicate live source key removed: {live.key}")
                continue
            seen.add(live.key)
            live_config.append(live)
        config.live_config = live_config

        self._config = config
        await self.store.save_admin_config(config)

    async def reset_config(self) -> AdminConfig:
        """Rebuild the admin config from its stored config file."""
        origin = await self.store.get_admin_config() or AdminConfig()
        config = await self.build_initial_config(
            origin.config_file,
            config_subscription=origin.config_subscription,
            source_subscription=origin.source_subscription,
            live_subscription=origin.live_subscription,
        )
        await self.save_config(config)
        return config

    async def apply_config_file(self, config_file: Optional[str] = None) -> AdminConfig:
        """Merge the (optionally replaced) config file into the admin config."""
        config = await self.get_config()
        if config_file is not None:
            config.config_file = config_file

        refine_config(config)
        config_self_check(config, self.settings.owner_username)
        await self.save_config(config)
        return config

    def set_cached(self, config: AdminConfig):
        self._config = config

    def clear_cached(self):
        self._config = None
