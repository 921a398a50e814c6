"""
Tests for the admin config service.
"""
import asyncio
import json
from pathlib import Path

import base58
import httpx
import pytest

from livetv.models.admin import AdminConfig, SubscriptionConfig
from livetv.models.live import LiveSourceConfig
from livetv.services.channel_cache import ChannelCache
from livetv.services.config_service import ConfigService
from livetv.services.cron import run_live_cron
from livetv.services.live_refresher import LiveSourceRefresher
from livetv.services.store import ADMIN_CONFIG_KEY, KVStore, m3u_content_key


CONFIG_FILE = {
    "cache_time": 1800,
    "api_site": {"dy": {"name": "Movies", "api": "http://dy.example/api"}},
    "custom_category": [{"type": "tv", "query": "热门"}],
    "lives": {"tv": {"name": "TV", "url": "http://tv.example/list.m3u"}},
}


class SlowStore(KVStore):
    """Store that never answers admin config reads in time."""

    async def get_admin_config(self):
        await asyncio.sleep(5)
        return None


@pytest.fixture
def config_file(settings):
    path = Path(settings.config_file_path)
    path.write_text(json.dumps(CONFIG_FILE, ensure_ascii=False), encoding="utf-8")
    return path


class TestGetConfig:
    """Loading the admin config."""

    @pytest.mark.asyncio
    async def test_first_start_builds_from_config_file(self, store, settings, config_file):
        await store.add_user("bob")
        await store.add_user("admin")
        service = ConfigService(store, settings)

        config = await service.get_config()

        assert [(u.username, u.role) for u in config.user_config.users] == [("admin", "owner"), ("bob", "user")]
        assert config.site_config.site_interface_cache_time == 1800
        assert [(s.key, s.from_) for s in config.source_config] == [("dy", "config")]
        assert config.custom_categories[0].name == "热门"
        assert [(live.key, live.from_) for live in config.live_config] == [("tv", "config")]
        assert config.config_file == config_file.read_text(encoding="utf-8")

        saved = await store.get_admin_config()
        assert saved is not None
        assert [live.key for live in saved.live_config] == ["tv"]

    @pytest.mark.asyncio
    async def test_config_is_cached(self, store, settings, config_file):
        service = ConfigService(store, settings)

        first = await service.get_config()
        await store.delete(ADMIN_CONFIG_KEY)

        assert await service.get_config() is first

        service.clear_cached()
        assert await service.get_config() is not first

    @pytest.mark.asyncio
    async def test_stored_config_is_repaired(self, store, settings):
        await store.save_admin_config(AdminConfig(live_config=[
            LiveSourceConfig(key="a", url="http://a/list.m3u"),
            LiveSourceConfig(key="a", url="http://dup/list.m3u"),
        ]))
        service = ConfigService(store, settings)

        config = await service.get_config()

        assert [live.url for live in config.live_config] == ["http://a/list.m3u"]
        assert config.user_config.users[0].username == "admin"

    @pytest.mark.asyncio
    async def test_missing_config_file(self, store, settings):
        config = await ConfigService(store, settings).get_config()

        assert config.live_config == []
        assert config.source_config == []
        assert config.site_config.site_interface_cache_time == 7200

    @pytest.mark.asyncio
    async def test_store_timeout_falls_back_without_saving(self, tmp_path, settings, config_file):
        slow = SlowStore(str(tmp_path / "slow.db"))
        await slow.initialize()
        settings.store_timeout = 0.05
        service = ConfigService(slow, settings)

        config = await service.get_config()

        assert [live.key for live in config.live_config] == ["tv"]
        assert await slow.get(ADMIN_CONFIG_KEY) is None

        service.store = KVStore(str(tmp_path / "slow.db"))
        assert await service.get_config() is not config


class TestSaveAndApply:
    """Persisting and re-applying config."""

    @pytest.mark.asyncio
    async def test_save_drops_duplicate_live_keys(self, store, settings):
        service = ConfigService(store, settings)
        config = AdminConfig(live_config=[
            LiveSourceConfig(key="a", name="first"),
            LiveSourceConfig(key="a", name="second"),
        ])

        await service.save_config(config)

        saved = await store.get_admin_config()
        assert [live.name for live in saved.live_config] == ["first"]
        assert await service.get_config() is config

    @pytest.mark.asyncio
    async def test_apply_new_config_file(self, store, settings, config_file):
        service = ConfigService(store, settings)
        config = await service.get_config()
        config.live_config[0].disabled = True

        config = await service.apply_config_file(json.dumps({
            "lives": {
                "tv": {"name": "TV Renamed", "url": "http://tv.example/new.m3u"},
                "radio": {"name": "Radio", "url": "http://radio.example/list.m3u"},
            },
        }))

        tv, radio = config.live_config
        assert (tv.name, tv.url, tv.disabled) == ("TV Renamed", "http://tv.example/new.m3u", True)
        assert radio.from_ == "config"
        assert [s.from_ for s in config.source_config] == ["custom"]

        saved = await store.get_admin_config()
        assert [live.key for live in saved.live_config] == ["tv", "radio"]

    @pytest.mark.asyncio
    async def test_reset_rebuilds_from_stored_file(self, store, settings):
        subscription = SubscriptionConfig(url="http://sub.example/lives.json", auto_update=True)
        await store.save_admin_config(AdminConfig(
            config_file="radio=http://radio.example/list.m3u",
            live_subscription=subscription,
            config_subscription=SubscriptionConfig(url="http://sub.example/config", auto_update=True),
            live_config=[LiveSourceConfig(key="custom", url="http://custom/list.m3u")],
        ))
        service = ConfigService(store, settings)

        config = await service.reset_config()

        assert [live.key for live in config.live_config] == ["radio"]
        assert config.live_subscription.url == "http://sub.example/lives.json"
        assert config.config_subscription.url == "http://sub.example/config"
        assert config.user_config.users[0].role == "owner"
        assert await service.get_config() is config


class TestLiveCron:
    """Scheduled refresh end to end."""

    @pytest.mark.asyncio
    async def test_cron_pulls_subscriptions_before_refreshing(self, store, settings, mock_client, make_playlist):
        blob = json.dumps({"lives": {"radio": {"name": "Radio", "url": "/api/live/m3u?key=radio"}}})
        await store.set(m3u_content_key("radio"), make_playlist(2))

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/config":
                return httpx.Response(200, text=base58.b58encode(blob.encode("utf-8")).decode("ascii"))
            if request.url.path == "/sources":
                return httpx.Response(200, text="Movies=http://movies.example/api.php\n")
            return httpx.Response(404)

        service = ConfigService(store, settings)
        service.set_cached(AdminConfig(
            config_subscription=SubscriptionConfig(url="http://sub.example/config", auto_update=True),
            source_subscription=SubscriptionConfig(url="http://sub.example/sources", auto_update=True),
        ))

        async with mock_client(handler) as client:
            refresher = LiveSourceRefresher(ChannelCache(store), store, settings, client)
            results = await run_live_cron(service, refresher, client)

        assert results == {
            "config_updated": True,
            "sources_added": 1,
            "subscription_added": 0,
            "live_sources": {"radio": 2},
        }

        saved = await store.get_admin_config()
        assert saved.config_file == blob
        assert saved.config_subscription.last_check != ""
        assert [(live.key, live.from_, live.channel_number) for live in saved.live_config] == [
            ("radio", "config", 2),
        ]
        assert [s.key for s in saved.source_config] == ["movies"]
