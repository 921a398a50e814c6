"""
Tests for config file and video source subscriptions.
"""
import json

import base58
import httpx
import pytest

from livetv.models.admin import AdminConfig, ApiSource, SubscriptionConfig
from livetv.models.live import LiveSourceConfig
from livetv.services.config_subscription import (
    decode_config_blob,
    parse_source_subscription,
    refresh_config_subscription,
    refresh_source_subscription,
)

CONFIG_BLOB = {
    "api_site": {"dy": {"name": "Movies", "api": "http://dy.example/api"}},
    "lives": {"tv": {"name": "TV", "url": "http://tv.example/list.m3u"}},
}


def _subscribed(**kwargs) -> AdminConfig:
    return AdminConfig(
        config_subscription=SubscriptionConfig(url="http://sub.example/config", auto_update=True),
        **kwargs,
    )


class TestDecodeConfigBlob:
    """Format detection for downloaded config blobs."""

    def test_plain_json(self):
        text = json.dumps(CONFIG_BLOB)
        assert decode_config_blob(text) == text

    def test_base58_json(self):
        text = json.dumps(CONFIG_BLOB, ensure_ascii=False)
        encoded = base58.b58encode(text.encode("utf-8")).decode("ascii")

        assert decode_config_blob(encoded) == text

    def test_m3u_and_text(self):
        m3u = "#EXTM3U\n#EXTINF:-1,TV\nhttp://tv.example/list.m3u\n"
        txt = "radio=http://radio.example/list.m3u"

        assert decode_config_blob(m3u) == m3u
        assert decode_config_blob(txt) == txt

    def test_unrecognized(self):
        with pytest.raises(ValueError):
            decode_config_blob("plainword")


class TestRefreshConfigSubscription:
    """Pulling the config file from a subscription."""

    @pytest.mark.asyncio
    async def test_replaces_config_file_and_merges(self, mock_client):
        text = json.dumps(CONFIG_BLOB)
        encoded = base58.b58encode(text.encode("utf-8")).decode("ascii")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=encoded)

        config = _subscribed(live_config=[
            LiveSourceConfig(key="tv", url="http://old/list.m3u", disabled=True, from_="custom"),
        ])

        async with mock_client(handler) as client:
            assert await refresh_config_subscription(config, "admin", client) is True

        assert config.config_file == text
        assert config.config_subscription.last_check != ""
        assert [(s.key, s.from_) for s in config.source_config] == [("dy", "config")]
        tv = config.live_config[0]
        assert (tv.url, tv.from_, tv.disabled) == ("http://tv.example/list.m3u", "config", True)
        assert config.user_config.users[0].username == "admin"

    @pytest.mark.asyncio
    async def test_skipped_without_auto_update(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("config subscription should not be fetched")

        config = AdminConfig(
            config_file="keep=http://keep/list.m3u",
            config_subscription=SubscriptionConfig(url="http://sub.example/config", auto_update=False),
        )

        async with mock_client(handler) as client:
            assert await refresh_config_subscription(config, "admin", client) is False

        assert config.config_file == "keep=http://keep/list.m3u"

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_config(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        config = _subscribed(config_file="keep=http://keep/list.m3u")

        async with mock_client(handler) as client:
            assert await refresh_config_subscription(config, "admin", client) is False

        assert config.config_file == "keep=http://keep/list.m3u"
        assert config.config_subscription.last_check == ""

    @pytest.mark.asyncio
    async def test_unrecognized_blob_keeps_config(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="plainword")

        config = _subscribed(config_file="keep=http://keep/list.m3u")

        async with mock_client(handler) as client:
            assert await refresh_config_subscription(config, "admin", client) is False

        assert config.config_file == "keep=http://keep/list.m3u"

    @pytest.mark.asyncio
    async def test_malformed_url_is_handled(self):
        config = AdminConfig(
            config_subscription=SubscriptionConfig(url="http://[::1/config", auto_update=True),
        )

        async with httpx.AsyncClient() as client:
            assert await refresh_config_subscription(config, "admin", client) is False


class TestSourceSubscription:
    """Video source lists."""

    def test_parse_formats(self):
        from_list = parse_source_subscription(json.dumps([
            {"key": "a", "name": "A", "api": "http://a/api"},
            {"url": "http://b/api"},
        ]))
        from_sites = parse_source_subscription(json.dumps({"api_site": {"dy": {"api": "http://dy/api"}}}))
        from_m3u = parse_source_subscription("#EXTINF:-1,Movie Site\nhttp://movie/api\n")
        from_text = parse_source_subscription("# list\nMovie Site=http://movie/api.php?ac=list\n")

        assert [(s.key, s.name, s.api) for s in from_list] == [
            ("a", "A", "http://a/api"),
            ("source_2", "视频源2", "http://b/api"),
        ]
        assert [(s.key, s.name) for s in from_sites] == [("dy", "dy")]
        assert [(s.key, s.api) for s in from_m3u] == [("movie_site", "http://movie/api")]
        assert [(s.key, s.api) for s in from_text] == [("movie_site", "http://movie/api.php?ac=list")]
        assert all(s.from_ == "config" for s in from_list + from_sites + from_m3u + from_text)

    @pytest.mark.asyncio
    async def test_appends_only_new_keys(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="dy=http://new/api\nextra=http://extra/api\n")

        config = AdminConfig(
            source_subscription=SubscriptionConfig(url="http://sub.example/sources", auto_update=True),
            source_config=[ApiSource(key="dy", api="http://old/api", from_="custom")],
        )

        async with mock_client(handler) as client:
            assert await refresh_source_subscription(config, client) == 1

        assert [(s.key, s.api) for s in config.source_config] == [
            ("dy", "http://old/api"),
            ("extra", "http://extra/api"),
        ]
        assert config.source_subscription.last_check != ""
