"""
Pytest configuration and fixtures for LiveTV backend tests.
"""
import sys
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from livetv.config import Settings
from livetv.services.store import KVStore


@pytest.fixture
def sample_m3u_content():
    """Sample M3U content for testing."""
    return """#EXTM3U url-tvg="http://epg.example/guide.xml"
#EXTINF:-1 tvg-id="cctv1" tvg-logo="http://x/logo.png" group-title="News",CCTV-1 综合
http://stream.example/cctv1.m3u8
"""


@pytest.fixture
def sample_epg_xml():
    """Sample XMLTV EPG content for testing."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <channel id="cctv1">
    <display-name>CCTV-1</display-name>
  </channel>
  <programme start="20251212010000 +0800" stop="20251212020000 +0800" channel="cctv1">
    <title lang="zh">远方的家2025-60</title>
    <desc>纪录片</desc>
  </programme>
  <programme start="20251212020000 +0800" stop="20251212030000 +0800" channel="cctv1">
    <title>新闻联播</title>
  </programme>
  <programme start="20251212010000 +0800" stop="20251212020000 +0800" channel="cctv2">
    <title>Business Hour</title>
  </programme>
</tv>
"""


@pytest.fixture
def make_playlist():
    """Factory building an M3U playlist with count channels."""
    def _make(count: int, prefix: str = "Channel") -> str:
        lines = ["#EXTM3U"]
        for i in range(count):
            lines.append(f'#EXTINF:-1 tvg-id="ch{i}" group-title="Test",{prefix} {i}')
            lines.append(f"http://stream.example/{i}.m3u8")
        return "\n".join(lines) + "\n"

    return _make


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment's data paths."""
    return Settings(
        base_url="http://portal.local",
        database_path=str(tmp_path / "livetv.db"),
        config_file_path=str(tmp_path / "config.json"),
        owner_username="admin",
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    """Initialized store on a temporary database."""
    store = KVStore(str(tmp_path / "test_store.db"))
    await store.initialize()
    return store


@pytest.fixture
def mock_client():
    """Factory for an AsyncClient whose requests are answered by a handler."""
    def _make(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
