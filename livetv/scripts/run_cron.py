"""
Live Refresh Script.
Runs the scheduled live refresh once, e.g. from a system cron entry.
"""
import asyncio
import sys
from pathlib import Path

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from livetv.services.channel_cache import ChannelCache
from livetv.services.config_service import ConfigService
from livetv.services.cron import run_live_cron
from livetv.services.live_refresher import LiveSourceRefresher
from livetv.services.store import get_store


async def run_once():
    """Refresh every live source and print the channel counts."""
    store = await get_store()
    cache = ChannelCache(store)
    config_service = ConfigService(store)
    refresher = LiveSourceRefresher(cache, store)

    results = await run_live_cron(config_service, refresher)

    # Guide downloads are not needed for a one-shot run
    cache.clear_all()

    if results["config_updated"]:
        print("🔄 Config file updated from subscription")
    if results["sources_added"]:
        print(f"➕ {results['sources_added']} video sources added from subscription")
    if results["subscription_added"]:
        print(f"➕ {results['subscription_added']} live sources added from subscription")

    for key, count in results["live_sources"].items():
        marker = "✅" if count else "❌"
        print(f"   {marker} {key}: {count} channels")

    total = sum(results["live_sources"].values())
    print(f"\n📺 Total: {total} channels from {len(results['live_sources'])} live sources")


if __name__ == "__main__":
    asyncio.run(run_once())
