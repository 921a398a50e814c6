"""
Scheduled live refresh job.
"""
import logging
from typing import Optional

import httpx

from livetv.services.config_service import ConfigService
from livetv.services.config_subscription import refresh_config_subscription, refresh_source_subscription
from livetv.services.live_refresher import LiveSourceRefresher
from livetv.services.live_subscription import refresh_live_subscription

logger = logging.getLogger(__name__)


async def run_live_cron(
    config_service: ConfigService,
    refresher: LiveSourceRefresher,
    client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Pull the subscribed config file, re-apply it, import subscribed video and
    live sources, then refresh every live source.
    """
    config = await config_service.get_config()
    config_updated = await refresh_config_subscription(
        config, config_service.settings.owner_username, client
    )

    config = await config_service.apply_config_file()

    sources_added = await refresh_source_subscription(config, client)
    added = await refresh_live_subscription(config, client)
    counts = await refresher.refresh_all(config)

    await config_service.save_config(config)

    logger.info(f"Live cron finished: {len(counts)} sources refreshed, {added} added from subscription")
    return {
        "config_updated": config_updated,
        "sources_added": sources_added,
        "subscription_added": added,
        "live_sources": counts,
    }
