"""
Live subscription importer.
Pulls a remote list of live sources and appends the ones not yet configured.
"""
import json
import logging
import re
from datetime import datetime, timezone
from typing import Optional

import httpx

from livetv.models.admin import AdminConfig
from livetv.models.live import LiveSourceConfig

logger = logging.getLogger(__name__)

SUBSCRIPTION_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

KEY_INVALID_CHARS = re.compile(r'[^a-z0-9\u4e00-\u9fa5]')
EXTINF_TITLE = re.compile(r'#EXTINF:[^,]*,(.+)')
TVG_URL = re.compile(r'tvg-url="([^"]+)"')


def subscription_key(name: str, position: int, prefix: str = "live") -> str:
    """Key for a subscribed entry: lowercased name, at most 20 characters."""
    key = KEY_INVALID_CHARS.sub('_', name.lower())[:20]
    return key or f"{prefix}_{position}"


def _from_items(items: list) -> list[LiveSourceConfig]:
    sources = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            continue
        sources.append(LiveSourceConfig(
            key=item.get('key') or f"live_{index}",
            name=item.get('name') or f"直播源{index}",
            url=item.get('url') or '',
            ua=item.get('ua'),
            epg=item.get('epg'),
            disabled=bool(item.get('disabled', False)),
            from_='subscription',
        ))
    return sources


def _from_json(data) -> list[LiveSourceConfig]:
    if isinstance(data, list):
        return _from_items(data)
    if not isinstance(data, dict):
        return []
    if isinstance(data.get('lives'), dict):
        return _from_items([
            {**value, 'key': key, 'name': value.get('name') or key}
            for key, value in data['lives'].items()
            if isinstance(value, dict)
        ])
    if isinstance(data.get('sources'), list):
        return _from_items(data['sources'])
    return []


def _from_m3u(text: str) -> list[LiveSourceConfig]:
    sources = []
    current_name = ''
    current_epg = ''

    for line in text.split('\n'):
        line = line.strip()
        if line.startswith('#EXTINF:'):
            match = EXTINF_TITLE.match(line)
            if match:
                current_name = match.group(1).strip()
            epg_match = TVG_URL.search(line)
            if epg_match:
                current_epg = epg_match.group(1)
        elif line and not line.startswith('#') and current_name:
            sources.append(LiveSourceConfig(
                key=subscription_key(current_name, len(sources) + 1),
                name=current_name,
                url=line,
                epg=current_epg or None,
                from_='subscription',
            ))
            current_name = ''
            current_epg = ''

    return sources


def _from_text(text: str) -> list[LiveSourceConfig]:
    sources = []

    for line in text.split('\n'):
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        if '=' in line:
            parts = [part.strip() for part in line.split('=')]
        elif ',' in line:
            parts = [part.strip() for part in line.split(',')]
        else:
            continue

        name = parts[0]
        url = parts[1] if len(parts) > 1 else ''
        epg = parts[2] if len(parts) > 2 else ''
        if name and url:
            sources.append(LiveSourceConfig(
                key=subscription_key(name, len(sources) + 1),
                name=name,
                url=url,
                epg=epg or None,
                from_='subscription',
            ))

    return sources


def parse_live_subscription(text: str) -> list[LiveSourceConfig]:
    """Parse subscription content in JSON, M3U or name=url text form."""
    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if data is not None:
        return _from_json(data)
    if text.strip().startswith('#EXTM3U') or '#EXTINF' in text:
        return _from_m3u(text)
    return _from_text(text)


async def fetch_subscription(url: str, client: Optional[httpx.AsyncClient] = None) -> Optional[str]:
    """Download a subscription body, None on any transport or HTTP failure."""
    headers = {"User-Agent": SUBSCRIPTION_USER_AGENT}
    try:
        if client is not None:
            response = await client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as own_client:
                response = await own_client.get(url, headers=headers)
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.error(f"Failed to fetch subscription {url}: {e}")
        return None
    return response.text


async def refresh_live_subscription(config: AdminConfig, client: Optional[httpx.AsyncClient] = None) -> int:
    """
    Import new live sources from the configured subscription.

    Returns the number of sources added. Existing keys are never replaced.
    """
    subscription = config.live_subscription
    if not subscription or not subscription.url or not subscription.auto_update:
        return 0

    logger.info(f"Refreshing live subscription: {subscription.url}")
    text = await fetch_subscription(subscription.url, client)
    if text is None:
        return 0

    sources = parse_live_subscription(text)
    if not sources:
        logger.warning("Live subscription contained no live sources")
        return 0

    existing_keys = {live.key for live in config.live_config}
    added = []
    for source in sources:
        if source.key in existing_keys:
            continue
        existing_keys.add(source.key)
        added.append(source)

    config.live_config.extend(added)
    subscription.last_check = datetime.now(timezone.utc).isoformat()

    logger.info(f"Live subscription refreshed, {len(added)} new live sources")
    return len(added)
