"""
Config file and video source subscriptions.
Pull a remote config blob into the admin config, and append video API
sources published by a remote list.
"""
import json
import logging
import re
from datetime import datetime, timezone
from typing import Optional

import base58
import httpx

from livetv.models.admin import AdminConfig, ApiSource
from livetv.services.config_merge import config_self_check, refine_config
from livetv.services.live_subscription import fetch_subscription, subscription_key

logger = logging.getLogger(__name__)

EXTINF_TITLE = re.compile(r'#EXTINF:[^,]*,(.+)')


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _is_m3u(text: str) -> bool:
    return text.strip().startswith('#EXTM3U') or '#EXTINF' in text


def decode_config_blob(text: str) -> str:
    """
    Turn a downloaded config blob into config file text.

    Tries plain JSON, then Base58-encoded JSON, then M3U, then key=value
    text.

    Raises:
        ValueError: the blob matches none of the formats
    """
    if _is_json(text):
        return text

    try:
        decoded = base58.b58decode(text.strip()).decode('utf-8')
    except ValueError:
        decoded = None
    if decoded is not None and _is_json(decoded):
        return decoded

    if _is_m3u(text):
        return text
    if '=' in text or len(text.split('\n')) > 1:
        return text

    raise ValueError("Unrecognized config format, expected JSON, Base58, M3U or TXT")


async def refresh_config_subscription(
    config: AdminConfig,
    owner_username: str,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """
    Replace the config file with the subscribed blob and merge it, in place.

    Returns True when the config file was updated.
    """
    subscription = config.config_subscription
    if not subscription or not subscription.url or not subscription.auto_update:
        logger.info("Skipping config subscription: no URL or auto update disabled")
        return False

    text = await fetch_subscription(subscription.url, client)
    if text is None:
        return False

    try:
        config_file = decode_config_blob(text)
    except ValueError as e:
        logger.error(f"Config subscription {subscription.url} rejected: {e}")
        return False

    config.config_file = config_file
    subscription.last_check = datetime.now(timezone.utc).isoformat()
    refine_config(config)
    config_self_check(config, owner_username)

    logger.info(f"Config subscription refreshed from {subscription.url}")
    return True


def _source(item: dict, key: str, index: int) -> ApiSource:
    return ApiSource(
        key=key,
        name=item.get('name') or f"视频源{index}",
        api=item.get('api') or item.get('url') or '',
        detail=item.get('detail'),
        disabled=bool(item.get('disabled', False)),
        from_='config',
    )


def _sources_from_json(data) -> list[ApiSource]:
    if isinstance(data, dict) and isinstance(data.get('api_site'), dict):
        return [
            _source({'name': key, **value}, key, index)
            for index, (key, value) in enumerate(data['api_site'].items(), start=1)
            if isinstance(value, dict)
        ]

    if isinstance(data, dict) and isinstance(data.get('sources'), list):
        data = data['sources']
    if not isinstance(data, list):
        return []

    return [
        _source(item, item.get('key') or f"source_{index}", index)
        for index, item in enumerate(data, start=1)
        if isinstance(item, dict)
    ]


def _sources_from_m3u(text: str) -> list[ApiSource]:
    sources = []
    current_name = ''

    for line in text.split('\n'):
        line = line.strip()
        if line.startswith('#EXTINF:'):
            match = EXTINF_TITLE.match(line)
            if match:
                current_name = match.group(1).strip()
        elif line and not line.startswith('#') and current_name:
            key = subscription_key(current_name, len(sources) + 1, prefix="source")
            sources.append(ApiSource(key=key, name=current_name, api=line, from_='config'))
            current_name = ''

    return sources


def _sources_from_text(text: str) -> list[ApiSource]:
    sources = []

    for line in text.split('\n'):
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        name, api = (part.strip() for part in line.split('=', 1))
        if name and api:
            key = subscription_key(name, len(sources) + 1, prefix="source")
            sources.append(ApiSource(key=key, name=name, api=api, from_='config'))

    return sources


def parse_source_subscription(text: str) -> list[ApiSource]:
    """Parse a video source list in JSON, M3U or name=api text form."""
    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if data is not None:
        return _sources_from_json(data)
    if _is_m3u(text):
        return _sources_from_m3u(text)
    return _sources_from_text(text)


async def refresh_source_subscription(config: AdminConfig, client: Optional[httpx.AsyncClient] = None) -> int:
    """
    Append video API sources from the configured source subscription.

    Returns the number of sources added. Existing keys are never replaced.
    """
    subscription = config.source_subscription
    if not subscription or not subscription.url or not subscription.auto_update:
        return 0

    logger.info(f"Refreshing source subscription: {subscription.url}")
    text = await fetch_subscription(subscription.url, client)
    if text is None:
        return 0

    sources = parse_source_subscription(text)
    if not sources:
        logger.warning("Source subscription contained no video sources")
        return 0

    existing_keys = {source.key for source in config.source_config}
    added = []
    for source in sources:
        if source.key in existing_keys:
            continue
        existing_keys.add(source.key)
        added.append(source)

    config.source_config.extend(added)
    subscription.last_check = datetime.now(timezone.utc).isoformat()

    logger.info(f"Source subscription refreshed, {len(added)} new video sources")
    return len(added)
