"""
Config Merge Service.

Folds the admin config file (JSON, M3U or key=value text) into the
persisted admin configuration and repairs the result.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from livetv.models.admin import (
    AdminConfig,
    ApiSource,
    CustomCategory,
    FileApiSite,
    FileConfig,
    FileLive,
    UserEntry,
)
from livetv.models.live import LiveSourceConfig

logger = logging.getLogger(__name__)

# Values that look like a video API endpoint rather than a playlist
API_HINTS = ('?ac=', '/api/')

M3U_TITLE_PATTERN = re.compile(r',(.+)$')
LIVE_KEY_INVALID_CHARS = re.compile(r'[^a-zA-Z0-9_-]')


@dataclass(frozen=True)
class JsonBlob:
    data: dict


@dataclass(frozen=True)
class M3UBlob:
    text: str


@dataclass(frozen=True)
class LineRecord:
    fields: tuple[str, ...]
    value: str


@dataclass(frozen=True)
class LineRecordsBlob:
    records: tuple[LineRecord, ...]


ConfigBlob = Union[JsonBlob, M3UBlob, LineRecordsBlob]


def _line_records(text: str) -> tuple[LineRecord, ...]:
    records = []
    for line in text.split('\n'):
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = (part.strip() for part in line.split('=', 1))
        if not key or not value:
            continue
        records.append(LineRecord(tuple(s.strip() for s in key.split(',')), value))
    return tuple(records)


def classify_config_blob(text: str) -> ConfigBlob:
    """Decide which format a config file is written in."""
    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        return JsonBlob(data)
    if text.strip().startswith('#EXTM3U') or '#EXTINF' in text:
        return M3UBlob(text)
    return LineRecordsBlob(_line_records(text))


def _parse_json_config(blob: JsonBlob) -> FileConfig:
    try:
        return FileConfig.model_validate(blob.data)
    except ValidationError as e:
        logger.warning(f"Config file JSON does not match the expected layout: {e}")
        return FileConfig()


def _parse_m3u_config(blob: M3UBlob) -> FileConfig:
    config = FileConfig()
    current_name = ''

    for line in blob.text.split('\n'):
        line = line.strip()
        if not line:
            continue

        if line.startswith('#EXTINF:'):
            match = M3U_TITLE_PATTERN.search(line)
            if match:
                current_name = match.group(1).strip()
        elif line.startswith(('http://', 'https://')) and current_name:
            key = LIVE_KEY_INVALID_CHARS.sub('_', current_name).lower()
            config.lives[key] = FileLive(name=current_name, url=line)
            current_name = ''

    return config


def _parse_line_records(blob: LineRecordsBlob) -> FileConfig:
    config = FileConfig()

    for record in blob.records:
        fields = record.fields

        if len(fields) == 4:
            key, name, api, detail = fields
            config.api_site[key] = FileApiSite(key=key, name=name, api=api, detail=detail)
        elif len(fields) == 3:
            key, name, api = fields
            config.api_site[key] = FileApiSite(key=key, name=name, api=api, detail='')
        elif len(fields) == 2:
            key, name = fields
            config.lives[key] = FileLive(name=name, url=record.value)
        elif len(fields) == 1:
            key = fields[0]
            if any(hint in record.value for hint in API_HINTS):
                config.api_site[key] = FileApiSite(key=key, name=key, api=record.value, detail='')
            else:
                config.lives[key] = FileLive(name=key, url=record.value)

    return config


def parse_file_config(blob: ConfigBlob) -> FileConfig:
    """Parse a classified config file."""
    if isinstance(blob, JsonBlob):
        return _parse_json_config(blob)
    if isinstance(blob, M3UBlob):
        return _parse_m3u_config(blob)
    return _parse_line_records(blob)


def load_file_config(text: str) -> FileConfig:
    return parse_file_config(classify_config_blob(text or ''))


def _merge_api_sources(config: AdminConfig, file_config: FileConfig):
    current = {source.key: source for source in config.source_config}
    known_urls = {source.api.lower().strip() for source in current.values()}

    for key, site in file_config.api_site.items():
        normalized_url = site.api.lower().strip()
        existing = current.get(key)

        if existing:
            existing.name = site.name
            existing.api = site.api
            existing.detail = site.detail
            existing.from_ = 'config'
        elif normalized_url in known_urls:
            logger.info(f"Skipping API source {key}: {site.api} is already configured")
            continue
        else:
            current[key] = ApiSource(
                key=key,
                name=site.name,
                api=site.api,
                detail=site.detail,
                from_='config',
                disabled=False,
            )
        known_urls.add(normalized_url)

    for source in current.values():
        if source.key not in file_config.api_site:
            source.from_ = 'custom'

    config.source_config = list(current.values())


def _merge_categories(config: AdminConfig, file_config: FileConfig):
    current = {category.identity: category for category in config.custom_categories}
    file_keys = set()

    for category in file_config.custom_category:
        identity = (category.query, category.type)
        file_keys.add(identity)
        existing = current.get(identity)

        if existing:
            existing.name = category.name
            existing.from_ = 'config'
        else:
            current[identity] = CustomCategory(
                name=category.name,
                type=category.type,
                query=category.query,
                from_='config',
                disabled=False,
            )

    for identity, category in current.items():
        if identity not in file_keys:
            category.from_ = 'custom'

    config.custom_categories = list(current.values())


def _merge_lives(config: AdminConfig, file_config: FileConfig):
    current = {live.key: live for live in config.live_config}

    for key, site in file_config.lives.items():
        existing = current.get(key)

        if existing:
            existing.name = site.name
            existing.url = site.url
            existing.ua = site.ua
            existing.epg = site.epg
            existing.from_ = 'config'
        else:
            current[key] = LiveSourceConfig(
                key=key,
                name=site.name,
                url=site.url,
                ua=site.ua,
                epg=site.epg,
                channel_number=0,
                from_='config',
                disabled=False,
            )

    for live in current.values():
        if live.key not in file_config.lives:
            live.from_ = 'custom'

    config.live_config = list(current.values())


def refine_config(config: AdminConfig, file_config: Optional[FileConfig] = None) -> AdminConfig:
    """
    Merge the config file into the admin config, in place.

    Entries present in both keep their admin-controlled fields such as
    ``disabled``; entries only in the file are added with ``from='config'``;
    entries no longer in the file become ``from='custom'``.
    """
    if file_config is None:
        file_config = load_file_config(config.config_file)

    _merge_api_sources(config, file_config)
    _merge_categories(config, file_config)
    _merge_lives(config, file_config)

    return config


def _dedupe(items: list, identity) -> list:
    seen = set()
    result = []
    for item in items:
        key = identity(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def config_self_check(config: AdminConfig, owner_username: str) -> AdminConfig:
    """
    Repair an admin config, in place.

    Removes duplicate users, sources, categories and live sources (first
    occurrence wins) and makes ``owner_username`` the only owner, listed
    first.
    """
    users = _dedupe(config.user_config.users, lambda u: u.username)

    if owner_username:
        origin_owner = next((u for u in users if u.username == owner_username), None)
        users = [u for u in users if u.username != owner_username]
        for user in users:
            if user.role == 'owner':
                user.role = 'user'
        users.insert(0, UserEntry(
            username=owner_username,
            role='owner',
            banned=False,
            enabled_apis=origin_owner.enabled_apis if origin_owner else None,
            tags=origin_owner.tags if origin_owner else None,
        ))
    else:
        logger.warning("No owner username configured, skipping owner check")

    config.user_config.users = users
    config.source_config = _dedupe(config.source_config, lambda s: s.key)
    config.custom_categories = _dedupe(config.custom_categories, lambda c: c.identity)
    config.live_config = _dedupe(config.live_config, lambda live: live.key)

    return config
