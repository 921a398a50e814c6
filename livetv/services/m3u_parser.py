"""
M3U Parser Service.
Parses M3U playlist text into channel records for one live source.
"""
import re
from typing import Optional
import logging

from livetv.models.live import Channel, M3UParseResult, UNGROUPED

logger = logging.getLogger(__name__)

# Guide URL advertised in the #EXTM3U header
TVG_URL_PATTERN = re.compile(r'(?:x-tvg-url|url-tvg)="([^"]*)"')

# EXTINF attributes, each scanned independently
TVG_ID_PATTERN = re.compile(r'tvg-id="([^"]*)"')
TVG_NAME_PATTERN = re.compile(r'tvg-name="([^"]*)"')
TVG_LOGO_PATTERN = re.compile(r'tvg-logo="([^"]*)"')
GROUP_TITLE_PATTERN = re.compile(r'group-title="([^"]*)"')

# Display title after the last comma
TITLE_PATTERN = re.compile(r',([^,]*)$')

RESOLUTION_PATTERN = re.compile(r'(\d{3,4}[pP]|4K|8K|HD|FHD|UHD)', re.IGNORECASE)


def _attr(pattern: re.Pattern, line: str, default: str = '') -> str:
    match = pattern.search(line)
    return match.group(1) if match else default


def extract_resolution(text: str) -> Optional[str]:
    """Extract a resolution hint such as 1080P or 4K."""
    match = RESOLUTION_PATTERN.search(text)
    if match:
        return match.group(1).upper()
    return None


def parse_m3u(source_key: str, content: str) -> M3UParseResult:
    """
    Parse M3U playlist content.

    Args:
        source_key: Live source key, used as the channel id prefix
        content: Raw playlist text

    Returns:
        The guide URL from the header and the channels in playlist order
    """
    lines = [line.strip() for line in content.split('\n')]
    lines = [line for line in lines if line]

    tvg_url = ''
    channels: list[Channel] = []

    i = 0
    while i < len(lines):
        line = lines[i]

        if line.startswith('#EXTM3U'):
            header_url = _attr(TVG_URL_PATTERN, line)
            tvg_url = header_url.split(',')[0].strip()

        elif line.startswith('#EXTINF:'):
            tvg_id = _attr(TVG_ID_PATTERN, line)
            tvg_name = _attr(TVG_NAME_PATTERN, line)
            logo = _attr(TVG_LOGO_PATTERN, line)
            group = _attr(GROUP_TITLE_PATTERN, line, UNGROUPED)

            title_match = TITLE_PATTERN.search(line)
            title = title_match.group(1).strip() if title_match else ''
            name = title or tvg_name

            # URL must be the very next line
            if i + 1 < len(lines) and not lines[i + 1].startswith('#'):
                url = lines[i + 1]

                if name and url:
                    channels.append(Channel(
                        id=f"{source_key}-{len(channels)}",
                        tvg_id=tvg_id,
                        name=name,
                        logo=logo,
                        group=group,
                        url=url,
                        resolution=extract_resolution(name) or extract_resolution(url),
                    ))

                i += 1

        i += 1

    logger.debug(f"Parsed {len(channels)} channels for live source {source_key}")

    return M3UParseResult(tvg_url=tvg_url, channels=channels)
