"""
EPG Parser Service.
Streams XMLTV guides line by line and collects programme titles
for the channels a live source actually carries.
"""
import re
import logging
from typing import Iterable, Optional

import httpx

from livetv.models.live import ProgrammeEntry

logger = logging.getLogger(__name__)

CHANNEL_ATTR = re.compile(r'channel="([^"]*)"')
START_ATTR = re.compile(r'start="([^"]*)"')
STOP_ATTR = re.compile(r'stop="([^"]*)"')

# Accepts attributes on the tag, e.g. <title lang="zh">
TITLE_PATTERN = re.compile(r'<title(?:\s+[^>]*)?>(.*?)</title>')


def _attr(pattern: re.Pattern, line: str) -> str:
    match = pattern.search(line)
    return match.group(1) if match else ''


class XMLTVProgrammeScanner:
    """
    Incremental XMLTV scanner.

    Text is fed in arbitrary chunks; complete lines are run through a
    single-pass state machine and the trailing partial line is kept
    until more text arrives or the scanner is closed.
    """

    def __init__(self, tvg_ids: Iterable[str]):
        self.tvg_ids = set(tvg_ids)
        self.result: dict[str, list[ProgrammeEntry]] = {}
        self._buffer = ''
        self._current_tvg_id = ''
        self._current: Optional[dict] = None
        self._skip = False

    def feed(self, text: str):
        """Consume a chunk of text."""
        self._buffer += text
        lines = self._buffer.split('\n')
        self._buffer = lines.pop()
        for line in lines:
            self._process_line(line)

    def close(self) -> dict[str, list[ProgrammeEntry]]:
        """Flush the last unterminated line and return the programmes."""
        if self._buffer:
            self._process_line(self._buffer)
            self._buffer = ''
        return self.result

    def _process_line(self, line: str):
        line = line.strip()
        if not line:
            return

        if line.startswith('<programme'):
            self._current_tvg_id = _attr(CHANNEL_ATTR, line)
            start = _attr(START_ATTR, line)
            end = _attr(STOP_ATTR, line)

            if self._current_tvg_id and start and end:
                self._current = {'start': start, 'end': end, 'title': ''}
                self._skip = self._current_tvg_id not in self.tvg_ids

        elif line.startswith('<title') and self._current and not self._skip:
            match = TITLE_PATTERN.search(line)
            if match:
                self._current['title'] = match.group(1)
                self.result.setdefault(self._current_tvg_id, []).append(
                    ProgrammeEntry(**self._current)
                )
                self._current = None

        elif line == '</programme>':
            self._current = None
            self._current_tvg_id = ''
            self._skip = False


async def parse_epg(
    epg_url: str,
    user_agent: str,
    tvg_ids: Iterable[str],
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, list[ProgrammeEntry]]:
    """
    Fetch and parse an XMLTV guide.

    Args:
        epg_url: Guide URL; empty means no guide
        user_agent: User-Agent header for the request
        tvg_ids: Channel ids whose programmes should be kept
        client: Shared HTTP client, a temporary one is used if omitted

    Returns:
        Programmes per tvg id in document order. Never raises; whatever was
        parsed before a failure is returned.
    """
    if not epg_url:
        return {}

    scanner = XMLTVProgrammeScanner(tvg_ids)
    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(follow_redirects=True)

    try:
        async with client.stream("GET", epg_url, headers={"User-Agent": user_agent}) as response:
            if not response.is_success:
                logger.info(f"EPG fetch returned HTTP {response.status_code} for {epg_url}")
                return {}
            async for chunk in response.aiter_text():
                scanner.feed(chunk)
    except Exception as e:
        logger.debug(f"EPG stream interrupted for {epg_url}: {e}")
    finally:
        if own_client:
            await client.aclose()

    result = scanner.close()
    logger.info(f"Parsed EPG for {len(result)} channels from {epg_url}")
    return result
