"""
Live channel, programme guide and live source models.
Field aliases follow the camelCase JSON stored for user channel edits.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SourceOrigin = Literal["config", "custom", "subscription"]

UNGROUPED = "无分组"


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Channel(CamelModel):
    """One playable entry parsed from an M3U playlist."""
    id: str
    tvg_id: str = ""
    name: str
    logo: str = ""
    group: str = UNGROUPED
    url: str
    resolution: Optional[str] = None

    # Only set by the user edit overlay, never by the parser
    disabled: Optional[bool] = None


class ProgrammeEntry(CamelModel):
    """A single guide entry. Times are raw XMLTV timestamps."""
    start: str
    end: str
    title: str


class LiveChannels(CamelModel):
    """Cached parse result for one live source."""
    channel_number: int = 0
    channels: list[Channel] = Field(default_factory=list)
    epg_url: str = ""
    epgs: dict[str, list[ProgrammeEntry]] = Field(default_factory=dict)

    def enabled_count(self) -> int:
        return sum(1 for ch in self.channels if not ch.disabled)


class LiveSourceConfig(CamelModel):
    """A configured M3U feed."""
    key: str
    name: str = ""
    url: str = ""
    ua: Optional[str] = None
    epg: Optional[str] = None
    channel_number: int = 0
    disabled: bool = False
    from_: SourceOrigin = Field("custom", alias="from")


class M3UParseResult(BaseModel):
    """Channels and guide URL found in one playlist."""
    tvg_url: str = ""
    channels: list[Channel] = Field(default_factory=list)
