"""
Admin configuration models.
Keys are serialized in the PascalCase layout of the persisted admin config.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal

from livetv.models.live import CamelModel, LiveSourceConfig, SourceOrigin


class PascalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class ApiSource(CamelModel):
    """Video API source."""
    key: str
    name: str = ""
    api: str = ""
    detail: Optional[str] = None
    from_: SourceOrigin = Field("custom", alias="from")
    disabled: bool = False


class CustomCategory(CamelModel):
    """Custom category shown on the home page, identified by (query, type)."""
    name: Optional[str] = None
    type: Literal["movie", "tv"] = "movie"
    query: str = ""
    from_: Literal["config", "custom"] = Field("custom", alias="from")
    disabled: bool = False

    @property
    def identity(self) -> tuple[str, str]:
        return (self.query, self.type)


class UserEntry(CamelModel):
    """Portal user as listed in the admin config."""
    username: str
    role: Literal["user", "admin", "owner"] = "user"
    banned: bool = False
    enabled_apis: Optional[list[str]] = None
    tags: Optional[list[str]] = None


class UserConfig(PascalModel):
    users: list[UserEntry] = Field(default_factory=list)

    @field_validator("users", mode="before")
    @classmethod
    def _missing_users(cls, value):
        return value or []


class SubscriptionConfig(BaseModel):
    """Remote subscription pointer."""
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field("", alias="URL")
    auto_update: bool = Field(False, alias="AutoUpdate")
    last_check: str = Field("", alias="LastCheck")


class SiteConfig(PascalModel):
    site_name: str = "LiveTV"
    site_interface_cache_time: int = 7200


class AdminConfig(PascalModel):
    """Persisted admin configuration."""
    config_file: str = ""
    # Key spelling matches configs persisted by earlier deployments
    config_subscription: Optional[SubscriptionConfig] = Field(None, alias="ConfigSubscribtion")
    source_subscription: Optional[SubscriptionConfig] = None
    live_subscription: Optional[SubscriptionConfig] = None
    site_config: SiteConfig = Field(default_factory=SiteConfig)
    user_config: UserConfig = Field(default_factory=UserConfig)
    source_config: list[ApiSource] = Field(default_factory=list)
    custom_categories: list[CustomCategory] = Field(default_factory=list)
    live_config: list[LiveSourceConfig] = Field(default_factory=list)

    @field_validator("source_config", "custom_categories", "live_config", mode="before")
    @classmethod
    def _missing_list(cls, value):
        return value or []

    @field_validator("user_config", "site_config", mode="before")
    @classmethod
    def _missing_section(cls, value):
        return value or {}


class FileApiSite(BaseModel):
    """`api_site` entry of a config file."""
    key: str = ""
    name: str = ""
    api: str = ""
    detail: Optional[str] = None


class FileCategory(BaseModel):
    """`custom_category` entry of a config file."""
    name: Optional[str] = None
    type: Literal["movie", "tv"] = "movie"
    query: str = ""


class FileLive(BaseModel):
    """`lives` entry of a config file."""
    name: str = ""
    url: str = ""
    ua: Optional[str] = None
    epg: Optional[str] = None


class FileConfig(BaseModel):
    """Config file contents after parsing, whatever the source format."""
    cache_time: Optional[int] = None
    api_site: dict[str, FileApiSite] = Field(default_factory=dict)
    custom_category: list[FileCategory] = Field(default_factory=list)
    lives: dict[str, FileLive] = Field(default_factory=dict)
