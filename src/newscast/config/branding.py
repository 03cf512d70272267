"""Brand identity and publishing configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrandingConfig(BaseSettings):
    """Brand identity used in narration and published URLs.

    Environment variables:
        NEWSCAST_BRAND_NAME: Name read out in introductions
        NEWSCAST_STATION_TZ: IANA timezone for dates and schedules
        NEWSCAST_PUBLIC_BASE_URL: URL prefix for published audio
    """

    model_config = SettingsConfigDict(
        env_prefix="NEWSCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    brand_name: str = Field(default="Newscast", description="Brand name spoken in briefings")
    station_tz: str = Field(default="Asia/Riyadh", description="IANA timezone for the newsroom")
    public_base_url: str = Field(
        default="http://localhost:8089/media",
        description="Public URL prefix that maps onto the audio directory"
    )
