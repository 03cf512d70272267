"""API keys and secrets configuration."""

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class APIKeysConfig(BaseSettings):
    """API keys for the narration providers.

    All keys are optional (None by default) and use SecretStr to prevent
    accidental exposure in logs or error messages.

    Environment variables:
        NEWSCAST_ELEVENLABS_API_KEY: ElevenLabs API key
        NEWSCAST_OPENAI_API_KEY: OpenAI API key
    """

    model_config = SettingsConfigDict(
        env_prefix="NEWSCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    elevenlabs_api_key: Optional[SecretStr] = Field(default=None, description="ElevenLabs API key")
    openai_api_key: Optional[SecretStr] = Field(default=None, description="OpenAI TTS API key")
