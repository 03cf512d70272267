"""Configuration composition root."""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .paths import PathsConfig
from .api_keys import APIKeysConfig
from .tts import TTSConfig
from .operational import OperationalConfig
from .branding import BrandingConfig


class NewscastConfig(BaseSettings):
    """Root configuration composing all domain configs."""

    model_config = SettingsConfigDict(
        env_prefix="NEWSCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # Allows NEWSCAST_TTS__MAX_CHUNK_CHARS
        case_sensitive=False,
        extra="ignore",
    )

    # Domain compositions (using default_factory to avoid mutable default bug)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    api_keys: APIKeysConfig = Field(default_factory=APIKeysConfig)
    tts: TTSConfig = Field(default_factory=TTSConfig)
    operational: OperationalConfig = Field(default_factory=OperationalConfig)
    branding: BrandingConfig = Field(default_factory=BrandingConfig)

    def validate_production_config(self) -> None:
        """Validate that the selected provider can actually be reached.

        Raises:
            ValueError: If required production fields are missing
        """
        errors = []
        provider = self.tts.tts_provider
        if provider == "elevenlabs" and self.api_keys.elevenlabs_api_key is None:
            errors.append("NEWSCAST_ELEVENLABS_API_KEY is required for ElevenLabs synthesis")
        elif provider == "openai" and self.api_keys.openai_api_key is None:
            errors.append("NEWSCAST_OPENAI_API_KEY is required for OpenAI synthesis")
        elif provider not in ("elevenlabs", "openai"):
            errors.append(f"NEWSCAST_TTS_PROVIDER must be 'elevenlabs' or 'openai' (got '{provider}')")

        if errors:
            raise ValueError(
                "Production configuration incomplete:\n  - " + "\n  - ".join(errors)
            )
