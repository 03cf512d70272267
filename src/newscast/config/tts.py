"""Text-to-speech (TTS) configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TTSConfig(BaseSettings):
    """Text-to-speech provider configuration.

    Note: API keys are in APIKeysConfig.

    Environment variables:
        NEWSCAST_TTS_PROVIDER: TTS provider ('elevenlabs' or 'openai')
        NEWSCAST_ELEVENLABS_MODEL: ElevenLabs model id
        NEWSCAST_DEFAULT_VOICE_ID: Voice used when a brief names none
        NEWSCAST_MAX_CHUNK_CHARS: Provider input limit used for chunking
        NEWSCAST_SYNTHESIS_TIMEOUT_SECONDS: Per-chunk provider timeout
    """

    model_config = SettingsConfigDict(
        env_prefix="NEWSCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    tts_provider: str = Field(
        default="elevenlabs",
        description="TTS provider: 'elevenlabs' or 'openai'"
    )

    # ElevenLabs settings
    elevenlabs_model: str = Field(
        default="eleven_flash_v2_5",
        description="ElevenLabs model (flash v2.5 keeps latency low for long briefs)"
    )
    default_voice_id: str = Field(
        default="onwK4e9ZLuTAKqWW03F9",
        description="Voice used when a brief does not carry its own voice id"
    )
    default_stability: float = Field(default=0.5, ge=0.0, le=1.0)
    default_similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    default_style: float = Field(default=0.0, ge=0.0, le=1.0)

    # OpenAI settings
    openai_tts_model: str = Field(default="tts-1", description="OpenAI TTS model")
    openai_tts_voice: str = Field(default="alloy", description="OpenAI TTS voice")

    # Provider limits
    max_chunk_chars: int = Field(
        default=4000,
        gt=0,
        description="Maximum characters sent to the provider in one call"
    )
    synthesis_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each synthesis call"
    )
    assumed_bitrate_kbps: int = Field(
        default=128,
        gt=0,
        description="Bitrate used to estimate duration when MP3 frames can't be read"
    )
