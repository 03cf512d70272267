"""Text-to-speech synthesis providers.

Each provider turns one chunk of narration into MP3 bytes. Providers classify
their failures: timeouts and rate limits / 5xx raise TransientProviderError
(retried by the runner), anything the provider will never accept raises
PermanentProviderError.
"""

import logging
from typing import Any, Optional, Protocol

import httpx
import openai
from openai import AsyncOpenAI

from .config import NewscastConfig
from .exceptions import (
    PermanentProviderError,
    SynthesisTimeoutError,
    TransientProviderError,
)
from .models import VoiceConfig

logger = logging.getLogger(__name__)


_NEWS_SETTINGS = {
    "stability": 0.5,  # Balanced for news content
    "similarity_boost": 0.75,
    "style": 0.0,  # Neutral delivery
    "use_speaker_boost": True,
}

# Curated Arabic-capable newsroom voices
VOICE_PRESETS: dict[str, VoiceConfig] = {
    "MALE_NEWS": VoiceConfig(voice_id="onwK4e9ZLuTAKqWW03F9", **_NEWS_SETTINGS),
    "MALE_ANALYSIS": VoiceConfig(voice_id="pqHfZKP75CvOlQylNhV4", **_NEWS_SETTINGS),
    "FEMALE_NEWS": VoiceConfig(voice_id="XB0fDUnXU5powFXDhCwa", **_NEWS_SETTINGS),
    "FEMALE_CONVERSATIONAL": VoiceConfig(voice_id="LcfcDJNUP1GQjkzn1xUU", **_NEWS_SETTINGS),
}


class SpeechProvider(Protocol):
    """Remote narration provider."""

    name: str
    max_input_chars: int

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        voice_settings: dict[str, Any],
        model: str,
    ) -> bytes: ...


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class ElevenLabsProvider:
    """ElevenLabs text-to-speech over HTTPS."""

    name = "elevenlabs"
    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        max_input_chars: int = 4000,
    ):
        if not api_key:
            raise ValueError("NEWSCAST_ELEVENLABS_API_KEY not configured")
        self.api_key = api_key
        self.timeout = timeout
        self.max_input_chars = max_input_chars
        self._client = client or httpx.AsyncClient(base_url=self.BASE_URL, timeout=timeout)

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        voice_settings: dict[str, Any],
        model: str,
    ) -> bytes:
        """Synthesize one chunk.

        Raises:
            SynthesisTimeoutError: Request timed out
            TransientProviderError: Rate limited, server error or transport failure
            PermanentProviderError: Request rejected (bad key, unknown voice, bad input)
        """
        try:
            response = await self._client.post(
                f"/text-to-speech/{voice_id}",
                headers={
                    "Accept": "audio/mpeg",
                    "xi-api-key": self.api_key,
                },
                json={
                    "text": text,
                    "model_id": model,
                    "voice_settings": voice_settings,
                },
            )
        except httpx.TimeoutException as e:
            raise SynthesisTimeoutError(self.timeout) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"ElevenLabs transport error: {e}") from e

        if response.status_code >= 400:
            message = f"ElevenLabs API error: {response.status_code} - {response.text[:200]}"
            if _is_retryable_status(response.status_code):
                raise TransientProviderError(message)
            raise PermanentProviderError(message)

        if not response.content:
            raise TransientProviderError("ElevenLabs returned an empty audio body")

        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAISpeechProvider:
    """OpenAI text-to-speech (speaks MP3 with a fixed voice per request)."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        client: Optional[AsyncOpenAI] = None,
        timeout: float = 30.0,
        max_input_chars: int = 4096,
    ):
        if not api_key:
            raise ValueError("NEWSCAST_OPENAI_API_KEY not configured")
        self.timeout = timeout
        self.max_input_chars = max_input_chars
        # Retries belong to the runner, not the SDK
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        voice_settings: dict[str, Any],
        model: str,
    ) -> bytes:
        """Synthesize one chunk. OpenAI voices ignore the ElevenLabs-style settings."""
        try:
            response = await self.client.audio.speech.create(
                model=model,
                voice=voice_id,
                input=text,
                response_format="mp3",
            )
        except openai.APITimeoutError as e:
            raise SynthesisTimeoutError(self.timeout) from e
        except (openai.RateLimitError, openai.InternalServerError, openai.APIConnectionError) as e:
            raise TransientProviderError(f"OpenAI TTS error: {e}") from e
        except openai.APIStatusError as e:
            raise PermanentProviderError(f"OpenAI TTS rejected request: {e}") from e

        return response.content


def get_speech_provider(cfg: NewscastConfig) -> SpeechProvider:
    """Build the provider selected by configuration.

    Raises:
        ValueError: If the provider is unknown or its API key is missing
    """
    provider = cfg.tts.tts_provider
    if provider == "elevenlabs":
        key = cfg.api_keys.elevenlabs_api_key
        return ElevenLabsProvider(
            api_key=key.get_secret_value() if key else "",
            timeout=cfg.tts.synthesis_timeout_seconds,
            max_input_chars=cfg.tts.max_chunk_chars,
        )
    if provider == "openai":
        key = cfg.api_keys.openai_api_key
        return OpenAISpeechProvider(
            api_key=key.get_secret_value() if key else "",
            timeout=cfg.tts.synthesis_timeout_seconds,
            max_input_chars=min(cfg.tts.max_chunk_chars, 4096),
        )
    raise ValueError(f"Unknown TTS provider: {provider}")


def default_voice(cfg: NewscastConfig) -> VoiceConfig:
    """Voice used for briefs created without one."""
    if cfg.tts.tts_provider == "openai":
        return VoiceConfig(voice_id=cfg.tts.openai_tts_voice, model=cfg.tts.openai_tts_model)
    return VoiceConfig(
        voice_id=cfg.tts.default_voice_id,
        model=cfg.tts.elevenlabs_model,
        stability=cfg.tts.default_stability,
        similarity_boost=cfg.tts.default_similarity_boost,
        style=cfg.tts.default_style,
    )
