"""Job runner: drives one job from brief to published audio.

Stages and the progress reported at each:

    processing 10, script compiled 20, chunked 30,
    generating 40..80 (linear in chunks done), uploading 80, uploaded 90,
    completed 100

Chunks are synthesized one at a time in script order. Cancellation is
cooperative: the job state is checked between every suspending step and a
cancelled job makes no further provider calls.
"""

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from .audio import assemble_audio, estimate_duration_seconds
from .brief_store import BriefStore
from .exceptions import (
    BriefNotFoundError,
    JobCancelled,
    PermanentProviderError,
    StorageError,
    SynthesisTimeoutError,
    TransientProviderError,
    ValidationError,
)
from .jobs import Job, JobState
from .models import BriefStatus, ContentBrief
from .object_store import LocalObjectStore
from .progress_bus import ProgressBus
from .script_compiler import compile_script
from .text_chunker import chunk_text
from .voice_synth import SpeechProvider
from .webhooks import deliver_webhook

logger = logging.getLogger(__name__)

WebhookSender = Callable[..., Awaitable[bool]]

PROGRESS_PROCESSING = 10
PROGRESS_SCRIPT = 20
PROGRESS_CHUNKED = 30
PROGRESS_GENERATING = 40
PROGRESS_UPLOADING = 80
PROGRESS_UPLOADED = 90


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRunner:
    """Executes admitted jobs against the store, provider and object store."""

    def __init__(
        self,
        store: BriefStore,
        provider: SpeechProvider,
        object_store: LocalObjectStore,
        bus: ProgressBus,
        *,
        max_chunk_chars: int = 4000,
        synthesis_timeout: float = 30.0,
        retry_base_delay: float = 2.0,
        upload_attempts: int = 2,
        bitrate_kbps: int = 128,
        brand: str = "Newscast",
        station_tz: str = "Asia/Riyadh",
        webhook_timeout: float = 10.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        webhook_sender: WebhookSender = deliver_webhook,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.provider = provider
        self.object_store = object_store
        self.bus = bus
        self.max_chunk_chars = max_chunk_chars
        self.synthesis_timeout = synthesis_timeout
        self.retry_base_delay = retry_base_delay
        self.upload_attempts = max(1, upload_attempts)
        self.bitrate_kbps = bitrate_kbps
        self.brand = brand
        self.station_tz = ZoneInfo(station_tz)
        self.webhook_timeout = webhook_timeout
        self._sleep = sleep
        self._send_webhook = webhook_sender
        self._clock = clock

    @classmethod
    def from_config(cls, cfg, store, provider, object_store, bus, **overrides) -> "JobRunner":
        """Build a runner from a NewscastConfig."""
        options = dict(
            max_chunk_chars=cfg.tts.max_chunk_chars,
            synthesis_timeout=cfg.tts.synthesis_timeout_seconds,
            retry_base_delay=cfg.operational.retry_base_delay_seconds,
            upload_attempts=cfg.operational.upload_attempts,
            bitrate_kbps=cfg.tts.assumed_bitrate_kbps,
            brand=cfg.branding.brand_name,
            station_tz=cfg.branding.station_tz,
            webhook_timeout=cfg.operational.webhook_timeout_seconds,
        )
        options.update(overrides)
        return cls(store, provider, object_store, bus, **options)

    async def run(self, job: Job, on_terminal: Optional[Callable[[Job], None]] = None) -> Job:
        """Run a job to a terminal state.

        Domain failures are absorbed into the job and the brief; this never
        raises them to the caller.

        Args:
            job: Admitted job
            on_terminal: Called once the job and brief hold their final state,
                before the webhook is delivered

        Returns:
            The same job, in a terminal state
        """
        payload = None
        try:
            payload = await self._execute(job)
        except JobCancelled:
            logger.info(f"Job {job.id} for brief {job.brief_id} cancelled at {job.progress}%")
        except Exception as e:
            logger.error(f"Job {job.id} for brief {job.brief_id} failed: {e}", exc_info=True)
            payload = self._fail(job, str(e))

        if on_terminal is not None:
            on_terminal(job)
        if payload is not None:
            await self._notify(job, payload)
        return job

    def _publish(self, job: Job) -> None:
        self.bus.publish(job)

    def _check_cancelled(self, job: Job) -> None:
        if job.is_cancelled:
            raise JobCancelled(job.id)

    def _today(self) -> date:
        return self._clock().astimezone(self.station_tz).date()

    async def _execute(self, job: Job) -> dict[str, Any]:
        self._check_cancelled(job)
        brief = self.store.get_brief(job.brief_id)
        if brief is None:
            raise BriefNotFoundError(job.brief_id)

        job.advance(JobState.PROCESSING, PROGRESS_PROCESSING)
        self._publish(job)
        self.store.set_status(brief.id, BriefStatus.PROCESSING)

        # Stage 1: script
        items = self.store.get_items(brief.id)
        script = compile_script(brief, items, brand=self.brand, today=self._today())
        if not script.strip():
            raise ValidationError(f"Brief {brief.id} compiled to an empty script")
        self.store.save_script(brief.id, script)
        job.set_progress(PROGRESS_SCRIPT)
        self._publish(job)

        # Stage 2: chunking
        max_chars = min(self.max_chunk_chars, self.provider.max_input_chars)
        chunks = chunk_text(script, max_chars)
        if not chunks:
            raise ValidationError(f"Brief {brief.id} produced no narration chunks")
        job.set_progress(PROGRESS_CHUNKED)
        self._publish(job)
        logger.info(f"Job {job.id}: {len(script)} chars in {len(chunks)} chunk(s)")

        # Stage 3: synthesis
        self._check_cancelled(job)
        job.advance(JobState.GENERATING, PROGRESS_GENERATING)
        self._publish(job)

        buffers = []
        span = PROGRESS_UPLOADING - PROGRESS_GENERATING
        for index, chunk in enumerate(chunks):
            self._check_cancelled(job)
            buffers.append(await self._synthesize_chunk(job, brief, chunk, index, len(chunks)))
            self._check_cancelled(job)
            job.set_progress(PROGRESS_GENERATING + span * (index + 1) // len(chunks))
            self._publish(job)

        audio = assemble_audio(buffers)

        # Stage 4: upload
        self._check_cancelled(job)
        job.advance(JobState.UPLOADING, PROGRESS_UPLOADING)
        self._publish(job)

        path = f"briefs/{brief.id}/{self._clock().strftime('%Y%m%dT%H%M%SZ')}.mp3"
        audio_url = await self._upload(job, audio, path)
        if job.is_cancelled:
            await self.object_store.delete(path)
            raise JobCancelled(job.id)
        job.set_progress(PROGRESS_UPLOADED)
        self._publish(job)

        # Stage 5: persist
        duration = estimate_duration_seconds(audio, self.bitrate_kbps)
        self.store.record_success(
            brief.id,
            audio_url=audio_url,
            duration_seconds=duration,
            byte_size=len(audio),
            publish=job.publish_immediately,
        )
        job.advance(JobState.COMPLETED)
        self._publish(job)
        logger.info(f"Job {job.id} completed: {audio_url} ({duration}s, {len(audio)} bytes)")

        return {
            "event": "completed",
            "jobId": job.id,
            "briefId": brief.id,
            "state": job.state.value,
            "audioUrl": audio_url,
            "durationSeconds": duration,
            "byteSize": len(audio),
            "published": job.publish_immediately,
        }

    async def _synthesize_chunk(
        self,
        job: Job,
        brief: ContentBrief,
        chunk: str,
        index: int,
        total: int,
    ) -> bytes:
        """Synthesize one chunk, retrying transient failures with backoff.

        Raises:
            TransientProviderError: Retries exhausted
            PermanentProviderError: Provider rejected the chunk
            JobCancelled: Job was cancelled during a backoff sleep
        """
        voice = brief.voice
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self.provider.synthesize(chunk, voice.voice_id, voice.provider_settings(), voice.model),
                    timeout=self.synthesis_timeout,
                )
            except asyncio.TimeoutError:
                error: TransientProviderError = SynthesisTimeoutError(self.synthesis_timeout)
            except TransientProviderError as e:
                error = e
            except PermanentProviderError as e:
                raise PermanentProviderError(f"Chunk {index + 1} of {total} rejected: {e}") from e

            if attempt >= job.max_retries:
                raise TransientProviderError(
                    f"Chunk {index + 1} of {total} failed after {attempt + 1} attempts: {error}"
                ) from error

            delay = self.retry_base_delay * (2 ** attempt)
            attempt += 1
            job.retry_count += 1
            self._publish(job)
            logger.warning(
                f"Job {job.id}: chunk {index + 1}/{total} attempt {attempt} failed ({error}), "
                f"retrying in {delay:g}s"
            )
            await self._sleep(delay)
            self._check_cancelled(job)

    async def _upload(self, job: Job, audio: bytes, path: str) -> str:
        for attempt in range(1, self.upload_attempts + 1):
            try:
                return await self.object_store.store(audio, path, content_type="audio/mpeg", visibility="public")
            except StorageError as e:
                if attempt >= self.upload_attempts:
                    raise
                logger.warning(f"Job {job.id}: upload attempt {attempt} failed ({e}), retrying")
                self._check_cancelled(job)
        raise StorageError(f"Upload of {path} was not attempted")

    def _fail(self, job: Job, message: str) -> Optional[dict[str, Any]]:
        if job.is_terminal:
            return None
        job.fail(message)
        self._publish(job)
        self.store.record_failure(job.brief_id, message)
        return {
            "event": "failed",
            "jobId": job.id,
            "briefId": job.brief_id,
            "state": job.state.value,
            "error": message,
        }

    async def _notify(self, job: Job, payload: dict[str, Any]) -> Optional[bool]:
        if not job.webhook_url:
            return None
        try:
            return await self._send_webhook(job.webhook_url, payload, timeout=self.webhook_timeout)
        except Exception as e:
            logger.warning(f"Job {job.id}: webhook sender raised {e}")
            return False
