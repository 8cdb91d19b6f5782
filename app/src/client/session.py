"""
Translation session: submits a recording and reconciles the dubbing job.

Flow for one recording:

    1. Upload through the relay and receive the dubbing id plus the
       service's expected duration.
    2. Sleep for the expected duration (the deferred check).
    3. Poll the status endpoint, then every ``poll_interval`` seconds,
       until the job reaches a terminal status.
    4. Fetch the dubbed audio exactly once and append the result to the
       conversation log.
    5. Fetch the transcript in the background; failures are only logged.

The deferred check and the poll loop are asyncio tasks held by a
``PendingJob`` handle.  Starting a new recording or swapping languages
cancels both and drops the handle, and every resumption point re-checks
that its handle is still the current one before touching session state.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

from configs.config import get_config
from src.client.conversation import ConversationLog
from src.client.relay_client import RelayClient, RelayError
from src.dubbing.models import is_failed_status, is_terminal_status
from src.dubbing.srt_utils import transcript_to_text

logger = logging.getLogger(__name__)

cfg = get_config()

SleepFunc = Callable[[float], Awaitable[None]]
Listener = Callable[["TranslationSession"], None]


class SessionState(str, Enum):
    """Possible states of a translation session."""

    IDLE = "idle"
    RECORDING = "recording"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    FETCHING = "fetching"
    DONE = "done"
    ERROR = "error"


@dataclass
class Job:
    """One dubbing request, tracked by the service's identifier."""

    dubbing_id: str
    source_lang: str
    target_lang: str
    expected_duration_sec: float
    status: str = "pending"
    audio_url: Optional[str] = None
    audio: Optional[bytes] = None
    transcript: Optional[str] = None


@dataclass
class PendingJob:
    """The in-flight job together with the tasks waiting on it."""

    job: Job
    source_audio: bytes
    deferred_check: Optional[asyncio.Task] = None
    poll_timer: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        for task in (self.deferred_check, self.poll_timer):
            if task is not None and not task.done():
                task.cancel()


class TranslationSession:
    """Session-scoped state for recording, dubbing and the conversation log."""

    def __init__(
        self,
        relay: RelayClient,
        source_lang: str = cfg.DEFAULT_SOURCE_LANG,
        target_lang: str = cfg.DEFAULT_TARGET_LANG,
        poll_interval: float = cfg.POLL_INTERVAL_SECONDS,
        fallback_duration: float = cfg.EXPECTED_DURATION_FALLBACK_SECONDS,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._relay = relay
        self.source_lang = source_lang
        self.target_lang = target_lang
        self._poll_interval = poll_interval
        self._fallback_duration = fallback_duration
        self._sleep = sleep

        self.state = SessionState.IDLE
        self.status_message = ""
        self.error: Optional[str] = None
        self.conversation = ConversationLog()

        self._pending: Optional[PendingJob] = None
        self._generation = 0
        self._settled = asyncio.Event()
        self._transcript_tasks: Set[asyncio.Task] = set()
        self._listeners: List[Listener] = []

    # ── Observers ────────────────────────────────────────────────────────

    @property
    def job(self) -> Optional[Job]:
        return self._pending.job if self._pending else None

    @property
    def pending(self) -> Optional[PendingJob]:
        return self._pending

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    def _set_state(self, state: SessionState, message: str) -> None:
        self.state = state
        self.status_message = message
        logger.debug("Session %s: %s", state.value, message)
        if state in (SessionState.DONE, SessionState.ERROR):
            self._settled.set()
        self._notify()

    def _fail(self, message: str) -> None:
        self.error = message
        logger.error("Translation failed: %s", message)
        self._set_state(SessionState.ERROR, message)

    def _is_current(self, pending: PendingJob) -> bool:
        return self._pending is pending

    # ── User actions ─────────────────────────────────────────────────────

    def _discard_job(self) -> None:
        self._generation += 1
        if self._pending is not None:
            logger.info("Cancelling pending checks for %s", self._pending.job.dubbing_id)
            self._pending.cancel()
            self._pending = None
        self._settled.clear()
        self.error = None

    def start_recording(self) -> None:
        """Begin a new recording; any job still in flight is abandoned."""
        self._discard_job()
        self._set_state(SessionState.RECORDING, "Recording...")

    def swap_languages(self) -> None:
        """Swap source and target languages, abandoning any job in flight."""
        self._discard_job()
        self.source_lang, self.target_lang = self.target_lang, self.source_lang
        self._set_state(
            SessionState.IDLE,
            f"Languages swapped: {self.source_lang} -> {self.target_lang}",
        )

    async def submit(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> Optional[Job]:
        """
        Upload a recording and schedule the first status check.

        Returns the new Job, or None when the upload failed or the session
        moved on (new recording, language swap) while it was in progress.
        """
        self._discard_job()
        generation = self._generation
        source_lang, target_lang = self.source_lang, self.target_lang
        self._set_state(SessionState.UPLOADING, "Uploading recording...")

        try:
            result = await self._relay.upload(
                audio, source_lang, target_lang, filename, content_type
            )
        except RelayError as exc:
            if generation == self._generation:
                self._fail(f"Upload failed: {exc.message}")
            return None

        if generation != self._generation:
            logger.info("Dropping upload result %s; session moved on", result.dubbing_id)
            return None

        expected = result.expected_duration_sec
        if expected is None or expected < 0:
            expected = self._fallback_duration

        job = Job(
            dubbing_id=result.dubbing_id,
            source_lang=source_lang,
            target_lang=target_lang,
            expected_duration_sec=expected,
        )
        pending = PendingJob(job=job, source_audio=audio)
        self._pending = pending
        pending.deferred_check = asyncio.create_task(self._deferred_check(pending))
        self._set_state(
            SessionState.PROCESSING,
            f"Translating... (estimated {expected:g}s)",
        )
        return job

    # ── Reconciliation ───────────────────────────────────────────────────

    async def _deferred_check(self, pending: PendingJob) -> None:
        await self._sleep(pending.job.expected_duration_sec)
        if not self._is_current(pending):
            return
        pending.poll_timer = asyncio.create_task(self._poll(pending))

    async def _poll(self, pending: PendingJob) -> None:
        job = pending.job
        while True:
            try:
                metadata = await self._relay.get_status(job.dubbing_id)
            except RelayError as exc:
                if self._is_current(pending):
                    self._fail(f"Status check failed: {exc.message}")
                return
            if not self._is_current(pending):
                return

            job.status = metadata.status
            if is_terminal_status(job.status):
                await self._fetch_result(pending)
                return
            if is_failed_status(job.status):
                self._fail(f"Dubbing failed: {metadata.error or job.status}")
                return

            self._set_state(SessionState.PROCESSING, f"Translating... ({job.status})")
            await self._sleep(self._poll_interval)
            if not self._is_current(pending):
                return

    async def _fetch_result(self, pending: PendingJob) -> None:
        job = pending.job
        self._set_state(SessionState.FETCHING, "Fetching translated audio...")
        try:
            audio = await self._relay.fetch_audio(job.dubbing_id, job.target_lang)
        except RelayError as exc:
            if self._is_current(pending):
                self._fail(f"Audio fetch failed: {exc.message}")
            return
        if not self._is_current(pending):
            return

        job.audio = audio
        job.audio_url = self._relay.audio_url(job.dubbing_id, job.target_lang)
        entry = self.conversation.append(
            dubbing_id=job.dubbing_id,
            source_lang=job.source_lang,
            target_lang=job.target_lang,
            source_audio=pending.source_audio,
            translated_audio=audio,
            audio_url=job.audio_url,
            download_url=self._relay.download_url(job.dubbing_id, job.target_lang),
        )
        self._set_state(SessionState.DONE, "Translation complete")

        task = asyncio.create_task(self._fetch_transcript(entry.entry_id, job))
        self._transcript_tasks.add(task)
        task.add_done_callback(self._transcript_tasks.discard)

    async def _fetch_transcript(self, entry_id: int, job: Job) -> None:
        try:
            body = await self._relay.fetch_transcript(
                job.dubbing_id, job.source_lang, job.target_lang
            )
        except RelayError as exc:
            logger.warning("Transcript for %s unavailable: %s", job.dubbing_id, exc.message)
            return

        text = transcript_to_text(body)
        if not text:
            logger.info("Transcript for %s is empty", job.dubbing_id)
            return
        self.conversation.attach_transcript(entry_id, text)
        job.transcript = text
        self._notify()

    # ── Waiting / shutdown ───────────────────────────────────────────────

    async def wait_until_settled(self) -> SessionState:
        """Wait until the current job is done or has failed."""
        await self._settled.wait()
        return self.state

    async def wait_for_transcripts(self) -> None:
        if self._transcript_tasks:
            await asyncio.gather(*list(self._transcript_tasks))

    async def aclose(self) -> None:
        """Cancel pending checks and background transcript fetches."""
        self._discard_job()
        tasks = list(self._transcript_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
