from __future__ import annotations

import os
import time
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence

from tenacity import AsyncRetrying, stop_after_attempt, retry_if_exception

from flashgen.utils import (
    get_logger,
    log_transcription_fallback,
    SlidingWindowRateLimiter,
    WindowExhausted,
    first_success,
    AllProvidersFailed,
)
from .backends import (
    TranscriptionBackend,
    TranscriptionAuthError,
    TranscriptionRateLimited,
    TranscriptionPayloadRejected,
    NoSpeechDetected,
    classify_transcription_error,
)

LOG = get_logger()

MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', '50000'))
PLACEHOLDER_ENGINE = 'placeholder'
# 128 kbps
AUDIO_BYTES_PER_SECOND = 16000

PLACEHOLDER_TEMPLATE = (
    'Automatic transcription is currently unavailable for the audio file "{filename}" '
    '(estimated duration {duration}). '
    'Please transcribe the recording manually and resubmit it as text to generate flashcards.'
)


class AudioFileUnreadable(Exception):
    pass


@dataclass
class TranscriptionAttempt:
    backend_name: str
    started_at: float
    outcome: str
    detail: str = ''


@dataclass
class TranscriptionResult:
    text: str
    engine: str
    truncated: bool = False
    placeholder: bool = False
    attempts: List[TranscriptionAttempt] = field(default_factory=list)


def format_duration(seconds: float) -> str:
    total = int(round(seconds))
    return f'{total // 60}:{total % 60:02d}'


def placeholder_transcript(filename: str, size_bytes: int) -> str:
    return PLACEHOLDER_TEMPLATE.format(filename=filename, duration=format_duration(size_bytes / AUDIO_BYTES_PER_SECOND))


class TranscriptionChain:
    """Ordered speech-to-text fallback chain.

    Each backend has its own sliding request window. An exhausted window is
    waited on once when the wait is short enough, otherwise the backend counts
    as rate limited and the next one runs. When every backend fails the
    request still succeeds with a placeholder transcript, unless a backend
    rejected the audio itself.
    """

    def __init__(self, backends: Sequence[TranscriptionBackend], limiter: Optional[SlidingWindowRateLimiter] = None, max_content_length: int = MAX_CONTENT_LENGTH, max_window_wait: float = 5.0, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep, clock: Callable[[], float] = time.time):
        self.backends = list(backends)
        self.limiter = limiter or SlidingWindowRateLimiter()
        self.max_content_length = max_content_length
        self.max_window_wait = max_window_wait
        self._sleep = sleep
        self._clock = clock

    @property
    def enabled_backends(self) -> List[str]:
        return [b.name for b in self.backends if b.is_enabled()]

    def _should_wait(self, e: BaseException) -> bool:
        return isinstance(e, WindowExhausted) and e.retry_after <= self.max_window_wait

    @staticmethod
    def _window_wait(retry_state) -> float:
        return retry_state.outcome.exception().retry_after

    async def _acquire_slot(self, backend: TranscriptionBackend):
        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=self._window_wait,
            retry=retry_if_exception(self._should_wait),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self.limiter.acquire(backend.name)
        except WindowExhausted as e:
            raise TranscriptionRateLimited(f'{backend.name}: local request window exhausted') from e

    async def _run_backend(self, backend: TranscriptionBackend, path: str, filename: str) -> str:
        if not backend.is_enabled():
            raise TranscriptionAuthError(f'{backend.name}: not configured')
        await self._acquire_slot(backend)
        text = (await backend.attempt(path, filename) or '').strip()
        if not text:
            raise NoSpeechDetected(f'{backend.name}: empty transcript')
        return text

    async def transcribe(self, path: str, filename: Optional[str] = None) -> TranscriptionResult:
        start = time.time()
        filename = filename or os.path.basename(path)
        try:
            size_bytes = os.path.getsize(path)
        except OSError as e:
            raise AudioFileUnreadable(f'Audio file {filename} cannot be read') from e
        if not os.access(path, os.R_OK):
            raise AudioFileUnreadable(f'Audio file {filename} cannot be read')

        attempts: List[TranscriptionAttempt] = []

        async def run(backend):
            started = self._clock()
            try:
                text = await self._run_backend(backend, path, filename)
            except Exception as e:
                attempts.append(TranscriptionAttempt(backend.name, started, classify_transcription_error(e), str(e)))
                raise
            attempts.append(TranscriptionAttempt(backend.name, started, 'success'))
            return text

        try:
            backend, text = await first_success(self.backends, run, classify=classify_transcription_error)
            result = TranscriptionResult(text=text, engine=backend.name, attempts=attempts)
            if len(text) > self.max_content_length:
                result.text = text[:self.max_content_length]
                result.truncated = True
        except AllProvidersFailed as e:
            rejected = [f for f in e.failures if f.outcome == TranscriptionPayloadRejected.outcome]
            if rejected:
                log_transcription_fallback(filename, [a.__dict__ for a in attempts], 'none', int((time.time() - start) * 1000))
                raise TranscriptionPayloadRejected(str(rejected[0].error)) from rejected[0].error
            LOG.warning('transcription_placeholder_used', extra={'file': filename, 'failures': len(e.failures)})
            result = TranscriptionResult(
                text=placeholder_transcript(filename, size_bytes),
                engine=PLACEHOLDER_ENGINE,
                placeholder=True,
                attempts=attempts,
            )

        log_transcription_fallback(filename, [a.__dict__ for a in attempts], result.engine, int((time.time() - start) * 1000))
        return result


def build_default_chain(settings) -> TranscriptionChain:
    from .backends import build_default_backends

    limiter = SlidingWindowRateLimiter(settings.TRANSCRIPTION_RATE_LIMIT, settings.TRANSCRIPTION_RATE_WINDOW)
    return TranscriptionChain(
        build_default_backends(settings),
        limiter=limiter,
        max_content_length=settings.MAX_CONTENT_LENGTH,
        max_window_wait=settings.TRANSCRIPTION_MAX_WINDOW_WAIT,
    )
