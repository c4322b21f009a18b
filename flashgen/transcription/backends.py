"""Speech-to-text backends.

Every backend speaks the OpenAI audio transcription API, either against
api.openai.com or an OpenAI-compatible host such as Groq. SDK exceptions are
mapped onto the transcription error classes here so the chain never sees them.
"""
from __future__ import annotations

import asyncio
import pathlib
from typing import Optional, Protocol, List

from openai import (
    AsyncOpenAI,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    OpenAIError,
    RateLimitError,
)

from flashgen.utils import get_logger

LOG = get_logger()

PAYLOAD_REJECTED_STATUSES = (400, 413, 415, 422)


class TranscriptionError(Exception):
    outcome = 'other_failure'


class TranscriptionAuthError(TranscriptionError):
    outcome = 'auth_failed'


class TranscriptionRateLimited(TranscriptionError):
    outcome = 'rate_limited'


class TranscriptionPayloadRejected(TranscriptionError):
    outcome = 'payload_rejected'


class TranscriptionTimeout(TranscriptionError):
    outcome = 'timeout'


class NoSpeechDetected(TranscriptionError):
    outcome = 'no_speech'


class TranscriptionBackendError(TranscriptionError):
    outcome = 'other_failure'


def classify_transcription_error(e: Exception) -> str:
    if isinstance(e, TranscriptionError):
        return e.outcome
    if isinstance(e, asyncio.TimeoutError):
        return TranscriptionTimeout.outcome
    return TranscriptionBackendError.outcome


def map_openai_error(backend: str, e: OpenAIError) -> TranscriptionError:
    if isinstance(e, APITimeoutError):
        return TranscriptionTimeout(f'{backend}: request timed out')
    if isinstance(e, RateLimitError):
        return TranscriptionRateLimited(f'{backend}: provider rate limit')
    if isinstance(e, AuthenticationError):
        return TranscriptionAuthError(f'{backend}: authentication failed')
    if isinstance(e, APIStatusError):
        if e.status_code == 429:
            return TranscriptionRateLimited(f'{backend}: provider rate limit')
        if e.status_code in (401, 403):
            return TranscriptionAuthError(f'{backend}: authentication failed')
        if e.status_code in PAYLOAD_REJECTED_STATUSES:
            return TranscriptionPayloadRejected(f'{backend}: audio rejected (HTTP {e.status_code})')
        return TranscriptionBackendError(f'{backend}: HTTP {e.status_code}')
    if isinstance(e, APIConnectionError):
        return TranscriptionBackendError(f'{backend}: connection failed')
    return TranscriptionBackendError(f'{backend}: {e}')


class TranscriptionBackend(Protocol):
    name: str

    def is_enabled(self) -> bool:
        ...

    async def attempt(self, path: str, filename: str) -> str:
        ...


class WhisperBackend:
    """OpenAI-compatible ``audio.transcriptions`` backend."""

    def __init__(self, name: str, api_key: Optional[str], model: str, base_url: Optional[str] = None, timeout: float = 60, language: Optional[str] = 'en', client: Optional[AsyncOpenAI] = None):
        self.name = name
        self.model = model
        self.timeout = timeout
        self.language = language
        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        else:
            self._client = None

    def is_enabled(self) -> bool:
        return self._client is not None

    async def attempt(self, path: str, filename: str) -> str:
        if not self.is_enabled():
            raise TranscriptionAuthError(f'{self.name}: API key not configured')
        audio = await asyncio.to_thread(pathlib.Path(path).read_bytes)
        kwargs = {'model': self.model, 'file': (filename, audio), 'timeout': self.timeout}
        if self.language:
            kwargs['language'] = self.language
        try:
            resp = await self._client.audio.transcriptions.create(**kwargs)
        except OpenAIError as e:
            raise map_openai_error(self.name, e) from e
        return getattr(resp, 'text', None) or ''


def build_default_backends(settings) -> List[WhisperBackend]:
    return [
        WhisperBackend(
            'openai-whisper',
            settings.OPENAI_API_KEY,
            settings.OPENAI_TRANSCRIPTION_MODEL,
            timeout=settings.TRANSCRIPTION_TIMEOUT,
            language=settings.TRANSCRIPTION_LANGUAGE,
        ),
        WhisperBackend(
            'groq-whisper',
            settings.GROQ_API_KEY,
            settings.GROQ_TRANSCRIPTION_MODEL,
            base_url=settings.GROQ_BASE_URL,
            timeout=settings.TRANSCRIPTION_TIMEOUT,
            language=settings.TRANSCRIPTION_LANGUAGE,
        ),
    ]
