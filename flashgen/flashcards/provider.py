"""Chat-completions client for flashcard generation.

Wraps ``openai.AsyncOpenAI`` (any OpenAI-compatible host via base_url) and
classifies every failure into the provider taxonomy below so callers can pick
user-facing messages without touching SDK exceptions.
"""
from __future__ import annotations

import time
from typing import Optional, List, Dict, Any

from openai import (
    AsyncOpenAI,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    OpenAIError,
    RateLimitError,
)
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from flashgen.utils import get_logger, log_llm_call
from .prompt_builder import build_messages

LOG = get_logger()


class GenerationProviderError(Exception):
    pass


class ProviderTimeout(GenerationProviderError):
    pass


class ProviderRateLimited(GenerationProviderError):
    pass


class ProviderAuthFailed(GenerationProviderError):
    pass


class ProviderError(GenerationProviderError):
    pass


class ProviderUnavailable(ProviderError):
    pass


def classify_openai_error(e: Exception) -> GenerationProviderError:
    if isinstance(e, APITimeoutError):
        return ProviderTimeout(str(e))
    if isinstance(e, RateLimitError):
        return ProviderRateLimited(str(e))
    if isinstance(e, AuthenticationError):
        return ProviderAuthFailed(str(e))
    if isinstance(e, APIStatusError):
        if e.status_code == 429:
            return ProviderRateLimited(str(e))
        if e.status_code == 401:
            return ProviderAuthFailed(str(e))
        if e.status_code >= 500:
            return ProviderUnavailable(f'provider returned HTTP {e.status_code}: {e.message}')
        return ProviderError(f'provider returned HTTP {e.status_code}: {e.message}')
    if isinstance(e, APIConnectionError):
        return ProviderUnavailable(f'connection to provider failed: {e}')
    return ProviderError(str(e))


class GenerationClient:
    def __init__(self, api_key: Optional[str], model: str, base_url: Optional[str] = None, timeout: float = 30, temperature: float = 0.7, max_tokens: int = 2000, retry_attempts: int = 1, client: Optional[AsyncOpenAI] = None):
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry_attempts = max(1, retry_attempts)
        if client is not None:
            self._client = client
        elif api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
        else:
            self._client = None
            LOG.warning('generation_api_key_missing')
        LOG.info('GenerationClient initialized', extra={'model': self.model, 'base_url': base_url, 'configured': self.is_configured})

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def _call(self, messages: List[Dict[str, Any]], request_id: Optional[str] = None) -> str:
        start = time.time()
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except OpenAIError as e:
            classified = classify_openai_error(e)
            LOG.warning('generation_provider_error', extra={'request_id': request_id, 'error_type': type(classified).__name__, 'error': str(e)})
            raise classified from e
        duration_ms = int((time.time() - start) * 1000)
        usage = getattr(resp, 'usage', None)
        log_llm_call(request_id, self.model, getattr(usage, 'prompt_tokens', 0) or 0, getattr(usage, 'completion_tokens', 0) or 0, duration_ms)
        choices = getattr(resp, 'choices', None) or []
        if not choices:
            raise ProviderError('provider returned no choices')
        text = choices[0].message.content
        if not text or not text.strip():
            raise ProviderError('provider returned an empty completion')
        return text

    async def complete(self, prompt: str, request_id: Optional[str] = None) -> str:
        if not self.is_configured:
            raise ProviderAuthFailed('generation API key is not configured')
        messages = build_messages(prompt)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((ProviderTimeout, ProviderUnavailable)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._call(messages, request_id=request_id)
