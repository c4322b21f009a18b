"""In-process stand-ins for the generation, transcription and search providers."""
from typing import List, Optional


class StubCompletionClient:
    """Quacks like GenerationClient; returns canned text or raises a canned error."""

    def __init__(self, response: Optional[str] = None, error: Optional[Exception] = None, model: str = 'stub-model', configured: bool = True):
        self.response = response
        self.error = error
        self.model = model
        self.configured = configured
        self.prompts: List[str] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def complete(self, prompt: str, request_id: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class StubTranscriptionBackend:
    def __init__(self, name: str, text: Optional[str] = None, error: Optional[Exception] = None, enabled: bool = True):
        self.name = name
        self.text = text
        self.error = error
        self.enabled = enabled
        self.calls = 0

    def is_enabled(self) -> bool:
        return self.enabled

    async def attempt(self, path: str, filename: str) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text


class StubSearchBackend:
    def __init__(self, name: str, links=None, error: Optional[Exception] = None, enabled: bool = True):
        self.name = name
        self.links = links or []
        self.error = error
        self.enabled = enabled
        self.queries: List[str] = []

    def is_enabled(self) -> bool:
        return self.enabled

    def search(self, query: str, limit: int):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.links)[:limit]


async def no_sleep(seconds: float):
    return None
