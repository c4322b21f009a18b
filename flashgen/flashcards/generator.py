"""Flashcard generation service.

Runs normalize -> prompt -> provider call -> parse/validate and, when an
enricher is configured, the best-effort link enrichment pass.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flashgen.utils import get_logger, log_flashcard_generation
from .normalizer import SourceType, normalize_content, MAX_CONTENT_LENGTH
from .prompt_builder import GenerationOptions, build_prompt, parse_quantity
from .provider import GenerationClient
from .response_parser import Flashcard, parse_flashcards, MAX_FLASHCARDS

LOG = get_logger()


@dataclass
class GenerationRequest:
    source_type: SourceType
    raw_content: str
    options: GenerationOptions = field(default_factory=GenerationOptions)
    request_id: Optional[str] = None


@dataclass
class GenerationResult:
    flashcards: List[Flashcard]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.flashcards)


class FlashcardGenerator:
    def __init__(self, client: GenerationClient, enricher=None, max_content_length: int = MAX_CONTENT_LENGTH, max_flashcards: int = MAX_FLASHCARDS):
        self.client = client
        self.enricher = enricher
        self.max_content_length = max_content_length
        self.max_flashcards = max_flashcards

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        start = time.time()
        source_type = SourceType(request.source_type)
        content = normalize_content(source_type, request.raw_content, self.max_content_length)
        prompt = build_prompt(content, source_type, request.options, self.max_flashcards)

        raw_text = await self.client.complete(prompt, request_id=request.request_id)
        parsed = parse_flashcards(raw_text, max_flashcards=self.max_flashcards)
        flashcards = parsed.flashcards

        enriched = False
        if self.enricher is not None:
            flashcards = await self.enricher.enrich(flashcards)
            enriched = any(card.related_links for card in flashcards)

        duration_ms = int((time.time() - start) * 1000)
        log_flashcard_generation(
            request.request_id,
            source_type.value,
            len(flashcards),
            parsed.strategy,
            duration_ms,
            degraded=parsed.degraded,
            enriched=enriched,
        )
        return GenerationResult(
            flashcards=flashcards,
            metadata={
                'processingTimeMs': duration_ms,
                'model': self.client.model,
                'strategy': parsed.strategy,
                'parsingDegraded': parsed.degraded,
                'requestedQuantity': parse_quantity(request.options.quantity, self.max_flashcards),
                'enriched': enriched,
                'contentLength': len(content),
            },
        )
