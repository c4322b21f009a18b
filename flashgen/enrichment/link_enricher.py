from __future__ import annotations

import time
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence

from flashgen.utils import get_logger, log_enrichment
from flashgen.utils.fallback import AllProvidersFailed, first_success
from flashgen.flashcards.response_parser import Flashcard, RelatedLink
from .search_backends import SearchBackend, SearchBackendError, build_search_query

LOG = get_logger()

LINKS_HEADER = '\n\n📚 Related links:'


class NoSearchResults(SearchBackendError):
    pass


def format_links_block(links: List[RelatedLink]) -> str:
    lines = [LINKS_HEADER]
    lines.extend(f'• {link.title}: {link.url}' for link in links)
    return '\n'.join(lines)


class LinkEnricher:
    """Best-effort decorator appending related links to flashcard answers.

    Never raises for a card: any failure or timeout returns that card untouched.
    """

    def __init__(self, backends: Sequence[SearchBackend], max_links: int = 3, query_terms: int = 5, concurrency: int = 4, delay_seconds: float = 0.2, card_timeout: float = 8, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.backends = list(backends)
        self.max_links = max_links
        self.query_terms = query_terms
        self.concurrency = max(1, concurrency)
        self.delay_seconds = delay_seconds
        self.card_timeout = card_timeout
        self._sleep = sleep

    async def search_links(self, query: str) -> List[RelatedLink]:
        async def attempt(backend: SearchBackend):
            if not backend.is_enabled():
                raise SearchBackendError(f'{backend.name} disabled')
            links = await asyncio.to_thread(backend.search, query, self.max_links)
            if not links:
                raise NoSearchResults(f'{backend.name} returned no results')
            return links

        try:
            backend, links = await first_success(self.backends, attempt)
        except AllProvidersFailed as e:
            LOG.debug('enrichment_search_exhausted', extra={'query': query, 'error': str(e)})
            return []
        LOG.debug('enrichment_search_hit', extra={'query': query, 'backend': backend.name, 'links': len(links)})
        return links[:self.max_links]

    async def _enrich_card(self, card: Flashcard) -> Flashcard:
        if self.delay_seconds:
            await self._sleep(self.delay_seconds)
        query = build_search_query(card.question, self.query_terms)
        if not query:
            return card
        links = await self.search_links(query)
        if not links:
            return card
        return card.model_copy(update={'answer': card.answer + format_links_block(links), 'related_links': links})

    async def enrich(self, flashcards: List[Flashcard]) -> List[Flashcard]:
        start = time.time()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def guarded(card: Flashcard) -> Flashcard:
            async with semaphore:
                try:
                    return await asyncio.wait_for(self._enrich_card(card), timeout=self.card_timeout)
                except asyncio.TimeoutError:
                    LOG.warning('enrichment_card_timeout', extra={'card_id': card.id})
                except Exception:
                    LOG.exception('enrichment_card_failed', exc_info=True)
                return card

        enriched = await asyncio.gather(*(guarded(c) for c in flashcards))
        count = sum(1 for before, after in zip(flashcards, enriched) if after is not before)
        log_enrichment(len(flashcards), count, int((time.time() - start) * 1000))
        return list(enriched)


def build_default_enricher(settings, session=None) -> Optional[LinkEnricher]:
    from .search_backends import WikipediaSearch, SerpApiSearch, StaticLinkGenerator

    if not settings.ENABLE_LINK_ENRICHMENT:
        return None
    backends = [
        WikipediaSearch(timeout=settings.SEARCH_TIMEOUT, session=session),
        SerpApiSearch(settings.SEARCH_API_KEY, timeout=settings.SEARCH_TIMEOUT, session=session),
        StaticLinkGenerator(),
    ]
    return LinkEnricher(
        backends,
        max_links=settings.ENRICHMENT_MAX_LINKS,
        query_terms=settings.ENRICHMENT_QUERY_TERMS,
        concurrency=settings.ENRICHMENT_CONCURRENCY,
        delay_seconds=settings.ENRICHMENT_DELAY_SECONDS,
        card_timeout=settings.ENRICHMENT_CARD_TIMEOUT,
    )
