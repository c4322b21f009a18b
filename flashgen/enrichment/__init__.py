"""Best-effort related-link enrichment for generated flashcards"""

from .search_backends import (
	SearchBackend,
	SearchBackendError,
	WikipediaSearch,
	SerpApiSearch,
	StaticLinkGenerator,
	build_search_query,
)
from .link_enricher import LinkEnricher, format_links_block, build_default_enricher

__all__ = [
	'SearchBackend',
	'SearchBackendError',
	'WikipediaSearch',
	'SerpApiSearch',
	'StaticLinkGenerator',
	'build_search_query',
	'LinkEnricher',
	'format_links_block',
	'build_default_enricher',
]
