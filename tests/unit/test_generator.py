import asyncio

import pytest

from flashgen.flashcards import (
    ContentError,
    FlashcardGenerator,
    GenerationOptions,
    GenerationRequest,
    ProviderTimeout,
    RelatedLink,
    SourceType,
)
from tests.fixtures.mock_providers import StubCompletionClient
from tests.fixtures.sample_data import PHOTOSYNTHESIS_TEXT, VALID_JSON_RESPONSE, GARBAGE_RESPONSE


class TagEnricher:
    async def enrich(self, flashcards):
        link = RelatedLink(title='Docs', url='https://example.test')
        return [c.model_copy(update={'related_links': [link]}) for c in flashcards]


def _request(content=PHOTOSYNTHESIS_TEXT, source=SourceType.TEXT, quantity='3 Cards'):
    return GenerationRequest(source_type=source, raw_content=content, options=GenerationOptions(quantity=quantity), request_id='req-1')


@pytest.mark.unit
def test_generate_returns_cards_and_metadata():
    client = StubCompletionClient(response=VALID_JSON_RESPONSE)
    result = asyncio.run(FlashcardGenerator(client).generate(_request()))
    assert result.count == 3
    meta = result.metadata
    assert meta['model'] == 'stub-model'
    assert meta['strategy'] == 'json'
    assert meta['parsingDegraded'] is False
    assert meta['requestedQuantity'] == 3
    assert meta['enriched'] is False
    assert meta['contentLength'] == len(PHOTOSYNTHESIS_TEXT)
    assert 'Content: Photosynthesis' in client.prompts[0]


@pytest.mark.unit
def test_degraded_parse_is_flagged():
    client = StubCompletionClient(response=GARBAGE_RESPONSE)
    result = asyncio.run(FlashcardGenerator(client).generate(_request()))
    assert result.count == 1
    assert result.metadata['parsingDegraded'] is True


@pytest.mark.unit
def test_enricher_runs_after_validation():
    client = StubCompletionClient(response=VALID_JSON_RESPONSE)
    result = asyncio.run(FlashcardGenerator(client, enricher=TagEnricher()).generate(_request()))
    assert result.metadata['enriched'] is True
    assert all(c.related_links for c in result.flashcards)


@pytest.mark.unit
def test_empty_content_never_reaches_provider():
    client = StubCompletionClient(response=VALID_JSON_RESPONSE)
    with pytest.raises(ContentError):
        asyncio.run(FlashcardGenerator(client).generate(_request(content='\x00\x00  ')))
    assert client.prompts == []


@pytest.mark.unit
def test_provider_errors_propagate_classified():
    client = StubCompletionClient(error=ProviderTimeout('took too long'))
    with pytest.raises(ProviderTimeout):
        asyncio.run(FlashcardGenerator(client).generate(_request()))
