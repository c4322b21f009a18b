"""Flashcard generation: content normalization, prompting, provider calls and response validation"""

from .normalizer import SourceType, ContentError, EmptyContent, ContentTooLarge, normalize_content
from .prompt_builder import GenerationOptions, build_prompt, build_messages, parse_quantity
from .provider import (
	GenerationClient,
	GenerationProviderError,
	ProviderTimeout,
	ProviderRateLimited,
	ProviderAuthFailed,
	ProviderError,
	ProviderUnavailable,
)
from .response_parser import Flashcard, RelatedLink, NoFlashcardsGenerated, parse_flashcards, validate_flashcards
from .generator import FlashcardGenerator, GenerationRequest, GenerationResult

__all__ = [
	'SourceType',
	'ContentError',
	'EmptyContent',
	'ContentTooLarge',
	'normalize_content',
	'GenerationOptions',
	'build_prompt',
	'build_messages',
	'parse_quantity',
	'GenerationClient',
	'GenerationProviderError',
	'ProviderTimeout',
	'ProviderRateLimited',
	'ProviderAuthFailed',
	'ProviderError',
	'ProviderUnavailable',
	'Flashcard',
	'RelatedLink',
	'NoFlashcardsGenerated',
	'parse_flashcards',
	'validate_flashcards',
	'FlashcardGenerator',
	'GenerationRequest',
	'GenerationResult',
]
