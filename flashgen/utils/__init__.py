"""Utility subpackage: logging, uploads, PDF extraction, rate limiting"""

from .logger import (
	get_logger,
	configure_log_level,
	log_request,
	log_error,
	log_llm_call,
	log_flashcard_generation,
	log_transcription_fallback,
	log_enrichment,
	set_request_context,
	get_request_context,
)
from .file_handler import FileHandler, FileValidationError, normalize_mime
from .pdf_extractor import extract_pdf_text, PDFExtractionError
from .rate_limiter import SlidingWindowRateLimiter, WindowExhausted
from .fallback import first_success, AllProvidersFailed, ProviderFailure

__all__ = [
	'get_logger',
	'configure_log_level',
	'log_request',
	'log_error',
	'log_llm_call',
	'log_flashcard_generation',
	'log_transcription_fallback',
	'log_enrichment',
	'set_request_context',
	'get_request_context',
	'FileHandler',
	'FileValidationError',
	'normalize_mime',
	'extract_pdf_text',
	'PDFExtractionError',
	'SlidingWindowRateLimiter',
	'WindowExhausted',
	'first_success',
	'AllProvidersFailed',
	'ProviderFailure',
]
