"""Speech-to-text fallback chain for voice uploads"""

from .backends import (
	TranscriptionBackend,
	WhisperBackend,
	TranscriptionError,
	TranscriptionAuthError,
	TranscriptionRateLimited,
	TranscriptionPayloadRejected,
	TranscriptionTimeout,
	NoSpeechDetected,
	TranscriptionBackendError,
	classify_transcription_error,
	build_default_backends,
)
from .chain import (
	TranscriptionChain,
	TranscriptionAttempt,
	TranscriptionResult,
	AudioFileUnreadable,
	placeholder_transcript,
	format_duration,
	build_default_chain,
)

__all__ = [
	'TranscriptionBackend',
	'WhisperBackend',
	'TranscriptionError',
	'TranscriptionAuthError',
	'TranscriptionRateLimited',
	'TranscriptionPayloadRejected',
	'TranscriptionTimeout',
	'NoSpeechDetected',
	'TranscriptionBackendError',
	'classify_transcription_error',
	'build_default_backends',
	'TranscriptionChain',
	'TranscriptionAttempt',
	'TranscriptionResult',
	'AudioFileUnreadable',
	'placeholder_transcript',
	'format_duration',
	'build_default_chain',
]
