"""Turns text, PDF text or a transcript into one bounded prompt payload."""
import os
import re
from enum import Enum

MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', '50000'))

# printable ASCII plus the whitespace we keep
_UNSAFE_CHARS = re.compile(r'[^\x20-\x7E\n\r\t]')
_EXTRA_BLANK_LINES = re.compile(r'\n\s*\n(\s*\n)+')


class SourceType(str, Enum):
    TEXT = 'text'
    PDF = 'pdf'
    VOICE = 'voice'


class ContentError(Exception):
    """Input problem with the study material itself."""

    error = 'Invalid content'


class EmptyContent(ContentError):
    error = 'Content is required'


class ContentTooLarge(ContentError):
    error = 'Content too long'


def strip_unsafe_characters(text: str) -> str:
    return _UNSAFE_CHARS.sub('', text or '')


def normalize_content(source_type, payload: str, max_length: int = MAX_CONTENT_LENGTH) -> str:
    source_type = SourceType(source_type)
    content = strip_unsafe_characters(payload)
    content = _EXTRA_BLANK_LINES.sub('\n\n', content).strip()
    if not content:
        raise EmptyContent(f'No usable {source_type.value} content after cleanup')
    if len(content) > max_length:
        if source_type == SourceType.PDF:
            raise ContentTooLarge(f'PDF text too long ({len(content)} > {max_length} characters)')
        content = content[:max_length].rstrip()
    return content
