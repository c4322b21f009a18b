"""Response normalization for flashcard generation output.

Model output is untrusted free text. It is parsed into loosely-typed
``RawCandidate`` records (strict JSON first, then a line scanner, then a single
synthesized card), and every candidate is validated into a ``Flashcard`` that
always satisfies the card invariants:

- ``id`` unique within the batch
- ``question``/``answer`` non-empty, trimmed
- ``difficulty`` one of Easy, Medium, Hard

The only rejection rule: a candidate with neither a question nor an answer.
"""
from __future__ import annotations

import os
import re
import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flashgen.utils import get_logger

LOG = get_logger()

MAX_FLASHCARDS = int(os.getenv('MAX_FLASHCARDS', '25'))
PREVIEW_CHARS = 200
DIFFICULTIES = ('Easy', 'Medium', 'Hard')
DEFAULT_DIFFICULTY = 'Medium'
FALLBACK_QUESTION = 'What is the main topic of this content?'

_FENCE_WRAPPER = re.compile(r'^\s*```[a-zA-Z]*[ \t]*\n(.*)\n\s*```\s*$', re.DOTALL)
_CODE_FENCE = re.compile(r'```[a-zA-Z]*\s*\n?(.*?)\n?\s*```', re.DOTALL)
_DIFFICULTY_WORD = re.compile(r'easy|medium|hard', re.IGNORECASE)

QUESTION_KEYS = ('question', 'q', 'front')
ANSWER_KEYS = ('answer', 'a', 'back')
DIFFICULTY_KEYS = ('difficulty', 'level')


class NoFlashcardsGenerated(Exception):
    pass


class RelatedLink(BaseModel):
    title: str
    url: str
    description: str = ''


class Flashcard(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    difficulty: Literal['Easy', 'Medium', 'Hard'] = DEFAULT_DIFFICULTY
    related_links: Optional[List[RelatedLink]] = Field(None, alias='relatedLinks')

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class RawCandidate:
    id: Any = None
    question: Any = None
    answer: Any = None
    difficulty: Any = None
    related_links: Any = None
    has_question: bool = False
    has_answer: bool = False


@dataclass
class ParseResult:
    flashcards: List[Flashcard] = field(default_factory=list)
    strategy: str = 'json'
    degraded: bool = False


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def coerce_difficulty(value: Any) -> str:
    if isinstance(value, str):
        v = value.strip().lower()
        for d in DIFFICULTIES:
            if v == d.lower():
                return d
    return DEFAULT_DIFFICULTY


def candidate_from_mapping(obj: Any) -> RawCandidate:
    if not isinstance(obj, dict):
        return RawCandidate()
    lowered = {str(k).strip().lower(): v for k, v in obj.items()}

    def first(keys):
        for k in keys:
            if k in lowered and lowered[k] is not None:
                return lowered[k]
        return None

    question = first(QUESTION_KEYS)
    answer = first(ANSWER_KEYS)
    return RawCandidate(
        id=lowered.get('id'),
        question=question,
        answer=answer,
        difficulty=first(DIFFICULTY_KEYS),
        related_links=first(('relatedlinks', 'related_links')),
        has_question=_is_scalar(question),
        has_answer=_is_scalar(answer),
    )


def strip_code_fences(text: str) -> str:
    m = _FENCE_WRAPPER.match(text)
    if m:
        return m.group(1)
    m = _CODE_FENCE.search(text)
    if m:
        return m.group(1)
    return text


def _load_array(text: str) -> Optional[list]:
    start = text.find('[')
    end = text.rfind(']')
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, list) else None


def parse_json_candidates(raw_text: str) -> Optional[List[RawCandidate]]:
    """Strict parse of the bracketed array; None when the text holds no JSON array.

    The raw text is tried first, the fence-stripped text only after that fails.
    """
    raw_text = raw_text or ''
    data = _load_array(raw_text)
    if data is None:
        stripped = strip_code_fences(raw_text)
        if stripped != raw_text:
            data = _load_array(stripped)
    if data is None:
        LOG.debug('flashcard_json_parse_failed')
        return None
    return [candidate_from_mapping(item) for item in data]


def _labelled_value(line: str, token: str) -> Optional[str]:
    head, sep, tail = line.partition(':')
    if not sep or token not in head.lower():
        return None
    return tail.strip().lstrip('*_ ').strip()


def extract_line_candidates(raw_text: str) -> List[RawCandidate]:
    out: List[RawCandidate] = []
    current: Optional[RawCandidate] = None

    def complete(c: Optional[RawCandidate]) -> bool:
        return c is not None and bool(c.question) and bool(c.answer)

    for line in (raw_text or '').splitlines():
        line = line.strip()
        if not line:
            continue
        question = _labelled_value(line, 'question')
        if question is not None:
            if complete(current):
                out.append(current)
            current = RawCandidate(question=question, has_question=True)
            continue
        answer = _labelled_value(line, 'answer')
        if answer is not None:
            if current is None:
                current = RawCandidate()
            current.answer = answer
            current.has_answer = True
            continue
        if 'difficulty' in line.lower() and current is not None:
            m = _DIFFICULTY_WORD.search(line)
            current.difficulty = m.group().capitalize() if m else DEFAULT_DIFFICULTY
    if complete(current):
        out.append(current)
    return out


def placeholder_candidate(raw_text: str) -> RawCandidate:
    text = (raw_text or '').strip()
    preview = text[:PREVIEW_CHARS] + ('...' if len(text) > PREVIEW_CHARS else '')
    return RawCandidate(
        question=FALLBACK_QUESTION,
        answer=f'The generated response could not be parsed into flashcards. Content preview: {preview}',
        difficulty=DEFAULT_DIFFICULTY,
        has_question=True,
        has_answer=True,
    )


def _clean_text(value: Any) -> str:
    return str(value).strip() if _is_scalar(value) else ''


def _clean_links(value: Any) -> Optional[List[RelatedLink]]:
    if not isinstance(value, list):
        return None
    try:
        return [RelatedLink.model_validate(v) for v in value]
    except ValidationError:
        return None


def validate_candidates(candidates: List[RawCandidate], now_ms: Optional[int] = None) -> List[Flashcard]:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    out: List[Flashcard] = []
    seen_ids = set()
    for c in candidates:
        if not c.has_question and not c.has_answer:
            continue
        position = len(out) + 1
        card_id = _clean_text(c.id)
        if not card_id or card_id in seen_ids:
            card_id = f'{now_ms}-{position - 1}'
            while card_id in seen_ids:
                card_id += 'x'
        seen_ids.add(card_id)
        out.append(Flashcard(
            id=card_id,
            question=_clean_text(c.question) or f'Question {position}',
            answer=_clean_text(c.answer) or f'Answer {position}',
            difficulty=coerce_difficulty(c.difficulty),
            related_links=_clean_links(c.related_links),
        ))
    return out


def validate_flashcards(cards: List[Any], now_ms: Optional[int] = None) -> List[Flashcard]:
    """Re-run validation on Flashcard models or plain dicts."""
    mappings = [c.to_response() if isinstance(c, Flashcard) else c for c in cards]
    return validate_candidates([candidate_from_mapping(m) for m in mappings], now_ms=now_ms)


def parse_flashcards(raw_text: str, max_flashcards: int = MAX_FLASHCARDS, now_ms: Optional[int] = None) -> ParseResult:
    strategy = 'json'
    degraded = False
    candidates = parse_json_candidates(raw_text)
    if candidates is None:
        strategy = 'line_fallback'
        candidates = extract_line_candidates(raw_text)
        if not candidates:
            strategy = 'placeholder'
            degraded = True
            candidates = [placeholder_candidate(raw_text)]
            LOG.warning('flashcard_parsing_degraded', extra={'raw_length': len(raw_text or '')})

    cards = validate_candidates(candidates, now_ms=now_ms)
    if len(cards) > max_flashcards:
        LOG.info('flashcards_capped', extra={'generated': len(cards), 'max': max_flashcards})
        cards = cards[:max_flashcards]
    if not cards:
        raise NoFlashcardsGenerated('No valid flashcards in provider response')
    return ParseResult(flashcards=cards, strategy=strategy, degraded=degraded)
