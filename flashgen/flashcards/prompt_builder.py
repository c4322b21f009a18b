import re
from typing import Optional, List, Dict

from pydantic import BaseModel

from .normalizer import SourceType

DEFAULT_QUANTITY = 5
OPTION_MAX_CHARS = 64
PROMPT_OVERHEAD_LIMIT = 1024

SYSTEM_MESSAGE = 'You generate study flashcards and reply with JSON only.'

INSTRUCTION = (
    'Generate exactly {quantity} flashcards from the {label_lower} below. '
    'Return ONLY a valid JSON array with no extra text, no markdown and no explanation. '
    'Each element must have this exact format: '
    '{{"id": 1, "question": "...", "answer": "...", "difficulty": "Easy"}}. '
    'Choose difficulty as Easy, Medium, or Hard based on concept complexity. '
    'Focus on the most important concepts and facts.'
)

CONTENT_LABELS = {
    SourceType.TEXT: 'Content',
    SourceType.PDF: 'PDF Content',
    SourceType.VOICE: 'Transcribed Content',
}

_LEADING_INT = re.compile(r'\d+')


class GenerationOptions(BaseModel):
    tone: Optional[str] = None
    quantity: Optional[str] = None
    level: Optional[str] = None


def parse_quantity(quantity, max_flashcards: int, default: int = DEFAULT_QUANTITY) -> int:
    # accepts 10, '10' and '10 Cards'
    if quantity is None:
        return min(default, max_flashcards)
    match = _LEADING_INT.search(str(quantity))
    if not match:
        return min(default, max_flashcards)
    return max(1, min(int(match.group()), max_flashcards))


def _clean_option(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = ' '.join(str(value).split())[:OPTION_MAX_CHARS]
    return value or None


def build_prompt(content: str, source_type, options: Optional[GenerationOptions] = None, max_flashcards: int = 25) -> str:
    source_type = SourceType(source_type)
    options = options or GenerationOptions()
    label = CONTENT_LABELS[source_type]
    quantity = parse_quantity(options.quantity, max_flashcards)

    lines = [INSTRUCTION.format(quantity=quantity, label_lower=label.lower())]
    tone = _clean_option(options.tone)
    level = _clean_option(options.level)
    if tone:
        lines.append(f'Write questions and answers in a {tone} tone.')
    if level:
        lines.append(f'Target the difficulty at a {level} audience.')
    lines.append(f'{label}: {content}')
    return '\n'.join(lines)


def build_messages(prompt: str) -> List[Dict[str, str]]:
    return [
        {'role': 'system', 'content': SYSTEM_MESSAGE},
        {'role': 'user', 'content': prompt},
    ]
