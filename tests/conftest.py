import os
import tempfile

import pytest
from dotenv import load_dotenv
from pathlib import Path

# load test env first
env_path = Path(__file__).resolve().parents[1] / '.env.test'
if env_path.exists():
    load_dotenv(env_path)

_scratch = tempfile.mkdtemp(prefix='flashgen-tests-')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_FILE_PATH', os.path.join(_scratch, 'logs'))
os.environ.setdefault('UPLOAD_DIR', os.path.join(_scratch, 'uploads'))
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from fastapi.testclient import TestClient

from flashgen.config import Settings
from flashgen.flashcards import FlashcardGenerator
from flashgen.transcription import TranscriptionChain
from flashgen.utils import FileHandler, SlidingWindowRateLimiter
from tests.fixtures.mock_providers import StubCompletionClient, StubTranscriptionBackend, no_sleep
from tests.fixtures.sample_data import VALID_JSON_RESPONSE


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        ENVIRONMENT='test',
        UPLOAD_DIR=str(tmp_path / 'uploads'),
        RATE_LIMIT_ENABLED=False,
        ENABLE_LINK_ENRICHMENT=False,
    )


@pytest.fixture
def make_client(test_settings):
    """Build a TestClient around stub providers.

    Returns (client, completion_stub, transcription_backends).
    """
    import main

    def _make(response=VALID_JSON_RESPONSE, error=None, backends=None, settings=None, enricher=None, configured=True):
        settings = settings or test_settings
        completion = StubCompletionClient(response=response, error=error, configured=configured)
        generator = FlashcardGenerator(
            completion,
            enricher=enricher,
            max_content_length=settings.MAX_CONTENT_LENGTH,
            max_flashcards=settings.MAX_FLASHCARDS,
        )
        if backends is None:
            backends = [StubTranscriptionBackend('openai-whisper', text='Mitochondria are the powerhouse of the cell and produce ATP.')]
        transcriber = TranscriptionChain(backends, limiter=SlidingWindowRateLimiter(50, 60), max_content_length=settings.MAX_CONTENT_LENGTH, sleep=no_sleep)
        file_handler = FileHandler(settings.UPLOAD_DIR, settings.MAX_FILE_SIZE)
        app = main.create_app(settings=settings, generator=generator, transcriber=transcriber, file_handler=file_handler)
        return TestClient(app), completion, backends

    return _make


@pytest.fixture
def sample_pdf_bytes():
    import fitz

    def _build(text):
        doc = fitz.open()
        page = doc.new_page()
        page.insert_textbox(fitz.Rect(72, 72, 540, 770), text, fontsize=11)
        data = doc.tobytes()
        doc.close()
        return data

    return _build
