import asyncio

import pytest

from flashgen.transcription import (
    AudioFileUnreadable,
    TranscriptionChain,
    TranscriptionPayloadRejected,
    TranscriptionRateLimited,
    TranscriptionTimeout,
    format_duration,
)
from flashgen.utils import SlidingWindowRateLimiter
from tests.fixtures.mock_providers import StubTranscriptionBackend, no_sleep
from tests.fixtures.sample_data import FAKE_AUDIO_BYTES


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / 'lecture.wav'
    path.write_bytes(FAKE_AUDIO_BYTES)
    return str(path)


def _chain(backends, **kwargs):
    kwargs.setdefault('sleep', no_sleep)
    kwargs.setdefault('limiter', SlidingWindowRateLimiter(50, 60))
    return TranscriptionChain(backends, **kwargs)


@pytest.mark.unit
def test_first_backend_success_wins(audio_file):
    a = StubTranscriptionBackend('openai-whisper', text=' hello world ')
    b = StubTranscriptionBackend('groq-whisper', text='unused')
    result = asyncio.run(_chain([a, b]).transcribe(audio_file, 'lecture.wav'))
    assert result.engine == 'openai-whisper'
    assert result.text == 'hello world'
    assert result.placeholder is False
    assert b.calls == 0


@pytest.mark.unit
def test_rate_limited_backend_falls_through(audio_file):
    a = StubTranscriptionBackend('openai-whisper', error=TranscriptionRateLimited('429'))
    b = StubTranscriptionBackend('groq-whisper', text='transcribed by groq')
    result = asyncio.run(_chain([a, b]).transcribe(audio_file, 'lecture.wav'))
    assert result.engine == 'groq-whisper'
    assert [(x.backend_name, x.outcome) for x in result.attempts] == [
        ('openai-whisper', 'rate_limited'),
        ('groq-whisper', 'success'),
    ]


@pytest.mark.unit
def test_all_backends_failing_returns_placeholder(audio_file):
    a = StubTranscriptionBackend('openai-whisper', error=TranscriptionTimeout('slow'))
    b = StubTranscriptionBackend('groq-whisper', error=RuntimeError('boom'))
    result = asyncio.run(_chain([a, b]).transcribe(audio_file, 'lecture.wav'))
    assert result.engine == 'placeholder'
    assert result.placeholder is True
    assert 'lecture.wav' in result.text
    assert '0:06' in result.text
    assert 'resubmit' in result.text
    assert [x.outcome for x in result.attempts] == ['timeout', 'other_failure']


@pytest.mark.unit
def test_disabled_backends_are_skipped(audio_file):
    a = StubTranscriptionBackend('openai-whisper', text='never', enabled=False)
    b = StubTranscriptionBackend('groq-whisper', text='from groq')
    result = asyncio.run(_chain([a, b]).transcribe(audio_file))
    assert result.engine == 'groq-whisper'
    assert a.calls == 0
    assert result.attempts[0].outcome == 'auth_failed'


@pytest.mark.unit
def test_blank_transcript_is_no_speech(audio_file):
    a = StubTranscriptionBackend('openai-whisper', text='   ')
    b = StubTranscriptionBackend('groq-whisper', text='speech')
    result = asyncio.run(_chain([a, b]).transcribe(audio_file))
    assert result.attempts[0].outcome == 'no_speech'
    assert result.engine == 'groq-whisper'


@pytest.mark.unit
def test_payload_rejection_surfaces_when_nothing_succeeds(audio_file):
    a = StubTranscriptionBackend('openai-whisper', error=TranscriptionPayloadRejected('415'))
    b = StubTranscriptionBackend('groq-whisper', error=TranscriptionRateLimited('429'))
    with pytest.raises(TranscriptionPayloadRejected):
        asyncio.run(_chain([a, b]).transcribe(audio_file))


@pytest.mark.unit
def test_long_transcript_is_truncated(audio_file):
    a = StubTranscriptionBackend('openai-whisper', text='word ' * 100)
    result = asyncio.run(_chain([a], max_content_length=50).transcribe(audio_file))
    assert result.truncated is True
    assert len(result.text) == 50


@pytest.mark.unit
def test_missing_file_is_unreadable(tmp_path):
    a = StubTranscriptionBackend('openai-whisper', text='x')
    with pytest.raises(AudioFileUnreadable):
        asyncio.run(_chain([a]).transcribe(str(tmp_path / 'missing.wav')))
    assert a.calls == 0


@pytest.mark.unit
def test_exhausted_window_waits_once_then_proceeds(audio_file):
    clock = {'now': 0.0}
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        clock['now'] += seconds

    limiter = SlidingWindowRateLimiter(1, 2, clock=lambda: clock['now'])
    limiter.acquire('openai-whisper')
    a = StubTranscriptionBackend('openai-whisper', text='after waiting')
    result = asyncio.run(_chain([a], limiter=limiter, sleep=fake_sleep, max_window_wait=5).transcribe(audio_file))
    assert result.engine == 'openai-whisper'
    assert sleeps == [pytest.approx(2)]


@pytest.mark.unit
def test_long_window_wait_moves_to_next_backend(audio_file):
    limiter = SlidingWindowRateLimiter(1, 60, clock=lambda: 0.0)
    limiter.acquire('openai-whisper')
    a = StubTranscriptionBackend('openai-whisper', text='blocked')
    b = StubTranscriptionBackend('groq-whisper', text='fallback')
    result = asyncio.run(_chain([a, b], limiter=limiter, max_window_wait=5).transcribe(audio_file))
    assert result.engine == 'groq-whisper'
    assert a.calls == 0
    assert result.attempts[0].outcome == 'rate_limited'


@pytest.mark.unit
@pytest.mark.parametrize('seconds,expected', [(0, '0:00'), (6, '0:06'), (75, '1:15'), (600, '10:00')])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


@pytest.mark.unit
def test_enabled_backends_lists_only_usable_backends():
    a = StubTranscriptionBackend('openai-whisper', enabled=False)
    b = StubTranscriptionBackend('groq-whisper', text='x')
    assert _chain([a, b]).enabled_backends == ['groq-whisper']
