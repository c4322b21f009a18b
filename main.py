import os
import sys
import time
import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

load_dotenv()

from flashgen.config import Settings
from flashgen.utils import (
    get_logger,
    configure_log_level,
    set_request_context,
    log_request,
    log_error,
    FileHandler,
    FileValidationError,
    extract_pdf_text,
    PDFExtractionError,
)
from flashgen.flashcards import (
    SourceType,
    ContentError,
    GenerationOptions,
    GenerationClient,
    GenerationProviderError,
    ProviderTimeout,
    ProviderRateLimited,
    ProviderAuthFailed,
    NoFlashcardsGenerated,
    FlashcardGenerator,
    GenerationRequest,
    GenerationResult,
)
from flashgen.transcription import (
    TranscriptionChain,
    AudioFileUnreadable,
    TranscriptionPayloadRejected,
    build_default_chain,
)
from flashgen.enrichment import build_default_enricher

LOG = get_logger()

PDF_MIME_TYPES = ('application/pdf',)
AUDIO_MIME_TYPES = (
    'audio/wav', 'audio/x-wav', 'audio/wave',
    'audio/mp3', 'audio/mpeg', 'audio/mp4',
    'audio/m4a', 'audio/x-m4a', 'audio/webm', 'audio/ogg',
)
TRANSCRIPTION_PREVIEW_CHARS = 500
DISCONNECT_POLL_SECONDS = 0.5
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    pass


class TextGenerationRequest(BaseModel):
    content: Optional[str] = None
    type: Optional[str] = None
    tone: Optional[str] = None
    quantity: Optional[Union[int, str]] = None
    level: Optional[str] = None

    def options(self) -> GenerationOptions:
        quantity = None if self.quantity is None else str(self.quantity)
        return GenerationOptions(tone=self.tone, quantity=quantity, level=self.level)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


async def run_until_disconnect(request: Request, coro: Awaitable[Any], poll_interval: float = DISCONNECT_POLL_SECONDS):
    """Await coro, cancelling it if the client goes away first."""
    task = asyncio.ensure_future(coro)
    while True:
        done, _ = await asyncio.wait({task}, timeout=poll_interval)
        if done:
            return task.result()
        if await request.is_disconnected():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise ClientDisconnected()


def _loop_exception_handler(loop, context):
    LOG.error('event_loop_exception', extra={'loop_message': context.get('message'), 'exception': repr(context.get('exception'))})


def create_app(settings: Optional[Settings] = None, generator: Optional[FlashcardGenerator] = None, transcriber: Optional[TranscriptionChain] = None, file_handler: Optional[FileHandler] = None) -> FastAPI:
    settings = settings or Settings()
    configure_log_level(settings.ENVIRONMENT, settings.LOG_LEVEL)

    if generator is None:
        client = GenerationClient(
            settings.generation_api_key,
            settings.GENERATION_MODEL,
            base_url=settings.GENERATION_BASE_URL,
            timeout=settings.GENERATION_TIMEOUT,
            temperature=settings.GENERATION_TEMPERATURE,
            max_tokens=settings.GENERATION_MAX_TOKENS,
            retry_attempts=settings.GENERATION_RETRY_ATTEMPTS,
        )
        generator = FlashcardGenerator(
            client,
            enricher=build_default_enricher(settings),
            max_content_length=settings.MAX_CONTENT_LENGTH,
            max_flashcards=settings.MAX_FLASHCARDS,
        )
    transcriber = transcriber or build_default_chain(settings)
    file_handler = file_handler or FileHandler(settings.UPLOAD_DIR, settings.MAX_FILE_SIZE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        asyncio.get_running_loop().set_exception_handler(_loop_exception_handler)
        sweeper = asyncio.create_task(file_handler.run_periodic_cleanup(
            settings.CLEANUP_INTERVAL_MINUTES * 60,
            settings.CLEANUP_MAX_AGE_MINUTES * 60,
        ))
        LOG.info('service_started', extra={'environment': settings.ENVIRONMENT, 'port': settings.PORT, 'ai_configured': generator.is_configured})
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            LOG.info('service_stopped')

    app = FastAPI(title='Flashcard Generator', version=settings.SERVICE_VERSION, description='Generates study flashcards from text, PDF and voice input', lifespan=lifespan)
    limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
    app.state.limiter = limiter
    app.state.settings = settings
    app.state.generator = generator
    app.state.transcriber = transcriber

    def error_response(status_code: int, error: str, message: str, details: Optional[str] = None, headers: Optional[Dict[str, str]] = None, **extra) -> JSONResponse:
        body = {'error': error, 'message': message}
        if details and not settings.is_production:
            body['details'] = details
        body.update(extra)
        body['timestamp'] = utc_timestamp()
        return JSONResponse(status_code=status_code, content=body, headers=headers)

    @app.middleware('http')
    async def add_request_id_and_logging(request: Request, call_next):
        # prefer incoming X-Request-ID header for cross-service tracing
        request_id = request.headers.get('x-request-id') or os.urandom(8).hex()
        request.state.request_id = request_id
        set_request_context(request_id)
        start = time.time()
        LOG.info('http_request_start', extra={'method': request.method, 'path': request.url.path, 'request_id': request_id})
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            log_error(exc, {'request_id': request_id, 'path': request.url.path})
            response = error_response(500, 'Internal server error', 'An unexpected error occurred', details=str(exc))
        duration = int((time.time() - start) * 1000)
        log_request(request_id, request.method, request.url.path, response.status_code, duration, ip=request.client.host if request.client else None)
        response.headers['X-Request-ID'] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.CORS_LOCALHOST_REGEX,
        allow_credentials=True,
        allow_methods=['GET', 'POST', 'OPTIONS'],
        allow_headers=['*'],
        expose_headers=['X-Request-ID'],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = '.'.join(str(p) for p in first.get('loc', ()) if p != 'body') or 'request'
        message = f"{field}: {first.get('msg', 'invalid value')}"
        return error_response(400, 'Invalid request', message, details=str(errors))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        retry_after = settings.RATE_LIMIT_WINDOW_MINUTES * 60
        LOG.warning('rate_limit_exceeded', extra={'path': request.url.path, 'client': get_remote_address(request)})
        return error_response(
            429,
            'Too many requests',
            'Rate limit exceeded, please try again later',
            details=str(exc.detail),
            headers={'Retry-After': str(retry_after)},
            retryAfter=retry_after,
        )

    def generation_error_response(e: Exception) -> JSONResponse:
        if isinstance(e, ContentError):
            return error_response(400, e.error, str(e))
        if isinstance(e, NoFlashcardsGenerated):
            return error_response(500, 'Generation failed', 'No flashcards could be generated', details=str(e))
        if isinstance(e, ProviderTimeout):
            return error_response(500, 'AI service timeout', 'Try shorter content', details=str(e))
        if isinstance(e, ProviderRateLimited):
            return error_response(500, 'AI service busy', 'Please wait and retry', details=str(e))
        if isinstance(e, ProviderAuthFailed):
            return error_response(500, 'AI service unavailable', 'Service misconfigured', details=str(e))
        return error_response(500, 'Generation failed', 'Failed to generate flashcards', details=str(e))

    async def respond(request: Request, source_type: SourceType, work: Callable[[], Awaitable[Tuple[GenerationResult, Dict[str, Any]]]]):
        set_request_context(request.state.request_id, source_type.value)
        try:
            result, extra_metadata = await run_until_disconnect(request, work())
        except ClientDisconnected:
            LOG.info('client_disconnected', extra={'path': request.url.path})
            return error_response(CLIENT_CLOSED_REQUEST, 'Client closed request', 'Request cancelled by client')
        except (ContentError, GenerationProviderError, NoFlashcardsGenerated) as e:
            LOG.warning('flashcard_generation_failed', extra={'error_type': type(e).__name__, 'error': str(e)})
            return generation_error_response(e)
        return {
            'success': True,
            'flashcards': [card.to_response() for card in result.flashcards],
            'count': result.count,
            'source': source_type.value,
            'metadata': {**result.metadata, **extra_metadata},
        }

    def generation_request(request: Request, source_type: SourceType, content: str, options: GenerationOptions) -> GenerationRequest:
        return GenerationRequest(source_type=source_type, raw_content=content, options=options, request_id=request.state.request_id)

    @app.get('/')
    async def index():
        return {
            'status': 'ok',
            'service': settings.SERVICE_NAME,
            'version': settings.SERVICE_VERSION,
            'environment': settings.ENVIRONMENT,
            'features': {
                'textInput': True,
                'pdfUpload': True,
                'voiceInput': True,
                'linkEnrichment': generator.enricher is not None,
                'aiConfigured': generator.is_configured,
                'transcriptionBackends': transcriber.enabled_backends,
            },
            'limits': {
                'maxFileSize': settings.MAX_FILE_SIZE,
                'maxContentLength': settings.MAX_CONTENT_LENGTH,
                'maxFlashcards': settings.MAX_FLASHCARDS,
            },
            'timestamp': utc_timestamp(),
        }

    @app.get('/health')
    async def health():
        return {'status': 'ok', 'timestamp': utc_timestamp(), 'service': settings.SERVICE_NAME}

    @app.post('/generate-flashcards')
    @limiter.limit(settings.rate_limit)
    async def generate_from_text(request: Request, body: Optional[TextGenerationRequest] = None):
        body = body or TextGenerationRequest()
        if body.type is not None and body.type != SourceType.TEXT.value:
            return error_response(400, 'Invalid input type', "Only type 'text' is supported on this endpoint; use /pdf or /voice for files")
        if body.content is None or not body.content.strip():
            return error_response(400, 'Content is required', 'Please provide text content to generate flashcards')
        if len(body.content) > settings.MAX_CONTENT_LENGTH:
            return error_response(400, 'Content too long', f'Content must be at most {settings.MAX_CONTENT_LENGTH} characters')

        async def work():
            result = await generator.generate(generation_request(request, SourceType.TEXT, body.content, body.options()))
            return result, {}

        return await respond(request, SourceType.TEXT, work)

    @app.post('/generate-flashcards/pdf')
    @limiter.limit(settings.rate_limit)
    async def generate_from_pdf(request: Request, file: Optional[UploadFile] = File(None), tone: Optional[str] = Form(None), quantity: Optional[str] = Form(None), level: Optional[str] = Form(None)):
        if file is None:
            return error_response(400, 'No file uploaded', 'No PDF file uploaded')
        local_path = None
        try:
            file_handler.validate_type(file.content_type, PDF_MIME_TYPES, 'Only PDF files are allowed')
            local_path = await file_handler.save_upload(file)
            file_size = file_handler.get_file_size(local_path)
            try:
                extracted = await asyncio.to_thread(extract_pdf_text, local_path)
            except PDFExtractionError as e:
                return error_response(400, 'Invalid PDF', 'Could not read PDF', details=str(e))
            text = extracted['text']
            if len(text.strip()) < settings.MIN_PDF_TEXT_LENGTH:
                return error_response(400, 'Insufficient content', 'PDF contains insufficient text content')
            options = GenerationOptions(tone=tone, quantity=quantity, level=level)

            async def work():
                result = await generator.generate(generation_request(request, SourceType.PDF, text, options))
                return result, {
                    'originalFile': file.filename,
                    'fileSize': file_size,
                    'pages': extracted['pages'],
                    'textLength': len(text),
                }

            return await respond(request, SourceType.PDF, work)
        except FileValidationError as e:
            return error_response(400, e.error, e.message)
        finally:
            if local_path:
                file_handler.cleanup_temp_file(local_path)

    @app.post('/generate-flashcards/voice')
    @limiter.limit(settings.rate_limit)
    async def generate_from_voice(request: Request, file: Optional[UploadFile] = File(None), tone: Optional[str] = Form(None), quantity: Optional[str] = Form(None), level: Optional[str] = Form(None)):
        if file is None:
            return error_response(400, 'No file uploaded', 'No audio file uploaded')
        local_path = None
        try:
            file_handler.validate_type(file.content_type, AUDIO_MIME_TYPES, 'Only audio files (wav, mp3, mp4, m4a, webm, ogg) are allowed')
            local_path = await file_handler.save_upload(file)
            file_size = file_handler.get_file_size(local_path)
            options = GenerationOptions(tone=tone, quantity=quantity, level=level)

            async def work():
                transcription = await transcriber.transcribe(local_path, file.filename)
                result = await generator.generate(generation_request(request, SourceType.VOICE, transcription.text, options))
                preview = transcription.text[:TRANSCRIPTION_PREVIEW_CHARS]
                if len(transcription.text) > TRANSCRIPTION_PREVIEW_CHARS:
                    preview += '...'
                return result, {
                    'originalFile': file.filename,
                    'fileSize': file_size,
                    'transcriptionEngine': transcription.engine,
                    'transcriptionLength': len(transcription.text),
                    'transcriptionPreview': preview,
                    'transcriptionTruncated': transcription.truncated,
                    'transcriptionPlaceholder': transcription.placeholder,
                }

            try:
                return await respond(request, SourceType.VOICE, work)
            except AudioFileUnreadable as e:
                return error_response(400, 'Invalid audio', 'Could not read audio file', details=str(e))
            except TranscriptionPayloadRejected as e:
                return error_response(400, 'Audio rejected', 'The audio file could not be processed, check the format and try again', details=str(e))
        except FileValidationError as e:
            return error_response(400, e.error, e.message)
        finally:
            if local_path:
                file_handler.cleanup_temp_file(local_path)

    return app


def _build_app() -> FastAPI:
    try:
        return create_app()
    except Exception:
        LOG.exception('startup_failed', exc_info=True)
        sys.exit(1)


app = _build_app()


if __name__ == '__main__':
    import uvicorn

    settings = app.state.settings
    uvicorn.run(
        'main:app',
        host=settings.HOST,
        port=settings.PORT,
        log_level=(settings.LOG_LEVEL or 'info').lower(),
        reload=settings.ENVIRONMENT == 'development',
    )
