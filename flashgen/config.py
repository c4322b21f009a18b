from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        extra='ignore',
    )

    HOST: str = '0.0.0.0'
    PORT: int = 5000
    ENVIRONMENT: str = 'development'
    LOG_LEVEL: Optional[str] = None
    SERVICE_NAME: str = 'flashgen'
    SERVICE_VERSION: str = '1.0.0'

    CORS_ORIGINS: str = ''
    CORS_LOCALHOST_REGEX: str = r'https?://(localhost|127\.0\.0\.1)(:\d+)?'

    MAX_FILE_SIZE: int = 25 * 1024 * 1024
    MAX_CONTENT_LENGTH: int = 50000
    MAX_FLASHCARDS: int = 25
    MIN_PDF_TEXT_LENGTH: int = 50
    UPLOAD_DIR: str = 'uploads'
    CLEANUP_INTERVAL_MINUTES: float = 30
    CLEANUP_MAX_AGE_MINUTES: float = 60

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_MAX: Optional[int] = None
    RATE_LIMIT_WINDOW_MINUTES: int = 15

    # generation provider (any OpenAI-compatible chat completions host)
    GENERATION_API_KEY: Optional[str] = None
    GENERATION_BASE_URL: Optional[str] = None
    GENERATION_MODEL: str = 'gpt-4o-mini'
    GENERATION_TIMEOUT: float = 30
    GENERATION_TEMPERATURE: float = 0.7
    GENERATION_MAX_TOKENS: int = 2000
    GENERATION_RETRY_ATTEMPTS: int = 1

    # transcription providers
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_TRANSCRIPTION_MODEL: str = 'whisper-1'
    GROQ_API_KEY: Optional[str] = None
    GROQ_BASE_URL: str = 'https://api.groq.com/openai/v1'
    GROQ_TRANSCRIPTION_MODEL: str = 'whisper-large-v3'
    TRANSCRIPTION_TIMEOUT: float = 60
    TRANSCRIPTION_LANGUAGE: Optional[str] = 'en'
    TRANSCRIPTION_RATE_LIMIT: int = 50
    TRANSCRIPTION_RATE_WINDOW: float = 60
    TRANSCRIPTION_MAX_WINDOW_WAIT: float = 5

    # link enrichment
    ENABLE_LINK_ENRICHMENT: bool = False
    SEARCH_API_KEY: Optional[str] = None
    ENRICHMENT_MAX_LINKS: int = Field(3, ge=1, le=5)
    ENRICHMENT_QUERY_TERMS: int = 5
    ENRICHMENT_CONCURRENCY: int = 4
    ENRICHMENT_DELAY_SECONDS: float = 0.2
    ENRICHMENT_CARD_TIMEOUT: float = 8
    SEARCH_TIMEOUT: float = 5

    @field_validator('ENVIRONMENT')
    @classmethod
    def check_environment(cls, v):
        v = (v or 'development').strip().lower()
        if v not in ('development', 'production', 'test'):
            raise ValueError('ENVIRONMENT must be development, production or test')
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == 'production'

    @property
    def generation_api_key(self) -> Optional[str]:
        return self.GENERATION_API_KEY or self.OPENAI_API_KEY

    @property
    def rate_limit_max(self) -> int:
        if self.RATE_LIMIT_MAX:
            return self.RATE_LIMIT_MAX
        return 50 if self.is_production else 1000

    @property
    def rate_limit(self) -> str:
        return f'{self.rate_limit_max} per {self.RATE_LIMIT_WINDOW_MINUTES} minutes'

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(',') if o.strip()]
