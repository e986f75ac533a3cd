"""
Adapter wiring for the FastAPI app.

Each getter returns a process-wide singleton chosen from settings, so
tests pick the in-memory doubles with `MAIL_BACKEND=memory` /
`STORAGE_BACKEND=memory` or `app.dependency_overrides`.
"""

from __future__ import annotations

from typing import Optional

from .config import settings
from .errors import ServiceUnavailableError
from .utils.gemini import GeminiTextGenerator, TextGenerator
from .utils.mail import InMemoryMailer, Mailer, SmtpMailer
from .utils.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_mailer: Optional[Mailer] = None
_storage_client: Optional[StorageClient] = None
_text_generator: Optional[TextGenerator] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer:
        return _mailer

    if settings.MAIL_BACKEND == "memory":
        _mailer = InMemoryMailer()
    else:
        _mailer = SmtpMailer(
            host=settings.EMAIL_SERVER_HOST,
            port=settings.EMAIL_SERVER_PORT,
            username=settings.EMAIL_USER_MAIL,
            password=settings.EMAIL_SERVER_APP_PASSWORD,
            sender=settings.EMAIL_FROM,
            secure=settings.EMAIL_SERVER_SECURE,
        )
    return _mailer


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    if settings.STORAGE_BACKEND == "memory":
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.STORAGE_BUCKET,
            region=settings.STORAGE_REGION,
            endpoint=settings.STORAGE_ENDPOINT,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            public_base_url=settings.STORAGE_PUBLIC_BASE_URL,
        )
    return _storage_client


def get_text_generator() -> TextGenerator:
    """Return the Gemini client, or 503 when no API key is configured."""
    global _text_generator
    if _text_generator:
        return _text_generator

    if not settings.GEMINI_API_KEY:
        raise ServiceUnavailableError("AI service is not configured")
    _text_generator = GeminiTextGenerator(api_key=settings.GEMINI_API_KEY, model=settings.GEMINI_MODEL)
    return _text_generator
