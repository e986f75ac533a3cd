"""Application settings and validation."""

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    APP_URL: str
    ADMIN_EMAIL: str
    REQUIRE_VERIFIED_EMAIL: bool
    MAX_UPLOAD_BYTES: int
    MAIL_BACKEND: str
    STORAGE_BACKEND: str
    GEMINI_API_KEY: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.DATABASE_URL = os.getenv("DATABASE_URL", "")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = _flag("ALLOW_INSECURE_JWT", "false")
        self.ALLOW_DEV_CORS = _flag("ALLOW_DEV_CORS", "true")
        self.APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
        self.ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "").strip().lower()
        self.REQUIRE_VERIFIED_EMAIL = _flag("REQUIRE_VERIFIED_EMAIL", "false")
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))  # 5 MB default

        # mail
        self.MAIL_BACKEND = os.getenv("MAIL_BACKEND", "smtp").lower()
        self.EMAIL_SERVER_HOST = os.getenv("EMAIL_SERVER_HOST", "")
        self.EMAIL_SERVER_PORT = int(os.getenv("EMAIL_SERVER_PORT", "587"))
        self.EMAIL_SERVER_SECURE = _flag("EMAIL_SERVER_SECURE", "false")
        self.EMAIL_USER_MAIL = os.getenv("EMAIL_USER_MAIL", "")
        self.EMAIL_SERVER_APP_PASSWORD = os.getenv("EMAIL_SERVER_APP_PASSWORD", "")
        self.EMAIL_FROM = os.getenv("EMAIL_FROM") or f'"Adenosis Livraria" <{self.EMAIL_USER_MAIL}>'

        # object storage (S3 compatible)
        self.STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "s3").lower()
        self.STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "")
        self.STORAGE_REGION = os.getenv("STORAGE_REGION", "")
        self.STORAGE_ENDPOINT = os.getenv("STORAGE_ENDPOINT", "")
        self.STORAGE_PUBLIC_BASE_URL = os.getenv("STORAGE_PUBLIC_BASE_URL", "").rstrip("/")
        self.AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID", "")
        self.AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY", "")

        # text generation
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

        self.AUTH_RATE_LIMIT_PER_MIN = int(os.getenv("AUTH_RATE_LIMIT_PER_MIN", "10"))
        self.AI_RATE_LIMIT_PER_MIN = int(os.getenv("AI_RATE_LIMIT_PER_MIN", "20"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.MAIL_BACKEND not in ("smtp", "memory"):
            raise RuntimeError(f"unsupported MAIL_BACKEND {self.MAIL_BACKEND!r}")
        if self.STORAGE_BACKEND not in ("s3", "memory"):
            raise RuntimeError(f"unsupported STORAGE_BACKEND {self.STORAGE_BACKEND!r}")
        if self.ENV != "dev" and self.MAIL_BACKEND == "smtp" and not self.EMAIL_SERVER_HOST:
            raise RuntimeError("EMAIL_SERVER_HOST must be set when MAIL_BACKEND=smtp in non-dev environments")
        if self.ENV != "dev" and self.STORAGE_BACKEND == "s3" and not self.STORAGE_BUCKET:
            raise RuntimeError("STORAGE_BUCKET must be set when STORAGE_BACKEND=s3 in non-dev environments")
        if self.MAX_UPLOAD_BYTES <= 0:
            raise RuntimeError("MAX_UPLOAD_BYTES must be positive")


settings = Settings()
