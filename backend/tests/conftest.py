import os
import tempfile
from pathlib import Path

import pytest

# Configure the app before `livraria` is imported anywhere.
_TMP_DIR = Path(tempfile.mkdtemp(prefix="livraria-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["MAIL_BACKEND"] = "memory"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["ADMIN_EMAIL"] = "admin@livraria.com.br"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["GEMINI_API_KEY"] = ""
os.environ["AUTH_RATE_LIMIT_PER_MIN"] = "1000"
os.environ["AI_RATE_LIMIT_PER_MIN"] = "1000"
os.environ["APP_URL"] = "http://livraria.test"

from sqlmodel import SQLModel  # noqa: E402

from livraria.database import engine  # noqa: E402
from livraria.dependencies import get_mailer, get_storage_client  # noqa: E402
from livraria.main import app  # noqa: E402
from livraria.utils.rate_limit import limiter  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    """Fresh tables, empty outbox/bucket and no overrides for every test."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    get_mailer().clear()
    get_storage_client().clear()
    limiter.reset()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def mailer():
    return get_mailer()


@pytest.fixture
def storage():
    return get_storage_client()
