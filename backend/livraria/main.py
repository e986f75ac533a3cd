"""FastAPI application entrypoint.

This module builds the Adenosis Livraria API: middleware, the domain
error handler and the resource routers. Controllers are intentionally
thin: they accept requests, delegate to services, and return JSON.

Endpoints implemented:
- /auth: register, login, me, verify-email, request-password-reset, reset-password
- /books: list, search, detail, create, update, delete, batch-delete, batch-import
- /categories: list, create
- /sellers, /seller/profile
- /reservations, /confirm-delivery-and-rate
- /wishlist
- /dashboard: summary, books, reservations (confirm/cancel), charts
- /admin: stats, users, books, orders, ratings
- /ai: generate-description, generate-store-description, suggest-categories
- /uploads/images
- GET /health
"""

import json
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import settings
from .database import create_db_and_tables
from .errors import LivrariaError
from .routes import ROUTERS

app = FastAPI(title="Adenosis Livraria API")
logger = logging.getLogger("livraria.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def _log_payload(request: Request, req_id: str, started: float, status_code=None) -> str:
    payload = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }
    if status_code is not None:
        payload["status_code"] = status_code
    return json.dumps(payload, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    quiet = request.url.path == "/health"
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed %s", _log_payload(request, req_id, started))
        raise
    response.headers["X-Request-ID"] = req_id
    if not quiet:
        logger.info("request_done %s", _log_payload(request, req_id, started, response.status_code))
    return response


@app.exception_handler(LivrariaError)
async def livraria_error_handler(request: Request, exc: LivrariaError):
    if exc.status_code >= 500:
        logger.error("[%s] %s path=%s", exc.code, exc.message, request.url.path)
    else:
        logger.warning("[%s] %s path=%s", exc.code, exc.message, request.url.path)
    content = {"detail": exc.message, "code": exc.code}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=exc.status_code, content=content)


for router in ROUTERS:
    app.include_router(router)


@app.get("/health")
def health():
    return {"status": "ok"}
