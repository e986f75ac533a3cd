"""Catalog endpoints: public listing/search/detail and seller book management."""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import get_optional_user, require_seller
from ..config import settings
from ..database import get_session
from ..dependencies import get_storage_client
from ..utils.parsers import parse_file_to_book_rows
from ..utils.storage import StorageClient

logger = logging.getLogger("routes.books")

router = APIRouter(prefix="/books", tags=["Books"])


def _service(
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
) -> services.BookService:
    return services.BookService(session, storage)


def book_payload(book: models.Book) -> dict:
    return schemas.BookOut.model_validate(book).model_dump(mode="json")


@router.get("")
def list_books(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    sort: Literal["recent", "price_asc", "price_desc"] = "recent",
    category_id: Optional[int] = None,
    q: Optional[str] = None,
    svc: services.BookService = Depends(_service),
):
    books, total = svc.list_public(page, limit, sort, category_id, q)
    return {"data": [book_payload(b) for b in books], "pagination": services.pagination(total, page, limit)}


@router.get("/search")
def search_books(q: Optional[str] = None, svc: services.BookService = Depends(_service)):
    return [book_payload(b) for b in svc.search(q)]


@router.get("/{book_id}", response_model=schemas.BookDetailOut)
def get_book(
    book_id: int,
    viewer: Optional[models.User] = Depends(get_optional_user),
    svc: services.BookService = Depends(_service),
):
    book = svc.get_visible(book_id, viewer)
    out = schemas.BookDetailOut.model_validate(book)
    out.whatsapp_link = svc.contact_link(book)
    return out


@router.post("", status_code=201)
def create_book(
    data: schemas.BookCreateIn,
    user: models.User = Depends(require_seller),
    svc: services.BookService = Depends(_service),
):
    return book_payload(svc.create(user, data))


@router.put("/{book_id}")
def update_book(
    book_id: int,
    data: schemas.BookUpdateIn,
    user: models.User = Depends(require_seller),
    svc: services.BookService = Depends(_service),
):
    return book_payload(svc.update(user, book_id, data))


@router.delete("/{book_id}", response_model=schemas.MessageOut)
def delete_book(
    book_id: int,
    user: models.User = Depends(require_seller),
    svc: services.BookService = Depends(_service),
):
    svc.delete(user, book_id)
    return schemas.MessageOut(message="book deleted")


@router.post("/batch-delete")
def batch_delete(
    data: schemas.BatchDeleteIn,
    user: models.User = Depends(require_seller),
    svc: services.BookService = Depends(_service),
):
    count = svc.batch_delete(user, data.book_ids)
    return {"message": f"{count} book(s) deleted", "count": count}


@router.post("/batch-import", response_model=schemas.ImportResultOut)
def batch_import(
    data: schemas.BatchImportIn,
    user: models.User = Depends(require_seller),
    svc: services.BookService = Depends(_service),
):
    return svc.batch_import(user, data.books)


@router.post("/batch-import/file", response_model=schemas.ImportResultOut)
def batch_import_file(
    file: UploadFile = File(...),
    user: models.User = Depends(require_seller),
    svc: services.BookService = Depends(_service),
):
    payload = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"file too large; max {settings.MAX_UPLOAD_BYTES} bytes")
    try:
        rows = parse_file_to_book_rows(payload, file.filename or "")
    except (ValueError, UnicodeDecodeError) as exc:
        logger.warning("import_file_rejected user_id=%s filename=%r error=%s", user.id, file.filename, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    if not rows:
        raise HTTPException(status_code=400, detail="file contains no books")
    logger.info("import_file_parsed user_id=%s filename=%r rows=%d", user.id, file.filename, len(rows))
    return svc.batch_import(user, rows)
