"""Moderation endpoints. Every route requires an administrator."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, repositories, schemas, services
from ..auth import require_admin
from ..database import get_session
from ..dependencies import get_storage_client
from ..errors import NotFoundError
from ..utils.storage import StorageClient
from .books import book_payload

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _books(
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
) -> services.BookService:
    return services.BookService(session, storage)


def _admin(
    session: Session = Depends(get_session),
    storage: StorageClient = Depends(get_storage_client),
) -> services.AdminService:
    return services.AdminService(session, storage)


@router.get("/stats")
def stats(svc: services.AdminService = Depends(_admin)):
    return svc.stats()


# --- users ----------------------------------------------------------------

@router.get("/users")
def list_users(
    q: Optional[str] = None,
    role: Optional[models.Role] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: Session = Depends(get_session),
):
    users, total = repositories.UserRepository(session).list_filtered((q or "").strip() or None, role, page, limit)
    return {
        "data": [schemas.AdminUserOut.model_validate(u).model_dump(mode="json") for u in users],
        "pagination": services.pagination(total, page, limit),
    }


@router.delete("/users/{user_id}", response_model=schemas.MessageOut)
def delete_user(
    user_id: int,
    admin: models.User = Depends(require_admin),
    svc: services.AdminService = Depends(_admin),
):
    name = svc.delete_user(admin, user_id)
    return schemas.MessageOut(message=f"user {name} deleted")


@router.patch("/users/{user_id}/change-password", response_model=schemas.MessageOut)
def change_password(user_id: int, data: schemas.ChangePasswordIn, svc: services.AdminService = Depends(_admin)):
    user = svc.change_password(user_id, data.new_password)
    return schemas.MessageOut(message=f"password changed for {user.email}")


# --- books ----------------------------------------------------------------

@router.get("/books")
def list_books(
    q: Optional[str] = None,
    status: Optional[models.BookStatus] = None,
    category_id: Optional[int] = None,
    seller_id: Optional[int] = None,
    sort: Optional[Literal["title_asc", "title_desc", "recent"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    books, total = repositories.BookRepository(session).list_admin(
        (q or "").strip() or None, status, category_id, seller_id, sort, page, limit
    )
    return {"data": [book_payload(b) for b in books], "pagination": services.pagination(total, page, limit)}


@router.get("/books/{book_id}")
def get_book(book_id: int, session: Session = Depends(get_session)):
    book = repositories.BookRepository(session).get(book_id)
    if not book:
        raise NotFoundError("book")
    return book_payload(book)


@router.put("/books/{book_id}")
def update_book(book_id: int, data: schemas.AdminBookUpdateIn, svc: services.BookService = Depends(_books)):
    return book_payload(svc.admin_update(book_id, data))


@router.patch("/books/{book_id}/status")
def set_book_status(book_id: int, data: schemas.BookStatusIn, svc: services.BookService = Depends(_books)):
    return book_payload(svc.set_status(book_id, data.status))


@router.delete("/books/{book_id}", response_model=schemas.MessageOut)
def delete_book(book_id: int, svc: services.BookService = Depends(_books)):
    svc.admin_delete(book_id)
    return schemas.MessageOut(message="book deleted")


# --- orders and ratings ---------------------------------------------------

@router.get("/orders")
def list_orders(
    status: Optional[models.ReservationStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    orders, total = repositories.ReservationRepository(session).list_admin(status, page, limit)
    return {
        "data": [schemas.ReservationOut.model_validate(r).model_dump(mode="json") for r in orders],
        "pagination": services.pagination(total, page, limit),
    }


@router.get("/ratings")
def list_ratings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    ratings, total = repositories.RatingRepository(session).list_admin(page, limit)
    return {
        "data": [schemas.RatingOut.model_validate(r).model_dump(mode="json") for r in ratings],
        "pagination": services.pagination(total, page, limit),
    }


@router.delete("/ratings/{rating_id}")
def delete_rating(rating_id: int, svc: services.AdminService = Depends(_admin)):
    profile = svc.delete_rating(rating_id)
    return {
        "message": "rating deleted",
        "seller": {
            "id": profile.id,
            "average_rating": profile.average_rating,
            "total_ratings": profile.total_ratings,
        },
    }
