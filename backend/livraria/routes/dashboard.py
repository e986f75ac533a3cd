"""Seller dashboard: own books, incoming reservations and charts."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import require_seller
from ..database import get_session
from ..dependencies import get_mailer
from ..utils.mail import Mailer
from .books import book_payload

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


def _reservations(session: Session = Depends(get_session), mailer: Mailer = Depends(get_mailer)) -> services.ReservationService:
    return services.ReservationService(session, mailer)


def _action_payload(message: str, result: dict) -> dict:
    return schemas.ReservationActionOut(
        message=message,
        reservation=schemas.ReservationOut.model_validate(result["reservation"]),
        notification_sent=result["notification_sent"],
    ).model_dump(mode="json")


@router.get("/summary")
def summary(user: models.User = Depends(require_seller), session: Session = Depends(get_session)):
    return services.DashboardService(session).summary(user)


@router.get("/books")
def my_books(
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: models.User = Depends(require_seller),
    session: Session = Depends(get_session),
):
    books, total = services.BookService(session).list_for_dashboard(user, q, page, limit)
    return {"data": [book_payload(b) for b in books], "pagination": services.pagination(total, page, limit)}


@router.get("/reservations")
def incoming_reservations(
    status: Optional[models.ReservationStatus] = None,
    user: models.User = Depends(require_seller),
    svc: services.ReservationService = Depends(_reservations),
):
    return [schemas.ReservationOut.model_validate(r).model_dump(mode="json") for r in svc.list_for_seller(user, status)]


@router.patch("/reservations/{reservation_id}/confirm")
def confirm_reservation(
    reservation_id: int,
    user: models.User = Depends(require_seller),
    svc: services.ReservationService = Depends(_reservations),
):
    return _action_payload("reservation confirmed", svc.confirm(user, reservation_id))


@router.patch("/reservations/{reservation_id}/cancel")
def cancel_reservation(
    reservation_id: int,
    user: models.User = Depends(require_seller),
    svc: services.ReservationService = Depends(_reservations),
):
    return _action_payload("reservation cancelled", svc.cancel(user, reservation_id))


@router.get("/charts/books-by-category")
def books_by_category(user: models.User = Depends(require_seller), session: Session = Depends(get_session)):
    return services.DashboardService(session).books_by_category(user)
