"""Buyer side of the reservation workflow."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import get_current_user
from ..database import get_session
from ..dependencies import get_mailer
from ..utils.mail import Mailer

router = APIRouter(tags=["Reservations"])


def _service(session: Session = Depends(get_session), mailer: Mailer = Depends(get_mailer)) -> services.ReservationService:
    return services.ReservationService(session, mailer)


@router.post("/reservations", status_code=201, response_model=schemas.ReservationCreatedOut)
def create_reservation(
    data: schemas.ReservationCreateIn,
    user: models.User = Depends(get_current_user),
    svc: services.ReservationService = Depends(_service),
):
    result = svc.create(user, data.book_id)
    return schemas.ReservationCreatedOut(
        message="reservation created and seller notified" if result["notification_sent"] else "reservation created",
        reservation_id=result["reservation"].id,
        whatsapp_link=result["whatsapp_link"],
        notification_sent=result["notification_sent"],
    )


@router.get("/reservations/mine")
def my_reservations(user: models.User = Depends(get_current_user), svc: services.ReservationService = Depends(_service)):
    return [schemas.ReservationOut.model_validate(r).model_dump(mode="json") for r in svc.list_for_user(user)]


@router.post("/confirm-delivery-and-rate")
def confirm_delivery_and_rate(
    data: schemas.ConfirmDeliveryIn,
    user: models.User = Depends(get_current_user),
    svc: services.ReservationService = Depends(_service),
):
    reservation = svc.confirm_delivery_and_rate(user, data.token, data.rating, data.comment)
    return {
        "message": "delivery confirmed and seller rated",
        "reservation": schemas.ReservationOut.model_validate(reservation).model_dump(mode="json"),
    }
