"""Public store pages and the seller's own profile."""

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import require_seller
from ..database import get_session
from .books import book_payload

router = APIRouter(prefix="/sellers", tags=["Sellers"])
profile_router = APIRouter(prefix="/seller", tags=["Sellers"])


@router.get("")
def list_sellers(
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1, le=100),
    session: Session = Depends(get_session),
):
    items, total = services.SellerService(session).list(page, limit)
    return {
        "data": [schemas.SellerListItemOut.model_validate(i).model_dump(mode="json") for i in items],
        "pagination": services.pagination(total, page, limit),
    }


@router.get("/{seller_id}")
def get_seller(
    seller_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    session: Session = Depends(get_session),
):
    detail = services.SellerService(session).public_detail(seller_id, page, limit)
    return {
        "profile": schemas.SellerProfileOut.model_validate(detail["profile"]).model_dump(mode="json"),
        "whatsapp_link": detail["whatsapp_link"],
        "banner_books": [book_payload(b) for b in detail["banner_books"]],
        "books": {
            "data": [book_payload(b) for b in detail["books"]],
            "pagination": services.pagination(detail["total"], page, limit),
        },
    }


@profile_router.get("/profile", response_model=schemas.SellerProfileOut)
def get_own_profile(user: models.User = Depends(require_seller), session: Session = Depends(get_session)):
    return schemas.SellerProfileOut.model_validate(services.SellerService(session).get_own(user))


@profile_router.put("/profile", response_model=schemas.SellerProfileOut)
def update_own_profile(
    data: schemas.SellerProfileUpdateIn,
    user: models.User = Depends(require_seller),
    session: Session = Depends(get_session),
):
    profile = services.SellerService(session).update_own(
        user, data.store_name, data.store_description, data.whatsapp_number
    )
    return schemas.SellerProfileOut.model_validate(profile)
