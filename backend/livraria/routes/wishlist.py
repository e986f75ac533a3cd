"""Wishlist endpoints for signed-in users."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import get_current_user
from ..database import get_session

router = APIRouter(prefix="/wishlist", tags=["Wishlist"])


@router.get("")
def list_wishlist(user: models.User = Depends(get_current_user), session: Session = Depends(get_session)):
    items = services.WishlistService(session).list(user)
    return [schemas.WishlistItemOut.model_validate(i).model_dump(mode="json") for i in items]


@router.post("")
def add_to_wishlist(
    data: schemas.WishlistIn,
    user: models.User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    item, created = services.WishlistService(session).add(user, data.book_id)
    body = {
        "message": "book added to wishlist" if created else "book already in wishlist",
        "item": schemas.WishlistItemOut.model_validate(item).model_dump(mode="json"),
    }
    return JSONResponse(status_code=201 if created else 200, content=body)


@router.delete("/{book_id}", response_model=schemas.MessageOut)
def remove_from_wishlist(
    book_id: int,
    user: models.User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    services.WishlistService(session).remove(user, book_id)
    return schemas.MessageOut(message="book removed from wishlist")
