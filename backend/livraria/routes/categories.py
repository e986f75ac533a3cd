"""Category endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import require_admin
from ..database import get_session

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=list[schemas.CategoryOut])
def list_categories(session: Session = Depends(get_session)):
    return [schemas.CategoryOut.model_validate(c) for c in services.CategoryService(session).list()]


@router.post("")
def create_categories(
    data: schemas.CategoryCreateIn,
    admin: models.User = Depends(require_admin),
    session: Session = Depends(get_session),
):
    created, messages = services.CategoryService(session).create_many(data.names)
    body = {
        "created": [schemas.CategoryOut.model_validate(c).model_dump() for c in created],
        "messages": messages,
    }
    return JSONResponse(status_code=201 if created else 200, content=body)
