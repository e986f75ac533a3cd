"""Gemini-backed writing helpers for sellers and admins."""

from fastapi import APIRouter, Depends, Request

from .. import models, schemas, services
from ..auth import require_admin, require_seller
from ..config import settings
from ..dependencies import get_text_generator
from ..utils.gemini import TextGenerator
from ..utils.rate_limit import limiter

router = APIRouter(prefix="/ai", tags=["AI"])


def _rate_limited(request: Request) -> None:
    limiter.enforce(request, settings.AI_RATE_LIMIT_PER_MIN)


@router.post("/generate-description", response_model=schemas.DescriptionOut, dependencies=[Depends(_rate_limited)])
def generate_description(
    data: schemas.GenerateDescriptionIn,
    user: models.User = Depends(require_seller),
    generator: TextGenerator = Depends(get_text_generator),
):
    return schemas.DescriptionOut(description=services.AIService(generator).book_description(data.title, data.author))


@router.post("/generate-store-description", response_model=schemas.DescriptionOut, dependencies=[Depends(_rate_limited)])
def generate_store_description(
    data: schemas.GenerateStoreDescriptionIn,
    user: models.User = Depends(require_seller),
    generator: TextGenerator = Depends(get_text_generator),
):
    text = services.AIService(generator).store_description(data.brief_description, data.store_name)
    return schemas.DescriptionOut(description=text)


@router.post("/suggest-categories", response_model=schemas.SuggestionsOut, dependencies=[Depends(_rate_limited)])
def suggest_categories(
    data: schemas.SuggestCategoriesIn,
    user: models.User = Depends(require_admin),
    generator: TextGenerator = Depends(get_text_generator),
):
    suggestions = services.AIService(generator).suggest_categories(data.base_category_name, data.existing_categories)
    return schemas.SuggestionsOut(suggestions=suggestions)
