"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Output schemas read straight from the
SQLModel rows (`from_attributes`), so routes validate them while the
request session is still open.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import BookCondition, BookStatus, ReservationStatus, Role
from .utils.parsers import normalize_condition, normalize_price

MAX_TAGS = 10


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    message: str


# --- auth -----------------------------------------------------------------

class RegisterIn(BaseModel):
    """Payload for account registration. Sellers also send store data."""
    name: str = Field(min_length=3, max_length=120)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    role: Literal["USER", "SELLER"] = "USER"
    store_name: Optional[str] = Field(default=None, max_length=100)
    whatsapp_number: Optional[str] = Field(default=None, max_length=40)


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    token_type: str = "bearer"


class PasswordResetRequestIn(BaseModel):
    email: EmailStr


class PasswordResetIn(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=6, max_length=128)
    confirm_password: Optional[str] = None


class SellerProfileOut(ORMModel):
    id: int
    user_id: int
    store_name: str
    store_description: Optional[str] = None
    whatsapp_number: str
    average_rating: Optional[float] = None
    total_ratings: int = 0
    created_at: datetime


class SellerProfileUpdateIn(BaseModel):
    store_name: str = Field(min_length=3, max_length=100)
    store_description: Optional[str] = Field(default=None, max_length=1000)
    whatsapp_number: str = Field(min_length=1, max_length=40)


class UserOut(ORMModel):
    id: int
    name: str
    email: str
    role: Role
    email_verified_at: Optional[datetime] = None
    image: Optional[str] = None
    created_at: datetime
    seller_profile: Optional[SellerProfileOut] = None


class UserBriefOut(ORMModel):
    id: int
    name: str
    email: str


# --- catalog --------------------------------------------------------------

class CategoryOut(ORMModel):
    id: int
    name: str
    slug: str


class CategoryCreateIn(BaseModel):
    names: List[str] = Field(min_length=1)


class SellerBriefOut(ORMModel):
    id: int
    store_name: str
    whatsapp_number: Optional[str] = None
    average_rating: Optional[float] = None


class BookOut(ORMModel):
    id: int
    title: str
    author: str
    description: str
    price: float
    cover_image_url: str
    condition: BookCondition
    stock: int
    status: BookStatus
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    publication_year: Optional[int] = None
    language: Optional[str] = None
    pages: Optional[int] = None
    tags: List[str] = []
    category_id: int
    seller_id: int
    created_at: datetime
    updated_at: datetime
    category: Optional[CategoryOut] = None
    seller: Optional[SellerBriefOut] = None


class BookDetailOut(BookOut):
    whatsapp_link: Optional[str] = None


class BookBriefOut(ORMModel):
    id: int
    title: str
    author: str
    price: float
    cover_image_url: str
    stock: int


class BookCreateIn(BaseModel):
    title: str = Field(min_length=3, max_length=255)
    author: str = Field(min_length=3, max_length=255)
    description: str = Field(min_length=10, max_length=5000)
    price: float = Field(gt=0)
    cover_image_url: str = Field(min_length=1, max_length=1000)
    condition: BookCondition
    stock: int = Field(default=1, ge=0)
    category_id: int
    isbn: Optional[str] = Field(default=None, max_length=20)
    publisher: Optional[str] = Field(default=None, max_length=255)
    publication_year: Optional[int] = None
    language: Optional[str] = Field(default=None, max_length=50)
    pages: Optional[int] = Field(default=None, gt=0)


class BookUpdateIn(BaseModel):
    """Partial update; only fields present in the payload are applied."""
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    author: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, min_length=10, max_length=5000)
    price: Optional[float] = Field(default=None, gt=0)
    cover_image_url: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    condition: Optional[BookCondition] = None
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    isbn: Optional[str] = Field(default=None, max_length=20)
    publisher: Optional[str] = Field(default=None, max_length=255)
    publication_year: Optional[int] = None
    language: Optional[str] = Field(default=None, max_length=50)
    pages: Optional[int] = Field(default=None, gt=0)


class AdminBookUpdateIn(BookUpdateIn):
    status: Optional[BookStatus] = None
    tags: Optional[List[str]] = Field(default=None, max_length=MAX_TAGS)

    @field_validator("publication_year")
    @classmethod
    def _year_in_range(cls, value):
        if value is None:
            return value
        latest = datetime.now().year + 5
        if value < 1000 or value > latest:
            raise ValueError(f"publication_year must be between 1000 and {latest}")
        return value

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value):
        if value is None:
            return value
        tags = [t.strip() for t in value if t and t.strip()]
        if any(len(t) > 50 for t in tags):
            raise ValueError("tags must have at most 50 characters")
        return tags


class BookStatusIn(BaseModel):
    status: BookStatus


class BatchDeleteIn(BaseModel):
    book_ids: List[int] = Field(min_length=1)


class BatchImportIn(BaseModel):
    books: List[dict] = Field(min_length=1)


class BookImportRow(BaseModel):
    """One spreadsheet row after header mapping."""
    title: str = Field(min_length=3, max_length=255)
    author: str = Field(min_length=3, max_length=255)
    price: float = Field(gt=0)
    condition: BookCondition
    category_name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=5000)
    stock: int = Field(default=1, ge=0)
    cover_image_url: Optional[str] = Field(default=None, max_length=1000)
    isbn: Optional[str] = Field(default=None, max_length=20)
    publisher: Optional[str] = None
    publication_year: Optional[int] = None
    language: Optional[str] = None
    pages: Optional[int] = Field(default=None, gt=0)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value):
        normalized = normalize_price(value)
        return value if normalized is None else normalized

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value):
        return normalize_condition(value)

    @field_validator("isbn", "publisher", "language", mode="before")
    @classmethod
    def _as_text(cls, value):
        # spreadsheets hand ISBNs over as numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        return value


class ImportErrorOut(BaseModel):
    row: int
    data: dict
    message: str


class ImportResultOut(BaseModel):
    success_count: int
    error_count: int
    errors: List[ImportErrorOut]


# --- sellers ----------------------------------------------------------------

class SellerListItemOut(ORMModel):
    id: int
    store_name: str
    store_description: Optional[str] = None
    whatsapp_number: str
    average_rating: Optional[float] = None
    total_ratings: int = 0
    books_count: int = 0


# --- reservations and ratings --------------------------------------------

class ReservationCreateIn(BaseModel):
    book_id: int


class ReservationCreatedOut(BaseModel):
    message: str
    reservation_id: int
    whatsapp_link: Optional[str] = None
    notification_sent: bool


class StoreBriefOut(ORMModel):
    id: int
    store_name: str


class ReservationOut(ORMModel):
    id: int
    status: ReservationStatus
    book_id: int
    user_id: int
    seller_profile_id: int
    customer_confirmation_token_expires: Optional[datetime] = None
    delivery_confirmed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    book: Optional[BookBriefOut] = None
    user: Optional[UserBriefOut] = None
    seller_profile: Optional[StoreBriefOut] = None


class ReservationActionOut(BaseModel):
    message: str
    reservation: ReservationOut
    notification_sent: bool


class ConfirmDeliveryIn(BaseModel):
    token: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class RatingOut(ORMModel):
    id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    seller_profile_id: int
    rated_by_id: int
    seller_profile: Optional[StoreBriefOut] = None
    rated_by: Optional[UserBriefOut] = None


# --- wishlist -------------------------------------------------------------

class WishlistIn(BaseModel):
    book_id: int


class WishlistItemOut(ORMModel):
    id: int
    book_id: int
    created_at: datetime
    book: Optional[BookOut] = None


# --- admin ----------------------------------------------------------------

class AdminUserOut(ORMModel):
    id: int
    name: str
    email: str
    role: Role
    email_verified_at: Optional[datetime] = None
    created_at: datetime
    seller_profile: Optional[StoreBriefOut] = None


class ChangePasswordIn(BaseModel):
    new_password: str = Field(min_length=6, max_length=128)


# --- ai -------------------------------------------------------------------

class GenerateDescriptionIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    author: Optional[str] = Field(default=None, max_length=255)


class GenerateStoreDescriptionIn(BaseModel):
    brief_description: str = Field(min_length=1, max_length=1000)
    store_name: Optional[str] = Field(default=None, max_length=100)


class SuggestCategoriesIn(BaseModel):
    base_category_name: str = Field(min_length=2, max_length=100)
    existing_categories: List[str] = []


class DescriptionOut(BaseModel):
    description: str


class SuggestionsOut(BaseModel):
    suggestions: List[str]


class UploadOut(BaseModel):
    url: str
    path: str
