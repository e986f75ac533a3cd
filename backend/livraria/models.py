"""SQLModel data models.

This module defines the marketplace tables using SQLModel. Each class
maps to a table; relationships are declared where the API navigates
them (book -> category/seller, reservation -> book/buyer/seller).
"""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import CheckConstraint, Column, Index, JSON, UniqueConstraint, text
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: datetime) -> datetime:
    """SQLite hands datetimes back naive; they were stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires is None:
        return True
    return as_aware(expires) < (now or utcnow())


class Role(str, enum.Enum):
    USER = "USER"
    SELLER = "SELLER"
    ADMIN = "ADMIN"


class BookCondition(str, enum.Enum):
    NEW = "NEW"
    USED_LIKE_NEW = "USED_LIKE_NEW"
    USED_GOOD = "USED_GOOD"
    USED_FAIR = "USED_FAIR"


class BookStatus(str, enum.Enum):
    PUBLISHED = "PUBLISHED"
    UNPUBLISHED = "UNPUBLISHED"
    PENDING_APPROVAL = "PENDING_APPROVAL"


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TokenPurpose(str, enum.Enum):
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"


class User(SQLModel, table=True):
    """A registered account.

    Fields:
    - `email`: unique, always stored lower-case
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: USER buys, SELLER also lists books, ADMIN moderates
    - `email_verified_at`: set once the verification link was used
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: Role = Field(default=Role.USER, index=True)
    email_verified_at: Optional[datetime] = None
    image: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    seller_profile: Optional["SellerProfile"] = Relationship(
        back_populates="user", sa_relationship_kwargs={"uselist": False}
    )


class SellerProfile(SQLModel, table=True):
    """Store data of a SELLER account.

    `average_rating` and `total_ratings` are denormalized aggregates of
    the store's `SellerRating` rows and are recomputed on every rating
    write or delete.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True)
    store_name: str = Field(index=True)
    store_description: Optional[str] = None
    whatsapp_number: str
    average_rating: Optional[float] = None
    total_ratings: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    user: Optional[User] = Relationship(back_populates="seller_profile")
    books: List["Book"] = Relationship(back_populates="seller")


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    slug: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)
    books: List["Book"] = Relationship(back_populates="category")


class Book(SQLModel, table=True):
    """A book listed by a seller. `stock` can never go below zero."""
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_book_stock_non_negative"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(index=True)
    author: str = Field(index=True)
    description: str
    price: float
    cover_image_url: str
    condition: BookCondition
    stock: int = 1
    status: BookStatus = Field(default=BookStatus.PUBLISHED, index=True)
    isbn: Optional[str] = Field(default=None, index=True)
    publisher: Optional[str] = None
    publication_year: Optional[int] = None
    language: Optional[str] = None
    pages: Optional[int] = None
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    category_id: int = Field(foreign_key="category.id", index=True)
    seller_id: int = Field(foreign_key="sellerprofile.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    category: Optional[Category] = Relationship(back_populates="books")
    seller: Optional[SellerProfile] = Relationship(back_populates="books")


class Reservation(SQLModel, table=True):
    """A buyer's reservation of one copy of a book.

    Lifecycle: PENDING -> CONFIRMED -> COMPLETED, or PENDING -> CANCELLED
    (also CONFIRMED -> CANCELLED when the delivery link expires).
    """
    __table_args__ = (
        Index(
            "uq_reservation_pending_user_book",
            "book_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    seller_profile_id: int = Field(foreign_key="sellerprofile.id", index=True)
    status: ReservationStatus = Field(default=ReservationStatus.PENDING, index=True)
    customer_confirmation_token: Optional[str] = Field(default=None, unique=True)
    customer_confirmation_token_expires: Optional[datetime] = None
    delivery_confirmed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    book: Optional[Book] = Relationship()
    user: Optional[User] = Relationship()
    seller_profile: Optional[SellerProfile] = Relationship()


class SellerRating(SQLModel, table=True):
    """A buyer's 1..5 rating of a store; one per (store, buyer)."""
    __table_args__ = (
        UniqueConstraint("seller_profile_id", "rated_by_id", name="uq_rating_seller_rater"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_rating_range"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    rating: int
    comment: Optional[str] = Field(default=None, max_length=1000)
    seller_profile_id: int = Field(foreign_key="sellerprofile.id", index=True)
    rated_by_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})
    seller_profile: Optional[SellerProfile] = Relationship()
    rated_by: Optional[User] = Relationship()


class VerificationToken(SQLModel, table=True):
    """One-time token for email verification or password reset.

    `identifier` holds the user id as text.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    identifier: str = Field(index=True)
    token: str = Field(unique=True, index=True)
    purpose: TokenPurpose
    expires: datetime


class WishlistItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_wishlist_user_book"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    book: Optional[Book] = Relationship()
