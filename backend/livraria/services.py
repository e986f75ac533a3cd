"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
adapters (mail, storage, text generation) and domain rules. Services
raise `LivrariaError` subclasses; controllers never see SQL errors.

Transactions: a service method that touches several rows commits once
at the end, so a failure anywhere leaves the database untouched (the
request session rolls back on close). Emails are sent after the commit
and are best effort: a delivery failure is logged and reported back as
`notification_sent=False`, never as a failed request.
"""

import json
import logging
import math
import re
import secrets
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import jwt
from passlib.context import CryptContext
from pydantic import ValidationError
from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import models, notifications, repositories
from .config import settings
from .errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamError,
    ValidationFailedError,
)
from .schemas import AdminBookUpdateIn, BookCreateIn, BookImportRow, BookUpdateIn, RegisterIn
from .utils.gemini import TextGenerator
from .utils.mail import Mailer
from .utils.parsers import map_headers
from .utils.storage import StorageClient
from .utils.text import clean_optional, slugify
from .utils.whatsapp import (
    book_interest_message,
    format_whatsapp_number,
    reservation_message,
    store_message,
    whatsapp_link,
)

logger = logging.getLogger("livraria.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

EMAIL_VERIFICATION_TTL = timedelta(hours=24)
PASSWORD_RESET_TTL = timedelta(hours=1)
DELIVERY_CONFIRMATION_TTL = timedelta(hours=72)
DEFAULT_COVER_URL = "/cover.jpg"
PASSWORD_RESET_MESSAGE = "If an account exists for this email, a password reset link has been sent."

CHART_PALETTE = [
    (5, 150, 105),
    (59, 130, 246),
    (245, 158, 11),
    (239, 68, 68),
    (139, 92, 246),
    (236, 72, 153),
    (20, 184, 166),
    (249, 115, 22),
]


def new_token() -> str:
    """64 hex chars from the OS CSPRNG."""
    return secrets.token_hex(32)


def is_admin(user: models.User) -> bool:
    if user.role == models.Role.ADMIN:
        return True
    return bool(settings.ADMIN_EMAIL) and user.email == settings.ADMIN_EMAIL


def pagination(total: int, page: int, limit: int) -> Dict[str, int]:
    return {
        "total_items": total,
        "current_page": page,
        "items_per_page": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def send_notification(mailer: Mailer, to: str, message: Tuple[str, str]) -> bool:
    """Deliver `(subject, html)` to `to`; False (and a log line) on failure."""
    subject, html = message
    try:
        mailer.send(to, subject, html)
        return True
    except Exception:
        logger.exception("notification_failed to=%s subject=%r", to, subject)
        return False


def refresh_seller_rating(session: Session, seller_profile_id: int) -> models.SellerProfile:
    """Recompute the store's rating aggregates from its rating rows (no commit)."""
    session.flush()
    average, total = repositories.RatingRepository(session).aggregate(seller_profile_id)
    profile = session.get(models.SellerProfile, seller_profile_id)
    profile.average_rating = round(average, 2) if average is not None else None
    profile.total_ratings = total
    session.add(profile)
    return profile


def require_seller_profile(session: Session, user: models.User) -> models.SellerProfile:
    profile = repositories.SellerProfileRepository(session).get_by_user(user.id)
    if not profile:
        raise NotFoundError("seller profile")
    return profile


def remove_stored_object(storage: StorageClient, url: Optional[str]) -> None:
    """Delete the object behind `url` when it lives in our bucket."""
    if not url:
        return
    path = storage.path_from_url(url)
    if not path:
        return
    try:
        storage.delete(path)
    except Exception:
        logger.exception("storage_delete_failed path=%s", path)


class AuthService:
    """Registration, login and the email verification / password reset flows."""

    def __init__(self, session: Session, mailer: Mailer):
        self.session = session
        self.mailer = mailer
        self.user_repo = repositories.UserRepository(session)
        self.profile_repo = repositories.SellerProfileRepository(session)
        self.token_repo = repositories.VerificationTokenRepository(session)

    def register(self, data: RegisterIn) -> Tuple[models.User, bool]:
        """Create a user (and store for sellers) and send the verification email.

        Returns the persisted `User` and whether the email went out.
        """
        email = data.email.strip().lower()
        whatsapp = None
        store_name = None
        if data.role == models.Role.SELLER.value:
            store_name = (data.store_name or "").strip()
            if len(store_name) < 3:
                raise ValidationFailedError("store_name must have at least 3 characters", field="store_name")
            whatsapp = format_whatsapp_number(data.whatsapp_number)
            if not whatsapp:
                raise ValidationFailedError(
                    "invalid WhatsApp number; use area code + number, e.g. 11987654321",
                    field="whatsapp_number",
                )
        if self.user_repo.get_by_email(email):
            raise ConflictError("email already registered")

        user = models.User(
            name=data.name.strip(),
            email=email,
            password_hash=PWD_CTX.hash(data.password),
            role=models.Role(data.role),
        )
        try:
            self.user_repo.create(user, commit=False)
            if store_name:
                self.profile_repo.create(
                    models.SellerProfile(
                        user_id=user.id,
                        store_name=store_name,
                        store_description=f"Bem-vindo à livraria {store_name}! Seu espaço de livros e conhecimento.",
                        whatsapp_number=whatsapp,
                    ),
                    commit=False,
                )
            token = self.token_repo.create(
                models.VerificationToken(
                    identifier=str(user.id),
                    token=new_token(),
                    purpose=models.TokenPurpose.EMAIL_VERIFICATION,
                    expires=models.utcnow() + EMAIL_VERIFICATION_TTL,
                ),
                commit=False,
            )
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("email already registered") from exc
        self.session.refresh(user)
        logger.info("user_registered user_id=%s role=%s", user.id, user.role.value)
        sent = send_notification(self.mailer, user.email, notifications.verification_email(user.name, token.token))
        return user, sent

    def create_or_promote_admin(self, email: str, name: str, password: Optional[str]) -> Tuple[models.User, bool]:
        """Give `email` the ADMIN role, creating a verified account if needed.

        Returns the user and whether it was created.
        """
        user = self.user_repo.get_by_email(email)
        created = user is None
        if created:
            if not password or len(password) < 6:
                raise ValidationFailedError("password must have at least 6 characters", field="password")
            user = models.User(
                name=name.strip(),
                email=email.strip().lower(),
                password_hash=PWD_CTX.hash(password),
                email_verified_at=models.utcnow(),
            )
        elif password:
            user.password_hash = PWD_CTX.hash(password)
        user.role = models.Role.ADMIN
        self.user_repo.create(user)
        logger.info("admin_ensured user_id=%s created=%s", user.id, created)
        return user, created

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_email(email)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        if settings.REQUIRE_VERIFIED_EMAIL and user.email_verified_at is None:
            raise PermissionDeniedError("email not verified")
        return self.create_access_token(user)

    @staticmethod
    def create_access_token(user: models.User) -> str:
        expire = models.utcnow() + timedelta(hours=settings.JWT_EXPIRE_HOURS)
        payload = {
            "user_id": user.id,
            "email": user.email,
            "role": user.role.value,
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def _consume(self, token: str, purpose: models.TokenPurpose) -> models.VerificationToken:
        record = self.token_repo.get_by_token(token) if token else None
        if not record or record.purpose != purpose:
            raise InvalidStateError("invalid token")
        if models.is_expired(record.expires):
            self.session.delete(record)
            self.session.commit()
            raise InvalidStateError("token expired")
        return record

    def verify_email(self, token: str) -> models.User:
        if not token:
            raise ValidationFailedError("token is required", field="token")
        record = self._consume(token, models.TokenPurpose.EMAIL_VERIFICATION)
        user = self.user_repo.get(int(record.identifier))
        if not user:
            self.session.delete(record)
            self.session.commit()
            raise NotFoundError("user")
        user.email_verified_at = models.utcnow()
        self.session.add(user)
        self.session.delete(record)
        self.session.commit()
        self.session.refresh(user)
        return user

    def request_password_reset(self, email: str) -> bool:
        """Issue a 1h reset token; silent when the account does not exist."""
        user = self.user_repo.get_by_email(email)
        if not user:
            logger.info("password_reset_unknown_email")
            return False
        for old in self.token_repo.list_for(str(user.id), models.TokenPurpose.PASSWORD_RESET):
            self.session.delete(old)
        token = self.token_repo.create(
            models.VerificationToken(
                identifier=str(user.id),
                token=new_token(),
                purpose=models.TokenPurpose.PASSWORD_RESET,
                expires=models.utcnow() + PASSWORD_RESET_TTL,
            ),
            commit=False,
        )
        self.session.commit()
        return send_notification(self.mailer, user.email, notifications.password_reset_email(user.name, token.token))

    def reset_password(self, token: str, password: str, confirm_password: Optional[str] = None) -> None:
        if confirm_password is not None and confirm_password != password:
            raise ValidationFailedError("passwords do not match", field="confirm_password")
        record = self._consume(token, models.TokenPurpose.PASSWORD_RESET)
        user = self.user_repo.get(int(record.identifier))
        if not user:
            self.session.delete(record)
            self.session.commit()
            raise NotFoundError("user")
        user.password_hash = PWD_CTX.hash(password)
        # the reset link proves ownership of the mailbox
        if user.email_verified_at is None:
            user.email_verified_at = models.utcnow()
        self.session.add(user)
        self.session.delete(record)
        self.session.commit()
        logger.info("password_reset user_id=%s", user.id)


class CategoryService:
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.CategoryRepository(session)

    def list(self) -> List[models.Category]:
        return self.repo.list_all()

    def create_many(self, names: Iterable[str]) -> Tuple[List[models.Category], List[str]]:
        """Create the missing categories; names are matched case-insensitively.

        Returns the created categories and one message per input name.
        """
        existing = self.repo.by_lower_name()
        created: List[models.Category] = []
        messages: List[str] = []
        for raw in names:
            name = (raw or "").strip()
            if not name:
                continue
            if name.lower() in existing:
                messages.append(f'category "{name}" already exists')
                continue
            category = self.repo.create(models.Category(name=name, slug=slugify(name)), commit=False)
            existing[name.lower()] = category
            created.append(category)
            messages.append(f'category "{name}" created')
        self.session.commit()
        for category in created:
            self.session.refresh(category)
        return created, messages


class BookService:
    """Catalog reads for everyone and book management for sellers/admins."""

    def __init__(self, session: Session, storage: Optional[StorageClient] = None):
        self.session = session
        self.storage = storage
        self.repo = repositories.BookRepository(session)
        self.category_repo = repositories.CategoryRepository(session)
        self.reservation_repo = repositories.ReservationRepository(session)

    # --- reads ------------------------------------------------------------

    def list_public(self, page: int, limit: int, sort: str, category_id: Optional[int], q: Optional[str]):
        return self.repo.list_public(page, limit, sort, category_id, (q or "").strip() or None)

    def search(self, q: Optional[str]) -> List[models.Book]:
        term = (q or "").strip()
        if len(term) < 2:
            raise ValidationFailedError("search term must have at least 2 characters", field="q")
        return self.repo.search(term, limit=10)

    def get_visible(self, book_id: int, viewer: Optional[models.User]) -> models.Book:
        """Published books for anyone; other states only for the owner or an admin."""
        book = self.repo.get(book_id)
        if not book:
            raise NotFoundError("book")
        if book.status != models.BookStatus.PUBLISHED:
            owner = viewer is not None and book.seller is not None and book.seller.user_id == viewer.id
            if not owner and not (viewer is not None and is_admin(viewer)):
                raise NotFoundError("book")
        return book

    @staticmethod
    def contact_link(book: models.Book) -> Optional[str]:
        if not book.seller:
            return None
        return whatsapp_link(book.seller.whatsapp_number, book_interest_message(book.title))

    def list_for_dashboard(self, user: models.User, q: Optional[str], page: int, limit: int):
        profile = require_seller_profile(self.session, user)
        return self.repo.list_for_seller(profile.id, (q or "").strip() or None, page, limit)

    # --- writes -----------------------------------------------------------

    def _require_category(self, category_id: int) -> models.Category:
        category = self.category_repo.get(category_id)
        if not category:
            raise ValidationFailedError("category not found", field="category_id")
        return category

    def _get_managed(self, user: models.User, book_id: int) -> models.Book:
        book = self.repo.get(book_id)
        if not book:
            raise NotFoundError("book")
        if is_admin(user):
            return book
        profile = repositories.SellerProfileRepository(self.session).get_by_user(user.id)
        if not profile or book.seller_id != profile.id:
            raise PermissionDeniedError("you can only manage your own books")
        return book

    def create(self, user: models.User, data: BookCreateIn) -> models.Book:
        profile = require_seller_profile(self.session, user)
        self._require_category(data.category_id)
        values = data.model_dump()
        for key in ("isbn", "publisher", "language"):
            values[key] = clean_optional(values.get(key))
        book = models.Book(**values, seller_id=profile.id, status=models.BookStatus.PUBLISHED)
        self.repo.create(book)
        logger.info("book_created book_id=%s seller_id=%s", book.id, profile.id)
        return book

    def update(self, user: models.User, book_id: int, data: BookUpdateIn) -> models.Book:
        book = self._get_managed(user, book_id)
        return self._apply_update(book, data)

    def admin_update(self, book_id: int, data: AdminBookUpdateIn) -> models.Book:
        book = self.repo.get(book_id)
        if not book:
            raise NotFoundError("book")
        return self._apply_update(book, data)

    def set_status(self, book_id: int, status: models.BookStatus) -> models.Book:
        book = self.repo.get(book_id)
        if not book:
            raise NotFoundError("book")
        book.status = status
        self.session.add(book)
        self.session.commit()
        self.session.refresh(book)
        logger.info("book_status_changed book_id=%s status=%s", book.id, status.value)
        return book

    def _apply_update(self, book: models.Book, data: BookUpdateIn) -> models.Book:
        changes = data.model_dump(exclude_unset=True)
        # explicit nulls on required columns are ignored
        changes = {
            key: value for key, value in changes.items()
            if value is not None or key in ("isbn", "publisher", "publication_year", "language", "pages")
        }
        for key in ("isbn", "publisher", "language"):
            if key in changes:
                changes[key] = clean_optional(changes[key])
        changes = {key: value for key, value in changes.items() if getattr(book, key) != value}
        if not changes:
            return book
        if "category_id" in changes:
            self._require_category(changes["category_id"])
        old_cover = book.cover_image_url if "cover_image_url" in changes else None
        for key, value in changes.items():
            setattr(book, key, value)
        self.session.add(book)
        self.session.commit()
        self.session.refresh(book)
        if old_cover and self.storage is not None:
            remove_stored_object(self.storage, old_cover)
        logger.info("book_updated book_id=%s fields=%s", book.id, sorted(changes))
        return book

    def _purge(self, books: List[models.Book]) -> List[str]:
        """Delete books with their wishlist entries and closed reservations (no commit)."""
        if not books:
            return []
        ids = [b.id for b in books]
        if self.reservation_repo.count_open_for_books(ids):
            raise ConflictError("book has pending or confirmed reservations")
        covers = [b.cover_image_url for b in books]
        self.session.exec(sa_delete(models.WishlistItem).where(models.WishlistItem.book_id.in_(ids)))
        self.session.exec(sa_delete(models.Reservation).where(models.Reservation.book_id.in_(ids)))
        for book in books:
            self.repo.delete(book)
        return covers

    def _drop_covers(self, covers: List[str]) -> None:
        if self.storage is None:
            return
        for url in covers:
            remove_stored_object(self.storage, url)

    def delete(self, user: models.User, book_id: int) -> None:
        book = self._get_managed(user, book_id)
        covers = self._purge([book])
        self.session.commit()
        self._drop_covers(covers)
        logger.info("book_deleted book_id=%s by_user=%s", book_id, user.id)

    def admin_delete(self, book_id: int) -> None:
        book = self.repo.get(book_id)
        if not book:
            raise NotFoundError("book")
        covers = self._purge([book])
        self.session.commit()
        self._drop_covers(covers)

    def batch_delete(self, user: models.User, book_ids: List[int]) -> int:
        """Delete the caller's own books among `book_ids`; returns how many went."""
        profile = require_seller_profile(self.session, user)
        books = self.repo.list_by_ids_for_seller(set(book_ids), profile.id)
        covers = self._purge(books)
        self.session.commit()
        self._drop_covers(covers)
        logger.info("books_batch_deleted seller_id=%s count=%d", profile.id, len(books))
        return len(books)

    def batch_import(self, user: models.User, rows: List[dict]) -> Dict:
        """Validate and create books from spreadsheet rows.

        Missing categories are created on the fly (case-insensitive). Each
        invalid row is reported as `{row, data, message}` with its
        zero-based position; valid rows are created PUBLISHED.
        """
        profile = require_seller_profile(self.session, user)
        if not rows:
            raise ValidationFailedError("no books to import", field="books")
        mapped = [map_headers(r) if isinstance(r, dict) else {} for r in rows]

        categories = self.category_repo.by_lower_name()
        for row in mapped:
            name = row.get("category_name")
            if not isinstance(name, str) or len(name.strip()) < 2:
                continue
            name = name.strip()
            if name.lower() not in categories:
                categories[name.lower()] = self.category_repo.create(
                    models.Category(name=name, slug=slugify(name)), commit=False
                )

        errors = []
        created = 0
        for index, (raw, row) in enumerate(zip(rows, mapped)):
            try:
                item = BookImportRow.model_validate(row)
            except ValidationError as exc:
                errors.append({"row": index, "data": _json_safe(raw), "message": _format_validation_error(exc)})
                continue
            category = categories.get(item.category_name.strip().lower())
            if category is None:
                errors.append({
                    "row": index,
                    "data": _json_safe(raw),
                    "message": f'category "{item.category_name}" could not be found or created',
                })
                continue
            values = item.model_dump(exclude={"category_name"})
            for key in ("isbn", "publisher", "language", "cover_image_url", "description"):
                values[key] = clean_optional(values.get(key))
            values["description"] = values["description"] or ""
            values["cover_image_url"] = values["cover_image_url"] or DEFAULT_COVER_URL
            self.repo.create(
                models.Book(
                    **values,
                    category_id=category.id,
                    seller_id=profile.id,
                    status=models.BookStatus.PUBLISHED,
                ),
                commit=False,
            )
            created += 1
        self.session.commit()
        logger.info("books_imported seller_id=%s created=%d errors=%d", profile.id, created, len(errors))
        return {"success_count": created, "error_count": len(errors), "errors": errors}


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def _json_safe(value) -> dict:
    if not isinstance(value, dict):
        return {"value": str(value)}
    return json.loads(json.dumps(value, default=str))


class SellerService:
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.SellerProfileRepository(session)
        self.book_repo = repositories.BookRepository(session)

    def list(self, page: int, limit: int) -> Tuple[List[Dict], int]:
        profiles, total = self.repo.list_by_store_name(page, limit)
        counts = self.book_repo.count_by_seller([p.id for p in profiles])
        items = []
        for p in profiles:
            item = p.model_dump()
            item["books_count"] = counts.get(p.id, 0)
            items.append(item)
        return items, total

    def public_detail(self, profile_id: int, page: int, limit: int) -> Dict:
        profile = self.repo.get(profile_id)
        if not profile:
            raise NotFoundError("seller")
        banner, _ = self.book_repo.list_published_for_seller(profile.id, 1, 5)
        books, total = self.book_repo.list_published_for_seller(profile.id, page, limit)
        return {
            "profile": profile,
            "banner_books": banner,
            "books": books,
            "total": total,
            "whatsapp_link": whatsapp_link(profile.whatsapp_number, store_message(profile.store_name)),
        }

    def get_own(self, user: models.User) -> models.SellerProfile:
        return require_seller_profile(self.session, user)

    def update_own(self, user: models.User, store_name: str, store_description: Optional[str], whatsapp_number: str):
        profile = require_seller_profile(self.session, user)
        formatted = format_whatsapp_number(whatsapp_number)
        if not formatted:
            raise ValidationFailedError(
                "invalid WhatsApp number; use area code + number, e.g. 11987654321",
                field="whatsapp_number",
            )
        profile.store_name = store_name.strip()
        profile.store_description = clean_optional(store_description)
        profile.whatsapp_number = formatted
        self.session.add(profile)
        self.session.commit()
        self.session.refresh(profile)
        return profile


class ReservationService:
    """The reservation lifecycle: reserve, confirm/cancel, confirm delivery and rate."""

    def __init__(self, session: Session, mailer: Mailer):
        self.session = session
        self.mailer = mailer
        self.repo = repositories.ReservationRepository(session)
        self.book_repo = repositories.BookRepository(session)
        self.rating_repo = repositories.RatingRepository(session)

    def create(self, user: models.User, book_id: int) -> Dict:
        book = self.book_repo.get(book_id)
        if not book or book.status != models.BookStatus.PUBLISHED:
            raise NotFoundError("book")
        if book.stock <= 0:
            raise InvalidStateError("book is out of stock")
        seller = book.seller
        if seller.user_id == user.id:
            raise PermissionDeniedError("you cannot reserve your own book")
        if self.repo.find_pending(user.id, book.id):
            raise ConflictError("you already have a pending reservation for this book")
        reservation = models.Reservation(
            book_id=book.id,
            user_id=user.id,
            seller_profile_id=seller.id,
            status=models.ReservationStatus.PENDING,
        )
        try:
            self.repo.create(reservation)
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("you already have a pending reservation for this book") from exc
        logger.info("reservation_created reservation_id=%s book_id=%s user_id=%s", reservation.id, book.id, user.id)

        seller_user = seller.user
        sent = send_notification(
            self.mailer,
            seller_user.email,
            notifications.new_reservation_email(
                seller_name=seller_user.name or seller.store_name,
                book_title=book.title,
                book_author=book.author,
                customer_name=user.name,
                customer_email=user.email,
                reserved_at=models.as_aware(reservation.created_at),
            ),
        )
        link = whatsapp_link(seller.whatsapp_number, reservation_message(seller.store_name, book.title, reservation.id))
        return {"reservation": reservation, "whatsapp_link": link, "notification_sent": sent}

    def list_for_user(self, user: models.User) -> List[models.Reservation]:
        return self.repo.list_for_user(user.id)

    def list_for_seller(self, user: models.User, status: Optional[models.ReservationStatus]):
        profile = require_seller_profile(self.session, user)
        return self.repo.list_for_seller(profile.id, status)

    def _get_owned(self, user: models.User, reservation_id: int) -> models.Reservation:
        reservation = self.repo.get(reservation_id)
        if not reservation:
            raise NotFoundError("reservation")
        if is_admin(user):
            return reservation
        profile = require_seller_profile(self.session, user)
        if reservation.seller_profile_id != profile.id:
            raise PermissionDeniedError("this reservation belongs to another store")
        return reservation

    def confirm(self, user: models.User, reservation_id: int) -> Dict:
        """PENDING -> CONFIRMED, taking one copy out of stock atomically.

        The buyer gets a 72h link to confirm delivery and rate the store.
        """
        reservation = self._get_owned(user, reservation_id)
        if reservation.status != models.ReservationStatus.PENDING:
            raise InvalidStateError(f"only pending reservations can be confirmed (current: {reservation.status.value})")
        if not self.book_repo.decrement_stock(reservation.book_id):
            self.session.rollback()
            raise InvalidStateError("book is out of stock")
        token = new_token()
        moved = self.repo.transition(
            reservation.id,
            models.ReservationStatus.PENDING,
            status=models.ReservationStatus.CONFIRMED,
            customer_confirmation_token=token,
            customer_confirmation_token_expires=models.utcnow() + DELIVERY_CONFIRMATION_TTL,
        )
        if not moved:
            self.session.rollback()
            raise InvalidStateError("reservation is no longer pending")
        self.session.commit()
        self.session.refresh(reservation)
        logger.info("reservation_confirmed reservation_id=%s", reservation.id)

        buyer = reservation.user
        sent = send_notification(
            self.mailer,
            buyer.email,
            notifications.reservation_confirmed_email(
                buyer.name, reservation.seller_profile.store_name, reservation.book.title, token
            ),
        )
        return {"reservation": reservation, "notification_sent": sent}

    def cancel(self, user: models.User, reservation_id: int) -> Dict:
        reservation = self._get_owned(user, reservation_id)
        if reservation.status != models.ReservationStatus.PENDING:
            raise InvalidStateError(f"only pending reservations can be cancelled (current: {reservation.status.value})")
        if not self.repo.transition(
            reservation.id,
            models.ReservationStatus.PENDING,
            status=models.ReservationStatus.CANCELLED,
        ):
            self.session.rollback()
            raise InvalidStateError("reservation is no longer pending")
        self.session.commit()
        self.session.refresh(reservation)
        logger.info("reservation_cancelled reservation_id=%s", reservation.id)

        buyer = reservation.user
        sent = send_notification(
            self.mailer,
            buyer.email,
            notifications.reservation_cancelled_email(
                buyer.name, reservation.seller_profile.store_name, reservation.book.title
            ),
        )
        return {"reservation": reservation, "notification_sent": sent}

    def confirm_delivery_and_rate(
        self, user: models.User, token: str, rating: int, comment: Optional[str]
    ) -> models.Reservation:
        """Close a CONFIRMED reservation and upsert the buyer's store rating.

        An expired link cancels the reservation; the copy taken out of
        stock at confirmation is not returned.
        """
        reservation = self.repo.get_by_token(token)
        if not reservation:
            raise NotFoundError("reservation")
        if reservation.user_id != user.id:
            raise PermissionDeniedError("this confirmation link belongs to another user")
        if models.is_expired(reservation.customer_confirmation_token_expires):
            reservation.status = models.ReservationStatus.CANCELLED
            reservation.customer_confirmation_token = None
            reservation.customer_confirmation_token_expires = None
            self.session.add(reservation)
            self.session.commit()
            logger.info("reservation_link_expired reservation_id=%s", reservation.id)
            raise InvalidStateError("confirmation link expired; the reservation was cancelled")
        if reservation.status != models.ReservationStatus.CONFIRMED:
            raise InvalidStateError(f"reservation is not awaiting delivery (current: {reservation.status.value})")

        comment = clean_optional(comment)
        existing = self.rating_repo.get_by_pair(reservation.seller_profile_id, user.id)
        if existing:
            existing.rating = rating
            existing.comment = comment
            self.session.add(existing)
        else:
            self.session.add(models.SellerRating(
                rating=rating,
                comment=comment,
                seller_profile_id=reservation.seller_profile_id,
                rated_by_id=user.id,
            ))
        refresh_seller_rating(self.session, reservation.seller_profile_id)

        reservation.status = models.ReservationStatus.COMPLETED
        reservation.delivery_confirmed_at = models.utcnow()
        reservation.customer_confirmation_token = None
        reservation.customer_confirmation_token_expires = None
        self.session.add(reservation)
        self.session.commit()
        self.session.refresh(reservation)
        logger.info("reservation_completed reservation_id=%s rating=%d", reservation.id, rating)
        return reservation


class WishlistService:
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.WishlistRepository(session)

    def list(self, user: models.User) -> List[models.WishlistItem]:
        return self.repo.list_for_user(user.id)

    def add(self, user: models.User, book_id: int) -> Tuple[models.WishlistItem, bool]:
        """Returns the item and whether it was newly created."""
        if not self.session.get(models.Book, book_id):
            raise NotFoundError("book")
        existing = self.repo.get(user.id, book_id)
        if existing:
            return existing, False
        try:
            item = self.repo.create(models.WishlistItem(user_id=user.id, book_id=book_id))
        except IntegrityError:
            self.session.rollback()
            return self.repo.get(user.id, book_id), False
        return item, True

    def remove(self, user: models.User, book_id: int) -> None:
        item = self.repo.get(user.id, book_id)
        if not item:
            raise NotFoundError("wishlist item")
        self.session.delete(item)
        self.session.commit()


class DashboardService:
    """Seller dashboard aggregates."""

    def __init__(self, session: Session):
        self.session = session

    def summary(self, user: models.User) -> Dict:
        profile = require_seller_profile(self.session, user)
        return {
            "store_name": profile.store_name,
            "books_count": repositories.BookRepository(self.session).count(seller_id=profile.id),
            "reservations": repositories.ReservationRepository(self.session).count_by_status(profile.id),
            "average_rating": profile.average_rating,
            "total_ratings": profile.total_ratings,
        }

    def books_by_category(self, user: models.User) -> Dict:
        profile = require_seller_profile(self.session, user)
        rows = repositories.BookRepository(self.session).count_by_category_for_seller(profile.id)
        colors = [CHART_PALETTE[i % len(CHART_PALETTE)] for i in range(len(rows))]
        return {
            "labels": [name for name, _ in rows],
            "datasets": [{
                "label": "Livros por Categoria",
                "data": [count for _, count in rows],
                "background_color": [f"rgba({r}, {g}, {b}, 0.6)" for r, g, b in colors],
                "border_color": [f"rgba({r}, {g}, {b}, 1)" for r, g, b in colors],
                "border_width": 1,
            }],
        }


class AdminService:
    def __init__(self, session: Session, storage: Optional[StorageClient] = None):
        self.session = session
        self.storage = storage
        self.user_repo = repositories.UserRepository(session)

    def stats(self) -> Dict:
        reservations = repositories.ReservationRepository(self.session).count_by_status()
        return {
            "users": self.user_repo.count(),
            "sellers": repositories.SellerProfileRepository(self.session).count(),
            "books": repositories.BookRepository(self.session).count(),
            "categories": len(repositories.CategoryRepository(self.session).list_all()),
            "reservations": sum(reservations.values()),
            "reservations_by_status": reservations,
            "ratings": repositories.RatingRepository(self.session).count(),
        }

    def _protected(self, user: models.User) -> bool:
        return bool(settings.ADMIN_EMAIL) and user.email == settings.ADMIN_EMAIL

    def delete_user(self, actor: models.User, user_id: int) -> str:
        """Remove an account and everything it owns.

        Rows go in dependency order: the store's books (with their
        wishlist entries and reservations) and ratings, then the
        account's own reservations, ratings, wishlist and tokens.
        """
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("user")
        if self._protected(user):
            raise PermissionDeniedError("the main administrator account cannot be deleted")
        if user.id == actor.id:
            raise PermissionDeniedError("administrators cannot delete their own account")
        name = user.name

        covers: List[str] = []
        profile = repositories.SellerProfileRepository(self.session).get_by_user(user.id)
        if profile:
            book_ids = list(self.session.exec(select(models.Book.id).where(models.Book.seller_id == profile.id)).all())
            covers = list(self.session.exec(
                select(models.Book.cover_image_url).where(models.Book.seller_id == profile.id)
            ).all())
            if book_ids:
                self.session.exec(sa_delete(models.WishlistItem).where(models.WishlistItem.book_id.in_(book_ids)))
            self.session.exec(sa_delete(models.Reservation).where(models.Reservation.seller_profile_id == profile.id))
            self.session.exec(sa_delete(models.SellerRating).where(models.SellerRating.seller_profile_id == profile.id))
            self.session.exec(sa_delete(models.Book).where(models.Book.seller_id == profile.id))

        rated_stores = set(self.session.exec(
            select(models.SellerRating.seller_profile_id).where(models.SellerRating.rated_by_id == user.id)
        ).all())
        self.session.exec(sa_delete(models.SellerRating).where(models.SellerRating.rated_by_id == user.id))
        self.session.exec(sa_delete(models.Reservation).where(models.Reservation.user_id == user.id))
        self.session.exec(sa_delete(models.WishlistItem).where(models.WishlistItem.user_id == user.id))
        self.session.exec(sa_delete(models.VerificationToken).where(models.VerificationToken.identifier == str(user.id)))
        if profile:
            self.session.exec(sa_delete(models.SellerProfile).where(models.SellerProfile.id == profile.id))
        self.session.exec(sa_delete(models.User).where(models.User.id == user.id))
        for store_id in rated_stores:
            if profile is None or store_id != profile.id:
                refresh_seller_rating(self.session, store_id)
        self.session.commit()
        if self.storage is not None:
            for url in covers:
                remove_stored_object(self.storage, url)
        logger.info("user_deleted user_id=%s by_admin=%s", user_id, actor.id)
        return name

    def change_password(self, user_id: int, new_password: str) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError("user")
        if self._protected(user):
            raise PermissionDeniedError("the main administrator password cannot be changed here")
        user.password_hash = PWD_CTX.hash(new_password)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info("user_password_changed user_id=%s", user.id)
        return user

    def delete_rating(self, rating_id: int) -> models.SellerProfile:
        rating = repositories.RatingRepository(self.session).get(rating_id)
        if not rating:
            raise NotFoundError("rating")
        store_id = rating.seller_profile_id
        self.session.delete(rating)
        profile = refresh_seller_rating(self.session, store_id)
        self.session.commit()
        self.session.refresh(profile)
        return profile


_JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```|(\[[\s\S]*?\])")


def parse_category_suggestions(raw: str) -> List[str]:
    """Pull a list of names out of a model reply.

    Accepts a fenced ```json block or a bare JSON array; otherwise falls
    back to splitting on commas/newlines and keeps the first five.
    """
    match = _JSON_BLOCK.search(raw)
    if match:
        candidate = match.group(1) or match.group(2)
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list) and all(isinstance(s, str) for s in parsed):
            return [s.strip() for s in parsed if s.strip()]
    fallback = [s.strip().strip('"[]`').strip() for s in re.split(r",|\n", raw)]
    return [s for s in fallback if s][:5]


class AIService:
    """Prompted copywriting and category ideas in pt-BR."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def book_description(self, title: str, author: Optional[str]) -> str:
        prompt = "\n".join([
            "Você é um assistente especializado em criar descrições de livros para um marketplace online "
            "chamado 'Adenosis | Livraria'.",
            "Sua tarefa é gerar uma descrição de venda concisa, atraente e otimizada para SEO (se possível, "
            "usando palavras-chave relevantes naturalmente) para o seguinte livro:",
            f'- Título: "{title.strip()}"',
            f'- Autor(es): "{author.strip()}"' if author and author.strip() else "- Autor(es): (Não especificado)",
            "A descrição deve:",
            "  - Ser escrita em português brasileiro.",
            "  - Ter entre 50 e 150 palavras.",
            "  - Destacar os pontos chave ou o tema principal do livro de forma a despertar o interesse de "
            "potenciais compradores.",
            "  - Manter um tom amigável e convidativo, mas profissional.",
            "  - Não inclua hashtags ou frases como 'Compre agora!'. Apenas a descrição do livro.",
            "  - Se o autor for conhecido, você pode mencioná-lo brevemente no contexto da obra.",
            "Por favor, gere a descrição:",
        ])
        return self.generator.generate(prompt, temperature=0.8, max_output_tokens=300)

    def store_description(self, brief_description: str, store_name: Optional[str]) -> str:
        prompt = "\n".join([
            "Você é um especialista em marketing e copywriting para pequenos negócios, especificamente para "
            "livrarias e sebos independentes.",
            f'A loja se chama "{(store_name or "").strip() or "esta livraria"}".',
            f'Baseado na seguinte descrição breve fornecida pelo proprietário: "{brief_description.strip()}", '
            'crie uma descrição mais completa, calorosa e convidativa para a seção "Sobre Nós" da loja online.',
            "A descrição deve:",
            "  - Ser escrita em português brasileiro, em um tom amigável e acessível.",
            "  - Ter entre 100 e 250 palavras.",
            "  - Destacar o que torna a loja especial (com base na descrição breve, inferindo seus pontos "
            "fortes, como tipo de acervo, atendimento, paixão por livros, etc.).",
            "  - Incentivar os clientes a explorar o acervo da loja.",
            "  - Ser autêntica e refletir o espírito de uma livraria/sebo local.",
            "  - Não use clichês excessivos. Seja criativo e original.",
            "Por favor, gere a descrição:",
        ])
        return self.generator.generate(prompt, temperature=0.7, max_output_tokens=400)

    def suggest_categories(self, base_category_name: str, existing: List[str]) -> List[str]:
        existing = [e.strip() for e in existing if e and e.strip()]
        restriction = (
            f"Evite sugerir as seguintes categorias que já existem: {', '.join(existing)}."
            if existing else "Não há restrições de categorias existentes no momento."
        )
        prompt = "\n".join([
            "Você é um assistente bibliotecário especialista em categorização de livros.",
            f'Com base na categoria de livro fornecida pelo usuário: "{base_category_name.strip()}", sugira 5 '
            "categorias de livros relacionadas, mais específicas ou alternativas.",
            "As sugestões devem ser concisas (1 a 3 palavras cada).",
            restriction,
            "Retorne as sugestões como um array JSON de strings. Por exemplo, se a base for 'Aventura', "
            'retorne algo como: ["Exploração", "Sobrevivência", "Caça ao Tesouro", "Viagem no Tempo", '
            '"Aventura Juvenil"].',
            "Se a categoria base for muito específica, sugira categorias mais amplas ou sinônimos.",
            "Gere apenas o array JSON como resposta.",
        ])
        raw = self.generator.generate(prompt, temperature=0.7, max_output_tokens=200)
        suggestions = parse_category_suggestions(raw)
        if not suggestions:
            raise UpstreamError("could not read category suggestions from the AI reply")
        return suggestions


class UploadService:
    """Stores validated image bytes under `{folder}/{millis}_{name}`."""

    FOLDERS = ("books", "stores")

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def store_image(self, folder: str, filename: str, payload: bytes, content_type: str) -> Dict[str, str]:
        if folder not in self.FOLDERS:
            raise ValidationFailedError(f"folder must be one of {', '.join(self.FOLDERS)}", field="folder")
        millis = int(models.utcnow().timestamp() * 1000)
        safe_name = re.sub(r"\s+", "_", filename.strip())
        path = f"{folder}/{millis}_{safe_name}"
        url = self.storage.upload_bytes(path, payload, content_type)
        logger.info("image_uploaded path=%s bytes=%d", path, len(payload))
        return {"url": url, "path": path}
