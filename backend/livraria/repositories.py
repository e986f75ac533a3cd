"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
seller profiles, categories, books, reservations, ratings, tokens,
wishlist). Repositories return SQLModel objects. `create` commits and
refreshes by default; services running a multi-step transaction pass
`commit=False` and commit once at the end.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from . import models


def paginate(session: Session, stmt, page: int, limit: int) -> Tuple[List, int]:
    """Run `stmt` for one page and return `(items, total)`."""
    total = session.exec(select(func.count()).select_from(stmt.order_by(None).subquery())).one()
    items = session.exec(stmt.offset((page - 1) * limit).limit(limit)).all()
    return list(items), int(total)


def _like(term: str) -> str:
    return f"%{term.strip()}%"


class _Repository:
    def __init__(self, session: Session):
        self.session = session

    def _save(self, obj, commit: bool):
        self.session.add(obj)
        if commit:
            self.session.commit()
            self.session.refresh(obj)
        else:
            self.session.flush()
        return obj


class UserRepository(_Repository):
    """CRUD operations for `User` objects."""

    def create(self, user: models.User, commit: bool = True) -> models.User:
        """Persist a new user and return the managed instance."""
        return self._save(user, commit)

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by (lower-cased) email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email.strip().lower())
        return self.session.exec(stmt).first()

    def list_filtered(self, q: Optional[str], role: Optional[models.Role], page: int, limit: int):
        """Admin listing; `q` matches name, email or store name."""
        stmt = (
            select(models.User)
            .outerjoin(models.SellerProfile, models.SellerProfile.user_id == models.User.id)
            .options(selectinload(models.User.seller_profile))
        )
        if q:
            stmt = stmt.where(or_(
                models.User.name.ilike(_like(q)),
                models.User.email.ilike(_like(q)),
                models.SellerProfile.store_name.ilike(_like(q)),
            ))
        if role:
            stmt = stmt.where(models.User.role == role)
        stmt = stmt.order_by(models.User.created_at.desc(), models.User.id.desc())
        return paginate(self.session, stmt, page, limit)

    def count(self, role: Optional[models.Role] = None) -> int:
        stmt = select(func.count(models.User.id))
        if role:
            stmt = stmt.where(models.User.role == role)
        return int(self.session.exec(stmt).one())


class SellerProfileRepository(_Repository):
    def create(self, profile: models.SellerProfile, commit: bool = True) -> models.SellerProfile:
        return self._save(profile, commit)

    def get(self, profile_id: int) -> Optional[models.SellerProfile]:
        return self.session.get(models.SellerProfile, profile_id)

    def get_by_user(self, user_id: int) -> Optional[models.SellerProfile]:
        stmt = select(models.SellerProfile).where(models.SellerProfile.user_id == user_id)
        return self.session.exec(stmt).first()

    def list_by_store_name(self, page: int, limit: int):
        stmt = select(models.SellerProfile).order_by(models.SellerProfile.store_name, models.SellerProfile.id)
        return paginate(self.session, stmt, page, limit)

    def count(self) -> int:
        return int(self.session.exec(select(func.count(models.SellerProfile.id))).one())


class CategoryRepository(_Repository):
    def create(self, category: models.Category, commit: bool = True) -> models.Category:
        return self._save(category, commit)

    def get(self, category_id: int) -> Optional[models.Category]:
        return self.session.get(models.Category, category_id)

    def list_all(self) -> List[models.Category]:
        return list(self.session.exec(select(models.Category).order_by(models.Category.name)).all())

    def by_lower_name(self) -> Dict[str, models.Category]:
        """Map of lower-cased name to category, for case-insensitive lookups."""
        return {c.name.lower(): c for c in self.list_all()}


class BookRepository(_Repository):
    """Queries over `Book`; list queries eager-load category and seller."""

    def _base(self):
        return select(models.Book).options(
            selectinload(models.Book.category),
            selectinload(models.Book.seller),
        )

    def create(self, book: models.Book, commit: bool = True) -> models.Book:
        return self._save(book, commit)

    def get(self, book_id: int) -> Optional[models.Book]:
        return self.session.get(models.Book, book_id)

    def list_public(self, page: int, limit: int, sort: str, category_id: Optional[int], q: Optional[str]):
        stmt = self._base().where(models.Book.status == models.BookStatus.PUBLISHED)
        if category_id:
            stmt = stmt.where(models.Book.category_id == category_id)
        if q:
            stmt = stmt.where(or_(models.Book.title.ilike(_like(q)), models.Book.author.ilike(_like(q))))
        if sort == "price_asc":
            stmt = stmt.order_by(models.Book.price.asc(), models.Book.id)
        elif sort == "price_desc":
            stmt = stmt.order_by(models.Book.price.desc(), models.Book.id)
        else:
            stmt = stmt.order_by(models.Book.created_at.desc(), models.Book.id.desc())
        return paginate(self.session, stmt, page, limit)

    def search(self, q: str, limit: int = 10) -> List[models.Book]:
        """Published books whose title, author, ISBN, category or store matches `q`."""
        pattern = _like(q)
        stmt = (
            self._base()
            .join(models.Category, models.Category.id == models.Book.category_id)
            .join(models.SellerProfile, models.SellerProfile.id == models.Book.seller_id)
            .where(models.Book.status == models.BookStatus.PUBLISHED)
            .where(or_(
                models.Book.title.ilike(pattern),
                models.Book.author.ilike(pattern),
                models.Book.isbn.ilike(pattern),
                models.Category.name.ilike(pattern),
                models.SellerProfile.store_name.ilike(pattern),
            ))
            .order_by(models.Book.created_at.desc(), models.Book.id.desc())
            .limit(limit)
        )
        return list(self.session.exec(stmt).all())

    def list_for_seller(self, seller_id: int, q: Optional[str], page: int, limit: int):
        stmt = self._base().where(models.Book.seller_id == seller_id)
        if q:
            stmt = stmt.where(or_(
                models.Book.title.ilike(_like(q)),
                models.Book.author.ilike(_like(q)),
                models.Book.isbn.ilike(_like(q)),
            ))
        stmt = stmt.order_by(models.Book.created_at.desc(), models.Book.id.desc())
        return paginate(self.session, stmt, page, limit)

    def list_published_for_seller(self, seller_id: int, page: int, limit: int):
        stmt = (
            self._base()
            .where(models.Book.seller_id == seller_id, models.Book.status == models.BookStatus.PUBLISHED)
            .order_by(models.Book.created_at.desc(), models.Book.id.desc())
        )
        return paginate(self.session, stmt, page, limit)

    def list_admin(
        self,
        q: Optional[str],
        status: Optional[models.BookStatus],
        category_id: Optional[int],
        seller_id: Optional[int],
        sort: Optional[str],
        page: int,
        limit: int,
    ):
        stmt = self._base().join(models.SellerProfile, models.SellerProfile.id == models.Book.seller_id)
        if q:
            stmt = stmt.where(or_(
                models.Book.title.ilike(_like(q)),
                models.Book.author.ilike(_like(q)),
                models.Book.isbn.ilike(_like(q)),
                models.SellerProfile.store_name.ilike(_like(q)),
            ))
        if status:
            stmt = stmt.where(models.Book.status == status)
        if category_id:
            stmt = stmt.where(models.Book.category_id == category_id)
        if seller_id:
            stmt = stmt.where(models.Book.seller_id == seller_id)
        if sort == "title_asc":
            stmt = stmt.order_by(models.Book.title.asc(), models.Book.id)
        elif sort == "title_desc":
            stmt = stmt.order_by(models.Book.title.desc(), models.Book.id)
        else:
            stmt = stmt.order_by(models.Book.created_at.desc(), models.Book.id.desc())
        return paginate(self.session, stmt, page, limit)

    def list_by_ids_for_seller(self, book_ids: Sequence[int], seller_id: int) -> List[models.Book]:
        stmt = select(models.Book).where(models.Book.id.in_(list(book_ids)), models.Book.seller_id == seller_id)
        return list(self.session.exec(stmt).all())

    def count(self, seller_id: Optional[int] = None) -> int:
        stmt = select(func.count(models.Book.id))
        if seller_id is not None:
            stmt = stmt.where(models.Book.seller_id == seller_id)
        return int(self.session.exec(stmt).one())

    def count_by_seller(self, seller_ids: Sequence[int]) -> Dict[int, int]:
        if not seller_ids:
            return {}
        stmt = (
            select(models.Book.seller_id, func.count(models.Book.id))
            .where(models.Book.seller_id.in_(list(seller_ids)))
            .group_by(models.Book.seller_id)
        )
        return {seller_id: int(n) for seller_id, n in self.session.exec(stmt).all()}

    def count_by_category_for_seller(self, seller_id: int) -> List[Tuple[str, int]]:
        """(category name, book count) for categories holding this seller's books."""
        stmt = (
            select(models.Category.name, func.count(models.Book.id))
            .join(models.Book, models.Book.category_id == models.Category.id)
            .where(models.Book.seller_id == seller_id)
            .group_by(models.Category.id, models.Category.name)
            .order_by(models.Category.name)
        )
        return [(name, int(n)) for name, n in self.session.exec(stmt).all()]

    def decrement_stock(self, book_id: int) -> bool:
        """Take one copy out of stock; False when none was left."""
        stmt = (
            update(models.Book)
            .where(models.Book.id == book_id, models.Book.stock > 0)
            .values(stock=models.Book.stock - 1)
        )
        return self.session.exec(stmt).rowcount == 1

    def delete(self, book: models.Book) -> None:
        self.session.delete(book)


class ReservationRepository(_Repository):
    def _base(self):
        return select(models.Reservation).options(
            selectinload(models.Reservation.book),
            selectinload(models.Reservation.user),
            selectinload(models.Reservation.seller_profile),
        )

    def create(self, reservation: models.Reservation, commit: bool = True) -> models.Reservation:
        return self._save(reservation, commit)

    def get(self, reservation_id: int) -> Optional[models.Reservation]:
        return self.session.get(models.Reservation, reservation_id)

    def get_by_token(self, token: str) -> Optional[models.Reservation]:
        stmt = select(models.Reservation).where(models.Reservation.customer_confirmation_token == token)
        return self.session.exec(stmt).first()

    def find_pending(self, user_id: int, book_id: int) -> Optional[models.Reservation]:
        stmt = select(models.Reservation).where(
            models.Reservation.user_id == user_id,
            models.Reservation.book_id == book_id,
            models.Reservation.status == models.ReservationStatus.PENDING,
        )
        return self.session.exec(stmt).first()

    def count_open_for_books(self, book_ids: Sequence[int]) -> int:
        """PENDING or CONFIRMED reservations still tied to these books."""
        stmt = select(func.count(models.Reservation.id)).where(
            models.Reservation.book_id.in_(list(book_ids)),
            models.Reservation.status.in_([models.ReservationStatus.PENDING, models.ReservationStatus.CONFIRMED]),
        )
        return int(self.session.exec(stmt).one())

    def list_for_seller(self, seller_profile_id: int, status: Optional[models.ReservationStatus] = None):
        stmt = self._base().where(models.Reservation.seller_profile_id == seller_profile_id)
        if status:
            stmt = stmt.where(models.Reservation.status == status)
        stmt = stmt.order_by(models.Reservation.created_at.desc(), models.Reservation.id.desc())
        return list(self.session.exec(stmt).all())

    def list_for_user(self, user_id: int) -> List[models.Reservation]:
        stmt = (
            self._base()
            .where(models.Reservation.user_id == user_id)
            .order_by(models.Reservation.created_at.desc(), models.Reservation.id.desc())
        )
        return list(self.session.exec(stmt).all())

    def list_admin(self, status: Optional[models.ReservationStatus], page: int, limit: int):
        stmt = self._base()
        if status:
            stmt = stmt.where(models.Reservation.status == status)
        stmt = stmt.order_by(models.Reservation.created_at.desc(), models.Reservation.id.desc())
        return paginate(self.session, stmt, page, limit)

    def transition(
        self,
        reservation_id: int,
        expected: models.ReservationStatus,
        **values,
    ) -> bool:
        """Conditional status change; False if the row was no longer in `expected`."""
        stmt = (
            update(models.Reservation)
            .where(models.Reservation.id == reservation_id, models.Reservation.status == expected)
            .values(updated_at=models.utcnow(), **values)
        )
        return self.session.exec(stmt).rowcount == 1

    def count_by_status(self, seller_profile_id: Optional[int] = None) -> Dict[str, int]:
        stmt = select(models.Reservation.status, func.count(models.Reservation.id)).group_by(models.Reservation.status)
        if seller_profile_id is not None:
            stmt = stmt.where(models.Reservation.seller_profile_id == seller_profile_id)
        counts = {s.value: 0 for s in models.ReservationStatus}
        for status, n in self.session.exec(stmt).all():
            key = status.value if isinstance(status, models.ReservationStatus) else str(status)
            counts[key] = int(n)
        return counts


class RatingRepository(_Repository):
    def get(self, rating_id: int) -> Optional[models.SellerRating]:
        return self.session.get(models.SellerRating, rating_id)

    def get_by_pair(self, seller_profile_id: int, rated_by_id: int) -> Optional[models.SellerRating]:
        stmt = select(models.SellerRating).where(
            models.SellerRating.seller_profile_id == seller_profile_id,
            models.SellerRating.rated_by_id == rated_by_id,
        )
        return self.session.exec(stmt).first()

    def aggregate(self, seller_profile_id: int) -> Tuple[Optional[float], int]:
        """(average, count) over the store's ratings; average is None without ratings."""
        stmt = select(func.avg(models.SellerRating.rating), func.count(models.SellerRating.id)).where(
            models.SellerRating.seller_profile_id == seller_profile_id
        )
        avg, count = self.session.exec(stmt).one()
        return (float(avg) if avg is not None else None), int(count)

    def list_admin(self, page: int, limit: int):
        stmt = (
            select(models.SellerRating)
            .options(selectinload(models.SellerRating.seller_profile), selectinload(models.SellerRating.rated_by))
            .order_by(models.SellerRating.created_at.desc(), models.SellerRating.id.desc())
        )
        return paginate(self.session, stmt, page, limit)

    def count(self) -> int:
        return int(self.session.exec(select(func.count(models.SellerRating.id))).one())


class VerificationTokenRepository(_Repository):
    def create(self, token: models.VerificationToken, commit: bool = True) -> models.VerificationToken:
        return self._save(token, commit)

    def get_by_token(self, token: str) -> Optional[models.VerificationToken]:
        stmt = select(models.VerificationToken).where(models.VerificationToken.token == token)
        return self.session.exec(stmt).first()

    def list_for(self, identifier: str, purpose: Optional[models.TokenPurpose] = None):
        stmt = select(models.VerificationToken).where(models.VerificationToken.identifier == identifier)
        if purpose:
            stmt = stmt.where(models.VerificationToken.purpose == purpose)
        return list(self.session.exec(stmt).all())


class WishlistRepository(_Repository):
    def create(self, item: models.WishlistItem, commit: bool = True) -> models.WishlistItem:
        return self._save(item, commit)

    def get(self, user_id: int, book_id: int) -> Optional[models.WishlistItem]:
        stmt = select(models.WishlistItem).where(
            models.WishlistItem.user_id == user_id,
            models.WishlistItem.book_id == book_id,
        )
        return self.session.exec(stmt).first()

    def list_for_user(self, user_id: int) -> List[models.WishlistItem]:
        stmt = (
            select(models.WishlistItem)
            .options(
                selectinload(models.WishlistItem.book).selectinload(models.Book.category),
                selectinload(models.WishlistItem.book).selectinload(models.Book.seller),
            )
            .where(models.WishlistItem.user_id == user_id)
            .order_by(models.WishlistItem.created_at.desc(), models.WishlistItem.id.desc())
        )
        return list(self.session.exec(stmt).all())
