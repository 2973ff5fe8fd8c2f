"""
Database service layer for the bookstore API.

Every operation runs a single fixed statement with bound parameters and maps
the returned rows onto the records in bookstore.models.
"""

from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import Date, Integer, Numeric, String, bindparam, text
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from bookstore.models import (
    BookCreate, BookRecord, DailyCount, UserCreate, UserPublic, UserRecord,
    normalize_row,
)

logger = structlog.get_logger(__name__)

USER_PUBLIC_COLUMNS = "id, username, email, location, phone, role"

INSERT_USER = text(
    "INSERT INTO bookr (username, email, location, phone, password, role) "
    "VALUES (:username, :email, :location, :phone, :password, 'user') RETURNING *"
)
SELECT_USER_BY_EMAIL = text("SELECT * FROM bookr WHERE email = :email")
SELECT_USERS = text(f"SELECT {USER_PUBLIC_COLUMNS} FROM bookr")
UPDATE_USER_ROLE = text(
    f"UPDATE bookr SET role = :role WHERE id = :user_id RETURNING {USER_PUBLIC_COLUMNS}"
).bindparams(bindparam("user_id", type_=Integer))

INSERT_BOOK = text(
    "INSERT INTO booksinfo (title, genre, price, imagepath, author, publicationdate, "
    "publisher, description, username, email, created_at) "
    "VALUES (:title, :genre, :price, :imagepath, :author, :publicationdate, "
    ":publisher, :description, :username, :email, CURRENT_TIMESTAMP) RETURNING *"
).bindparams(
    bindparam("price", type_=Numeric(10, 2)),
    bindparam("publicationdate", type_=Date),
)
SELECT_BOOKS = text("SELECT * FROM booksinfo")
SELECT_BOOK_BY_ID = text(
    "SELECT * FROM booksinfo WHERE id = :book_id"
).bindparams(bindparam("book_id", type_=Integer))
SELECT_BOOKS_BY_USERNAME = text("SELECT * FROM booksinfo WHERE username = :username")
SEARCH_BOOKS_BY_TITLE = text(
    "SELECT * FROM booksinfo WHERE LOWER(title) LIKE LOWER(:pattern) ESCAPE '\\'"
).bindparams(bindparam("pattern", type_=String))
SELECT_DAILY_COUNTS = text(
    "SELECT DATE(created_at) AS date, COUNT(*) AS count "
    "FROM booksinfo "
    "GROUP BY DATE(created_at) "
    "ORDER BY DATE(created_at)"
)


class DatabaseError(Exception):
    """A statement could not be executed."""


class DatabaseConnectionError(DatabaseError):
    """The database could not be reached."""


class ConstraintViolationError(DatabaseError):
    """A statement violated a table constraint."""


def _translate_error(error: Exception) -> DatabaseError:
    if isinstance(error, IntegrityError):
        return ConstraintViolationError(str(error.orig or error))
    if isinstance(error, (OperationalError, InterfaceError, OSError)):
        return DatabaseConnectionError(str(error))
    return DatabaseError(str(getattr(error, "orig", None) or error))


def like_pattern(term: str) -> str:
    """Substring LIKE pattern with the wildcard characters of the term escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class BookstoreDatabaseService:
    """Database service for API operations."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def _fetch(self, statement, params: Optional[Dict[str, Any]] = None) -> List[dict]:
        """Run a read statement on a pooled connection and return its rows."""
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement, params or {})
                return [normalize_row(row) for row in result.mappings().all()]
        except (SQLAlchemyError, OSError) as e:
            logger.error("Query failed", statement=str(statement), error=str(e))
            raise _translate_error(e) from e

    async def _write(self, statement, params: Dict[str, Any]) -> List[dict]:
        """Run a single write statement and commit it."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(statement, params)
                return [normalize_row(row) for row in result.mappings().all()]
        except (SQLAlchemyError, OSError) as e:
            logger.error("Write failed", statement=str(statement), error=str(e))
            raise _translate_error(e) from e

    # Users

    async def create_user(self, user: UserCreate, password_hash: str) -> UserRecord:
        """
        Insert a new user with the default role.

        Args:
            user: Registration data
            password_hash: Hash of the user's password

        Returns:
            The inserted row
        """
        rows = await self._write(INSERT_USER, {
            "username": user.username,
            "email": user.email,
            "location": user.location,
            "phone": user.phone,
            "password": password_hash,
        })
        logger.info("User registered", user_id=rows[0]["id"])
        return UserRecord(**rows[0])

    async def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        rows = await self._fetch(SELECT_USER_BY_EMAIL, {"email": email})
        if not rows:
            return None
        return UserRecord(**rows[0])

    async def list_users(self) -> List[UserPublic]:
        rows = await self._fetch(SELECT_USERS)
        return [UserPublic(**row) for row in rows]

    async def update_user_role(self, user_id: int, role: str) -> Optional[UserPublic]:
        """
        Change the role of a user.

        Returns:
            The updated user, or None if no user has this id
        """
        rows = await self._write(UPDATE_USER_ROLE, {"role": role, "user_id": user_id})
        if not rows:
            return None
        logger.info("User role updated", user_id=user_id, role=role)
        return UserPublic(**rows[0])

    # Books

    async def create_book(self, book: BookCreate, username: Optional[str], email: Optional[str]) -> BookRecord:
        """
        Insert a book owned by the given identity.

        Args:
            book: Book data from the request
            username: Username taken from the caller's token
            email: E-mail taken from the caller's token

        Returns:
            The inserted row, including its server-assigned created_at
        """
        rows = await self._write(INSERT_BOOK, {
            "title": book.title,
            "genre": book.genre,
            "price": book.price,
            "imagepath": book.image_path,
            "author": book.author,
            "publicationdate": book.publicationdate,
            "publisher": book.publisher,
            "description": book.description,
            "username": username,
            "email": email,
        })
        logger.info("Book created", book_id=rows[0]["id"], username=username)
        return BookRecord(**rows[0])

    async def list_books(self) -> List[BookRecord]:
        rows = await self._fetch(SELECT_BOOKS)
        return [BookRecord(**row) for row in rows]

    async def get_book(self, book_id: int) -> Optional[BookRecord]:
        rows = await self._fetch(SELECT_BOOK_BY_ID, {"book_id": book_id})
        if not rows:
            return None
        return BookRecord(**rows[0])

    async def list_books_by_username(self, username: str) -> List[BookRecord]:
        rows = await self._fetch(SELECT_BOOKS_BY_USERNAME, {"username": username})
        return [BookRecord(**row) for row in rows]

    async def search_books_by_title(self, title: str) -> List[BookRecord]:
        """Case-insensitive substring match on the title."""
        rows = await self._fetch(SEARCH_BOOKS_BY_TITLE, {"pattern": like_pattern(title)})
        return [BookRecord(**row) for row in rows]

    async def daily_book_counts(self) -> List[DailyCount]:
        """Number of books created per calendar day, oldest day first."""
        rows = await self._fetch(SELECT_DAILY_COUNTS)
        return [DailyCount(**row) for row in rows]
