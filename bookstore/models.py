"""
API models and schemas for the bookstore service.

Rows coming back from the database are converted into these records at the
gateway boundary, so every response shape is declared here.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, validator


class UserRole(str, Enum):
    """Known role values."""
    USER = "user"
    ADMIN = "admin"


def normalize_row(row: Mapping[str, Any]) -> dict:
    """Lower-case column keys; PostgreSQL folds unquoted identifiers, SQLite keeps them."""
    return {key.lower(): value for key, value in row.items()}


# Users

class UserCreate(BaseModel):
    """Registration payload."""
    username: Optional[str] = Field(None, max_length=100, description="Display name")
    email: str = Field(..., min_length=1, max_length=100, description="Login e-mail")
    location: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=15)
    password: str = Field(..., min_length=1, description="Plaintext password, hashed before storage")


class LoginRequest(BaseModel):
    """Login payload."""
    email: str = Field(..., description="Login e-mail")
    password: str = Field(..., description="Plaintext password")


class TokenResponse(BaseModel):
    """Successful login response."""
    token: str = Field(..., description="Signed bearer token")
    role: str = Field(..., description="Role embedded in the token")


class UserPublic(BaseModel):
    """User as exposed by read endpoints; never carries the password hash."""
    id: int
    username: Optional[str] = None
    email: Optional[str] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    role: str = UserRole.USER.value


class UserRecord(UserPublic):
    """Full user row, including the stored password hash."""
    password: Optional[str] = None


class RoleUpdate(BaseModel):
    """Role change payload."""
    role: str = Field(..., min_length=1, max_length=20, description="New role")


# Books

class BookCreate(BaseModel):
    """
    Book creation payload.

    username and email are not accepted here: they always come from the
    bearer token of the caller.
    """
    title: Optional[str] = Field(None, max_length=255)
    genre: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = Field(None, max_digits=10, decimal_places=2)
    image_path: Optional[str] = Field(None, alias="imagePath", max_length=255)
    author: Optional[str] = Field(None, max_length=255)
    publicationdate: Optional[date] = None
    publisher: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)

    model_config = {
        "populate_by_name": True,
    }

    @validator('price')
    def validate_price(cls, v):
        """Ensure price is not negative."""
        if v is not None and v < 0:
            raise ValueError('Price cannot be negative')
        return v


class BookRecord(BaseModel):
    """Book row as stored and returned."""
    id: int
    title: Optional[str] = None
    genre: Optional[str] = None
    price: Optional[Decimal] = None
    imagepath: Optional[str] = None
    author: Optional[str] = None
    publicationdate: Optional[date] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime

    @validator('price', pre=True)
    def coerce_price(cls, v):
        """SQLite hands NUMERIC columns back as float; restore the two decimals."""
        if isinstance(v, float):
            return Decimal(str(v)).quantize(Decimal("0.01"))
        return v


class DailyCount(BaseModel):
    """Number of books created on one calendar day."""
    date: date
    count: int


# Auth

class TokenClaims(BaseModel):
    """Identity carried by a bearer token."""
    username: Optional[str] = None
    email: Optional[str] = None
    role: str = UserRole.USER.value

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    details: Optional[str] = Field(None, description="Underlying error text")
    message: Optional[str] = Field(None, description="Human-readable explanation")
