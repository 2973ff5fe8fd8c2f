"""
Dependency injection for FastAPI routes.

The application context is built once during startup and stored on
app.state; routes receive its parts through the functions below, which
tests replace with app.dependency_overrides.
"""

from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from bookstore.auth import CredentialService
from bookstore.config import APIConfig
from bookstore.database import BookstoreDatabaseService


@dataclass
class AppContext:
    """Process-wide collaborators shared by every request."""

    config: APIConfig
    engine: AsyncEngine
    credentials: CredentialService
    db_service: BookstoreDatabaseService


def build_credential_service(config: APIConfig) -> CredentialService:
    return CredentialService(
        secret=config.token_secret,
        algorithm=config.token_algorithm,
        token_ttl=config.get_token_ttl(),
        bcrypt_rounds=config.bcrypt_rounds,
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_db_service(request: Request) -> BookstoreDatabaseService:
    """Database service of the running application."""
    return get_context(request).db_service


def get_app_config(request: Request) -> APIConfig:
    """Configuration the application was created with."""
    return request.app.state.config
