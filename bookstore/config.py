"""
Configuration management using environment variables.
Covers database, token signing, server and logging settings.
"""

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL, make_url


class APIConfig(BaseSettings):
    """
    Configuration class for the bookstore API.
    Uses pydantic BaseSettings for environment variable management.
    """

    # API Settings
    api_title: str = "Bookstore API"
    api_version: str = "1.0.0"
    api_description: str = "User registration, authentication and book listings"

    # Server Settings
    host: str = Field(default="0.0.0.0", description="Interface the server binds to")
    port: int = Field(default=3001, description="Listening port")
    debug: bool = Field(default=False)

    # Database Settings
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_user: str = Field(default="postgres")
    db_password: str = Field(default="")
    db_name: str = Field(default="book")
    database_url: Optional[str] = Field(
        default=None, description="Full SQLAlchemy URL, overrides the db_* settings"
    )
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=5)

    # Security Settings
    token_secret: str = Field(default="change-me-in-production-bookstore-signing-key")
    token_algorithm: str = Field(default="HS256")
    token_ttl_hours: int = Field(default=24)
    bcrypt_rounds: int = Field(default=10)
    require_admin_for_role_update: bool = Field(default=False)

    # Response Settings
    legacy_status_codes: bool = Field(
        default=True, description="Answer read endpoints with 201 instead of 200"
    )
    expose_error_details: bool = Field(default=True)

    # CORS Settings
    cors_origins: list = ["*"]
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @validator('port', 'db_port')
    def validate_port(cls, v):
        """Ensure ports are in the valid TCP range."""
        if v < 1 or v > 65535:
            raise ValueError('port must be between 1 and 65535')
        return v

    @validator('bcrypt_rounds')
    def validate_bcrypt_rounds(cls, v):
        """bcrypt only accepts cost factors 4..31."""
        if v < 4 or v > 31:
            raise ValueError('bcrypt_rounds must be between 4 and 31')
        return v

    @validator('token_ttl_hours')
    def validate_token_ttl(cls, v):
        if v < 1:
            raise ValueError('token_ttl_hours must be at least 1')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"  # Ignore extra fields from .env
    }

    def get_database_url(self) -> URL:
        """URL of the application database."""
        if self.database_url:
            return make_url(self.database_url)
        return URL.create(
            "postgresql+asyncpg",
            username=self.db_user,
            password=self.db_password or None,
            host=self.db_host,
            port=self.db_port,
            database=self.db_name,
        )

    def get_maintenance_url(self) -> URL:
        """URL of the server's default database, used to create the application database."""
        return self.get_database_url().set(database="postgres")

    def is_server_database(self) -> bool:
        """Whether the database lives on a server that must be asked to create it."""
        return self.get_database_url().get_backend_name() == "postgresql"

    def get_database_name(self) -> Optional[str]:
        return self.get_database_url().database

    def get_engine_options(self) -> Dict[str, Any]:
        """Keyword arguments for create_async_engine."""
        options: Dict[str, Any] = {"echo": self.debug}
        if self.is_server_database():
            options["pool_size"] = self.db_pool_size
            options["max_overflow"] = self.db_max_overflow
        return options

    def get_token_ttl(self) -> timedelta:
        return timedelta(hours=self.token_ttl_hours)

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_read_status_code(self) -> int:
        """Status code answered by successful read endpoints."""
        return 201 if self.legacy_status_codes else 200
