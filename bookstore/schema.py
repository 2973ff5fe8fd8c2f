"""
Table definitions and startup schema checks.

The service creates its own database and tables on startup when they are
missing. Every step is a no-op when the schema already exists.
"""

from typing import List

import structlog
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    func,
    inspect,
    text,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from bookstore.config import APIConfig

logger = structlog.get_logger(__name__)

USERS_TABLE = "bookr"
BOOKS_TABLE = "booksinfo"

metadata = MetaData()

users_table = Table(
    USERS_TABLE,
    metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(100)),
    Column("email", String(100)),
    Column("location", String(100)),
    Column("phone", String(15)),
    Column("password", String(255)),
    Column("role", String(20), server_default=text("'user'")),
)

books_table = Table(
    BOOKS_TABLE,
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(255)),
    Column("genre", String(100)),
    Column("price", Numeric(10, 2)),
    Column("imagepath", String(255)),
    Column("author", String(255)),
    Column("publicationdate", Date),
    Column("publisher", String(255)),
    Column("description", String(10000)),
    Column("username", String(100)),
    Column("email", String(100)),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)

DATABASE_EXISTS = text("SELECT 1 FROM pg_database WHERE datname = :name")


class SchemaInitializer:
    """
    Ensures the target database and both tables exist.
    Failures are logged and re-raised so startup aborts.
    """

    def __init__(self, config: APIConfig):
        self.config = config
        self.logger = logger.bind(component="schema_initializer")

    async def ensure_database(self) -> bool:
        """
        Create the application database if the server does not have it.

        Returns:
            True if the database was created
        """
        if not self.config.is_server_database():
            self.logger.debug("Database is created on first connect, skipping check")
            return False

        name = self.config.get_database_name()
        engine = create_async_engine(
            self.config.get_maintenance_url(), isolation_level="AUTOCOMMIT"
        )
        try:
            async with engine.connect() as conn:
                result = await conn.execute(DATABASE_EXISTS, {"name": name})
                if result.first() is not None:
                    self.logger.info("Database already exists", database=name)
                    return False

                quoted = engine.dialect.identifier_preparer.quote(name)
                await conn.execute(text(f"CREATE DATABASE {quoted}"))
                self.logger.info("Database created", database=name)
                return True
        except Exception as e:
            self.logger.error("Error checking/creating database", database=name, error=str(e))
            raise
        finally:
            await engine.dispose()

    async def ensure_tables(self, engine: AsyncEngine) -> List[str]:
        """
        Create whichever of the two tables is missing.

        Returns:
            Names of the tables that were created
        """
        created = []
        for table in (users_table, books_table):
            try:
                async with engine.begin() as conn:
                    exists = await conn.run_sync(
                        lambda sync_conn: inspect(sync_conn).has_table(table.name)
                    )
                    if exists:
                        self.logger.info("Table already exists", table=table.name)
                        continue
                    await conn.run_sync(table.create)
                    created.append(table.name)
                    self.logger.info("Table created", table=table.name)
            except Exception as e:
                self.logger.error("Error checking/creating table", table=table.name, error=str(e))
                raise
        return created

    async def initialize(self, engine: AsyncEngine) -> None:
        """Run the database check, then the table checks."""
        await self.ensure_database()
        await self.ensure_tables(engine)
        self.logger.info("Schema ready")
