"""
FastAPI main application for the Bookstore API.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import create_async_engine
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookstore.auth import (
    CredentialService, get_credential_service, require_admin, require_token, security,
)
from bookstore.config import APIConfig
from bookstore.database import BookstoreDatabaseService, DatabaseError
from bookstore.dependencies import (
    AppContext, build_credential_service, get_app_config, get_db_service,
)
from bookstore.models import (
    BookCreate, BookRecord, DailyCount, ErrorResponse, LoginRequest,
    RoleUpdate, TokenClaims, TokenResponse, UserCreate, UserPublic, UserRecord,
)
from bookstore.schema import SchemaInitializer
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

router = APIRouter()


def error_detail(error: str, details: Optional[str] = None, message: Optional[str] = None) -> dict:
    return ErrorResponse(error=error, details=details, message=message).model_dump(exclude_none=True)


def server_error(error: str, exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_detail(error, details=str(exc)),
    )


def not_found(error: str, message: Optional[str] = None) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_detail(error, message=message),
    )


def read_response(content, config: APIConfig) -> JSONResponse:
    """Success response of a read endpoint."""
    return JSONResponse(
        status_code=config.get_read_status_code(),
        content=jsonable_encoder(content),
    )


async def authorize_role_update(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    credential_service: CredentialService = Depends(get_credential_service),
) -> Optional[TokenClaims]:
    """Admin check for role changes, active only when enabled in the configuration."""
    if not request.app.state.config.require_admin_for_role_update:
        return None
    claims = await require_token(credentials, credential_service)
    return await require_admin(claims)


# Users endpoints
@router.post(
    "/register",
    response_model=UserRecord,
    status_code=status.HTTP_201_CREATED,
    tags=["Users"],
)
async def register_user(
    user: UserCreate,
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    credential_service: CredentialService = Depends(get_credential_service),
):
    """
    Register a new user with the default role.

    The password is stored as a bcrypt hash.
    """
    try:
        password_hash = await run_in_threadpool(credential_service.hash_password, user.password)
        created = await db_service.create_user(user, password_hash)
    except DatabaseError as e:
        logger.error("Failed to register user", error=str(e))
        raise server_error("Database error", e)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=jsonable_encoder(created),
    )


@router.post("/", response_model=TokenResponse, tags=["Users"])
async def login(
    credentials: LoginRequest,
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    credential_service: CredentialService = Depends(get_credential_service),
):
    """
    Exchange e-mail and password for a bearer token.

    Unknown e-mail and wrong password get the same 401 answer.
    """
    try:
        user = await db_service.get_user_by_email(credentials.email)
    except DatabaseError as e:
        logger.error("Failed to look up user", error=str(e))
        raise server_error("Server error", e)

    if user is None:
        await run_in_threadpool(credential_service.dummy_verify)
        password_ok = False
    else:
        password_ok = await run_in_threadpool(
            credential_service.verify_password, credentials.password, user.password
        )

    if not password_ok:
        logger.info("Rejected login attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_detail("Invalid email or password"),
        )

    token = credential_service.issue_token({
        "username": user.username,
        "email": user.email,
        "role": user.role,
    })
    logger.info("User logged in", user_id=user.id, role=user.role)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=TokenResponse(token=token, role=user.role).model_dump(),
    )


@router.get("/users", response_model=List[UserPublic], tags=["Users"])
async def get_users(
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
):
    """Get all users without their password hashes."""
    try:
        users = await db_service.list_users()
    except DatabaseError as e:
        logger.error("Failed to fetch users", error=str(e))
        raise server_error("Failed to fetch users", e)
    return read_response(users, config)


@router.put("/users/{user_id}/role", response_model=UserPublic, tags=["Users"])
async def update_user_role(
    user_id: int,
    update: RoleUpdate,
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
    admin: Optional[TokenClaims] = Depends(authorize_role_update),
):
    """
    Change the role of a user.

    - **user_id**: User identifier
    """
    try:
        user = await db_service.update_user_role(user_id, update.role)
    except DatabaseError as e:
        logger.error("Failed to update user role", user_id=user_id, error=str(e))
        raise server_error("Failed to update user role", e)

    if user is None:
        raise not_found("User not found")
    if admin is not None:
        logger.info("Role changed by admin", admin=admin.username, user_id=user_id)
    return read_response(user, config)


# Books endpoints
@router.post(
    "/books",
    response_model=BookRecord,
    status_code=status.HTTP_201_CREATED,
    tags=["Books"],
)
async def create_book(
    book: BookCreate,
    claims: TokenClaims = Depends(require_token),
    db_service: BookstoreDatabaseService = Depends(get_db_service),
):
    """
    Add a book.

    The owner's username and e-mail are taken from the bearer token, never
    from the request body.
    """
    try:
        created = await db_service.create_book(book, claims.username, claims.email)
    except DatabaseError as e:
        logger.error("Failed to create book", error=str(e))
        raise server_error("Database error", e)

    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=jsonable_encoder(created),
    )


@router.get("/books", response_model=List[BookRecord], tags=["Books"])
async def get_books(
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
):
    """Get all books."""
    try:
        books = await db_service.list_books()
    except DatabaseError as e:
        logger.error("Failed to fetch books", error=str(e))
        raise server_error("Failed to fetch books", e)
    return read_response(books, config)


@router.get("/books/daily", response_model=List[DailyCount], tags=["Statistics"])
async def get_daily_book_counts(
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
):
    """Number of books created per day, oldest day first."""
    try:
        counts = await db_service.daily_book_counts()
    except DatabaseError as e:
        logger.error("Error fetching daily book counts", error=str(e))
        raise server_error("Failed to fetch daily book counts", e)
    return read_response(counts, config)


@router.get("/books/{book_id}", response_model=BookRecord, tags=["Books"])
async def get_book(
    book_id: int,
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
):
    """
    Get a single book by ID.

    - **book_id**: Book identifier
    """
    try:
        book = await db_service.get_book(book_id)
    except DatabaseError as e:
        logger.error("Failed to get book", book_id=book_id, error=str(e))
        raise server_error("Server error", e)

    if book is None:
        raise not_found("Book not found")
    return read_response(book, config)


@router.get("/booksusername", response_model=List[BookRecord], tags=["Books"])
async def get_books_by_username(
    username: Optional[str] = None,
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
):
    """
    Get the books added by one user.

    - **username**: Username copied onto the books at creation time
    """
    if not username:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("Username is required"),
        )

    try:
        books = await db_service.list_books_by_username(username)
    except DatabaseError as e:
        logger.error("Failed to fetch books by username", username=username, error=str(e))
        raise server_error("Failed to fetch books", e)

    if not books:
        raise not_found("Not found", message="No books found for this user")
    return read_response(books, config)


@router.get("/search", response_model=List[BookRecord], tags=["Books"])
async def search_books(
    title: Optional[str] = None,
    db_service: BookstoreDatabaseService = Depends(get_db_service),
    config: APIConfig = Depends(get_app_config),
):
    """
    Search books by title.

    - **title**: Case-insensitive substring of the title
    """
    if title is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("Title is required"),
        )

    try:
        books = await db_service.search_books_by_title(title)
    except DatabaseError as e:
        logger.error("Failed to search books", title=title, error=str(e))
        raise server_error("Failed to search books", e)

    if not books:
        raise not_found("Not found", message="No books found")
    return read_response(books, config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    config: APIConfig = app.state.config
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug,
    )

    # Startup
    logger.info("Starting Bookstore API")
    engine = create_async_engine(config.get_database_url(), **config.get_engine_options())
    try:
        await SchemaInitializer(config).initialize(engine)
    except Exception as e:
        logger.error("Failed to initialize database schema", error=str(e))
        await engine.dispose()
        raise

    app.state.context = AppContext(
        config=config,
        engine=engine,
        credentials=build_credential_service(config),
        db_service=BookstoreDatabaseService(engine),
    )
    logger.info("Database connection established")

    yield

    # Shutdown
    logger.info("Shutting down Bookstore API")
    await engine.dispose()


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    if isinstance(exc.detail, dict):
        body = ErrorResponse(**exc.detail)
    else:
        body = ErrorResponse(error=str(exc.detail))
    if not request.app.state.config.expose_error_details:
        body.details = None
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Answer malformed requests with 400."""
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.info("Rejected invalid request", path=request.url.path, details=details)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_detail("Invalid request", details=details),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    details = str(exc) if request.app.state.config.expose_error_details else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_detail("Internal server error", details=details),
    )


def create_app(config: Optional[APIConfig] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings to run with, read from the environment when omitted

    Returns:
        FastAPI application; database and schema are set up by its lifespan
    """
    config = config or APIConfig()

    app = FastAPI(
        title=config.api_title,
        description=config.api_description,
        version=config.api_version,
        lifespan=lifespan,
    )
    app.state.config = config

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    # Exception handlers
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(router)
    return app


app = create_app()
