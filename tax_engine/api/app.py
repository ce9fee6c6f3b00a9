"""FastAPI application factory and Basic auth."""

import base64
import binascii
import logging
import secrets
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from config.settings import settings
from tax_engine.api.routes import router
from tax_engine.db.session import close_pool, get_pool

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the rule-store pool for the app's lifetime."""
    logging.basicConfig(level=logging.INFO)
    app.state.pool = await get_pool()
    logger.info("Tax rule store connected")
    try:
        yield
    finally:
        await close_pool()
        logger.info("Tax rule store closed")


def parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    """Split a ``Basic`` Authorization header into (username, password)."""
    if not header:
        return None
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded, validate=True).decode()
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Require HTTP Basic credentials except on the open paths."""

    def __init__(
        self,
        app: ASGIApp,
        username: str,
        password: str,
        open_paths: Iterable[str] = ("/health",),
    ) -> None:
        super().__init__(app)
        self._username = username.encode()
        self._password = password.encode()
        self._open_paths = frozenset(open_paths)

    def is_authorized(self, request: Request) -> bool:
        credentials = parse_basic_auth(request.headers.get("Authorization"))
        if credentials is None:
            return False
        username, password = credentials
        # Both comparisons always run
        user_ok = secrets.compare_digest(username.encode(), self._username)
        password_ok = secrets.compare_digest(password.encode(), self._password)
        return user_ok and password_ok

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        if request.url.path in self._open_paths or self.is_authorized(request):
            return await call_next(request)
        logger.warning("Rejected unauthenticated %s %s", request.method, request.url.path)
        return JSONResponse(
            {"error": "Unauthorized"},
            status_code=401,
            headers={"WWW-Authenticate": 'Basic realm="tax-rules"'},
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title="Payroll Tax Engine", lifespan=lifespan)
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        open_paths=settings.auth_open_paths,
    )
    app.include_router(router)
    return app
