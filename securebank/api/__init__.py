"""
SecureBank API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import router as auth_router
from .accounts import router as accounts_router
from .dependencies import BankingSystem
from .. import __version__
from ..config import SecureBankConfig, get_config
from ..exceptions import BadRequestError, BankingError
from ..lifecycle import StorageHandle
from ..logging_config import get_logger, setup_logging
from ..storage import StorageInterface


logger = get_logger("securebank.api")


def describe_validation_errors(errors) -> str:
    """Render the first pydantic error as 'field.path: message'"""
    if not errors:
        return "Invalid request"
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(config: Optional[SecureBankConfig] = None,
               storage: Optional[StorageInterface] = None,
               handle_signals: bool = False) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The store is acquired once at startup and released at shutdown. Passing
    ``storage`` hands an already-open store to the application instead of
    opening ``config.database_url``.

    Under uvicorn leave ``handle_signals`` off: uvicorn traps SIGINT and
    SIGTERM and runs the lifespan shutdown, which releases the store, only
    after in-flight requests finish. Set it when the host does not handle
    those signals itself.
    """
    config = config or get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    handle = StorageHandle(config.database_url, storage=storage)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.banking_system = BankingSystem(handle.acquire(), config)
        if handle_signals:
            handle.install_signal_handlers()
        logger.info("SecureBank API started")
        try:
            yield
        finally:
            handle.release()
            logger.info("SecureBank API stopped")

    app = FastAPI(
        title="SecureBank API",
        description="Demo bank: accounts, deposits, transaction history and sessions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.storage_handle = handle
    app.state.config = config

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=BadRequestError.status_code,
            content={"detail": describe_validation_errors(exc.errors()), "code": BadRequestError.code}
        )

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy" if handle.is_open else "stopped",
            "service": "securebank_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "SecureBank API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "accounts": "/accounts",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: Optional[bool] = None):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "securebank.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=config.api_reload if reload is None else reload,
        log_level=config.log_level.lower()
    )
