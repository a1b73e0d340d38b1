"""
Retail Banking API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .deps import BankingSystem
from .auth import router as auth_router
from .accounts import router as accounts_router
from .beneficiaries import router as beneficiaries_router
from .transactions import router as transactions_router
from .users import router as users_router
from ..config import BankConfig, get_config
from ..errors import BankingError
from ..fixtures import DEMO_FIXTURES, load_fixtures, load_fixture_file
from ..logging_config import setup_logging, get_logger, log_action
from .. import __version__


logger = get_logger("retail_banking.api")


def build_system(config: BankConfig) -> BankingSystem:
    """Create the service container and seed it when configured to"""
    system = BankingSystem(use_sqlite=True, config=config)
    if config.seed_demo_data:
        load_fixtures(system, DEMO_FIXTURES)
    if config.fixture_file:
        load_fixture_file(system, config.fixture_file)
    return system


def create_app(system: Optional[BankingSystem] = None, config: Optional[BankConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Pre-built services (tests pass an in-memory one); when omitted
            the services are built from configuration on start-up
        config: Configuration, defaults to the global one
    """
    config = config or (system.config if system else get_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.banking_system is None
        if owned:
            setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
            app.state.banking_system = build_system(config)
            log_action(
                logger, "info", "Banking services started",
                action="startup", extra={"database_path": config.database_path}
            )
        yield
        if owned:
            app.state.banking_system.close()
            app.state.banking_system = None

    app = FastAPI(
        title="Retail Banking API",
        description="Accounts, beneficiaries and money movement for retail customers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.banking_system = system

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        fields = [".".join(str(part) for part in error["loc"] if part != "body") for error in errors]
        return JSONResponse(
            status_code=400,
            content={"message": f"Invalid request: {', '.join(fields) or 'body'}"}
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    # Include routers
    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(accounts_router, prefix="/api", tags=["Accounts"])
    app.include_router(beneficiaries_router, prefix="/api/customer/beneficiaries", tags=["Beneficiaries"])
    app.include_router(transactions_router, prefix="/api", tags=["Transactions"])
    app.include_router(users_router, prefix="/api", tags=["Users"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "retail_banking_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Retail Banking API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/api/auth",
                "customer": "/api/customer",
                "admin": "/api/admin",
                "profile": "/api/user/profile"
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False) -> None:
    """Run the API with uvicorn"""
    config = get_config()
    uvicorn.run(
        "retail_banking.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=reload,
        log_level=config.log_level.lower()
    )


# Create the app instance for uvicorn
app = create_app()
