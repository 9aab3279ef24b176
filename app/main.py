from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.database.database import Database

# Import middleware
from app.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.auth.router import auth_router
from app.modules.users.router import users_router
from app.modules.clients.router import clients_router
from app.modules.invoices.router import invoices_router
from app.modules.invoices.rendering import InvoiceRenderer
from app.modules.auth.service import AuthService

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(database: Database = None, renderer=None) -> FastAPI:
    """
    Build the application.

    ``database`` and ``renderer`` can be injected (tests); otherwise they are
    created from settings when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Fromagerie invoicing API starting up...")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Debug mode: {settings.DEBUG}")

        db_handle = database or Database.from_settings(settings)
        app.state.database = db_handle
        app.state.renderer = renderer or InvoiceRenderer()

        # Create database tables (development and tests; production uses managed DDL)
        if settings.DB_CREATE_TABLES:
            db_handle.create_all()

        if settings.DEMO_USER_ENABLED:
            session = db_handle.session()
            try:
                AuthService(session).ensure_demo_user()
            finally:
                session.close()

        yield

        logger.info("Fromagerie invoicing API shutting down...")
        db_handle.dispose()

    app = FastAPI(
        title="Fromagerie Alioui Invoicing API",
        description="Invoicing backend: users, clients, invoices and PDF invoices",
        version="1.0.0",
        docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters!)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(clients_router, prefix="/clients", tags=["Clients"])
    app.include_router(invoices_router, prefix="/invoices", tags=["Invoices"])

    @app.get("/")
    def read_root():
        return {
            "message": "Fromagerie Alioui invoicing API is running",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT
        }

    @app.get("/health")
    def health_check():
        database_ok = app.state.database.ping()
        return {
            "status": "healthy" if database_ok else "degraded",
            "database": "connected" if database_ok else "disconnected",
            "environment": settings.ENVIRONMENT,
        }

    return app


app = create_app()
