import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from dotenv import load_dotenv

from core.config import settings
from core.db import Database
from core.log import configure_logging
from routes.auth import router as auth_router
from routes.categories import router as categories_router
from routes.customers import router as customers_router
from routes.orders import router as orders_router
from routes.products import router as products_router

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(database: Database | None = None) -> FastAPI:
    """Build the API around a storage handle; one is created from settings when none is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = database is None
        db = database or Database(settings.DATABASE_URL, echo=settings.SQLALCHEMY_ECHO)
        # Ensure tables exist (for dev/test; in prod use Alembic)
        db.create_all()
        app.state.database = db
        logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
        try:
            yield
        finally:
            if owned:
                db.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add OpenAPI security schemes for Bearer token authentication on docs/redoc
    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "BearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi

    app.include_router(auth_router)
    app.include_router(categories_router)
    app.include_router(products_router)
    app.include_router(customers_router)
    app.include_router(orders_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
        }

    @app.get("/celery-health")
    async def celery_health_check():
        """Check Celery worker status"""
        from core.celery import celery_app

        try:
            stats = celery_app.control.inspect(timeout=1.0).stats()
        except Exception as e:
            logger.warning("Celery inspect failed: %s", e)
            return {"status": "unhealthy", "error": str(e)}
        if stats:
            return {"status": "healthy", "workers": len(stats)}
        return {"status": "no_workers", "message": "No Celery workers running"}

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.DEBUG,
    )
