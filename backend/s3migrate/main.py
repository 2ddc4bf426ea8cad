"""FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from s3migrate.config import settings
from s3migrate.database import engine, get_db
from s3migrate.logging_setup import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup; stop any running migration on shutdown.

    The catalog schema belongs to Nextcloud, so no tables are created here.
    """
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    yield

    # Cleanup: a running migration commits its finished block before exit
    from s3migrate.services.migration_runner import get_migration_service
    await get_migration_service().shutdown()
    await engine.dispose()


app = FastAPI(
    title="S3 Migration API",
    version="1.0.0",
    description="Moves a Nextcloud data directory from local storage to S3 object storage.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from s3migrate.routes.migration import router as migration_router
app.include_router(migration_router)
