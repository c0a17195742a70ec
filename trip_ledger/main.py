import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from trip_ledger.api.errors import ledger_error_handler
from trip_ledger.api.router import api_router
from trip_ledger.core.config import get_settings
from trip_ledger.core.db import init_database, test_database_connection
from trip_ledger.core.errors import LedgerError

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

db_initialized = False
db_error: str | None = None


@asynccontextmanager
async def lifespan(_: FastAPI):
    print("[LIFESPAN] Starting application initialization...")

    async def initialize_database():
        """Initialize database in background - non-blocking for health checks."""
        global db_initialized, db_error
        try:
            print("[LIFESPAN] Testing database connection...")
            db_connected = await test_database_connection()
            if not db_connected:
                db_error = "Database connection failed"
                print(f"[LIFESPAN] ERROR: {db_error}")
                return
            print("[LIFESPAN] Database connection successful")

            print("[LIFESPAN] Initializing database tables...")
            await asyncio.wait_for(init_database(), timeout=30.0)
            db_initialized = True
            print("[LIFESPAN] Database initialization complete")
        except asyncio.TimeoutError:
            db_error = "Database initialization timed out after 30s"
            print(f"[LIFESPAN] ERROR: {db_error}")
        except Exception as e:
            db_error = str(e)
            print(f"[LIFESPAN] ERROR initializing database: {e}")

    init_task = asyncio.create_task(initialize_database())
    print("[LIFESPAN] Application startup complete - ready to accept requests")

    yield

    print("[LIFESPAN] Shutting down...")
    if not init_task.done():
        init_task.cancel()
    print("[LIFESPAN] Shutdown complete")


app = FastAPI(
    title=settings.project_name,
    debug=settings.debug,
    lifespan=lifespan,
)

print(f"[CORS] Configured origins: {settings.backend_cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Actor-Id", "X-Organization-Id"],
    expose_headers=["Retry-After"],
)

app.add_exception_handler(LedgerError, ledger_error_handler)
app.include_router(api_router, prefix="/api")


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    return {"status": "ok", "environment": settings.environment}


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint - responds immediately, reports database status."""
    return {
        "status": "ok",
        "service": settings.project_name,
        "database_ready": db_initialized,
        "database_error": db_error,
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict:
    """Readiness check - only returns ok when database is ready."""
    if not db_initialized:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "database_ready": False, "error": db_error},
        )
    return {"status": "ready", "database_ready": True}
