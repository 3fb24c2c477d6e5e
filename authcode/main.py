from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from authcode.config import check_secret_key, settings
from authcode.database import SessionLocal, init_db
from authcode.routes import flow_router, signup_router, health_router
from authcode.services.errors import StoreUnavailableError
from authcode.services.flow_service import purge_stale_flows
from authcode.utils.clock import utcnow

# Enable logging
logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)
logger = logging.getLogger(__name__)


def purge_on_startup():
    db = SessionLocal()
    try:
        purge_stale_flows(db, utcnow())
    except StoreUnavailableError:
        logger.warning("⚠️ Stale flow cleanup skipped; it will run on the next start")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 authcode backend starting up...")
    check_secret_key(settings)
    init_db()
    purge_on_startup()
    logger.info(f"🌐 CORS enabled for origins: {settings.cors_origins}")
    logger.info("✅ Server is ready to handle requests")
    yield
    logger.info("🛑 authcode backend shutting down...")


# Init app
app = FastAPI(title="authcode", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
    max_age=600
)

routers = [
    flow_router,
    signup_router,
    health_router,
]

for router in routers:
    app.include_router(router)
    logger.info(f"Included router: {router.prefix}")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "status": "ok",
        "message": "authcode verification API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": [
            "/auth/flows/* - Password reset and signup confirmation flows",
            "/auth/signup - Account registration",
            "/api/health - System health check"
        ]
    }


# Global exception handler
@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": {"message": "Something went wrong. Please try again."}},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "authcode.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level="info"
    )
