# authcode/routes/health.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
import datetime
import logging
import sys

import psutil

from authcode.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/health",
    tags=["Health Check"]
)


@router.get("/")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check with database connectivity
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.datetime.now().isoformat(),
        "service": "authcode",
        "version": "1.0.0",
        "python_version": sys.version.split()[0],
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["database"] = {"status": "connected"}
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        health_status["status"] = "unhealthy"
        health_status["database"] = {"status": "disconnected"}

    memory = psutil.virtual_memory()
    health_status["memory"] = {
        "available": f"{memory.available / (1024**3):.2f} GB",
        "percent": memory.percent,
    }

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content=health_status)
