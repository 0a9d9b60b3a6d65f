"""Health check endpoints."""

from __future__ import annotations

import time

from fastapi import APIRouter

from sitecrew import __version__
from sitecrew.api.models import ok

router = APIRouter()

# Track startup time
_startup_time = time.time()


@router.get("/health")
def health_check():
    """Liveness check."""
    return ok({
        "status": "healthy",
        "version": __version__,
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })
