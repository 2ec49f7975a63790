"""
Health Check Endpoints

- /health/live - Liveness check (is process running)
- /health/ready - Readiness check (database reachable)
- /health/detailed - Database, outbox backlog and daily sweep scheduler
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import text, func
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone
import time

from ..database import get_db
from ..models.event_outbox import EventOutbox, OutboxStatus
from ..services.reservation_scheduler import get_scheduler_status

router = APIRouter(prefix="/health", tags=["Health"])


def get_db_health(db: Session) -> dict:
    """Check database connectivity and latency"""
    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        return {
            "status": "up",
            "latency_ms": round(latency_ms, 2),
            "type": db.bind.dialect.name
        }
    except SQLAlchemyError as e:
        return {
            "status": "down",
            "error": str(e)[:100]
        }


def get_outbox_health(db: Session) -> dict:
    """Count undelivered and permanently failed change events"""
    rows = db.query(EventOutbox.status, func.count(EventOutbox.id)).group_by(EventOutbox.status).all()
    counts = {row[0]: row[1] for row in rows}
    backlog = sum(
        counts.get(s.value, 0)
        for s in (OutboxStatus.PENDING, OutboxStatus.RETRYING, OutboxStatus.PROCESSING)
    )
    failed = counts.get(OutboxStatus.FAILED.value, 0)
    return {
        "status": "degraded" if failed else "up",
        "backlog": backlog,
        "failed": failed
    }


@router.get("/live")
async def liveness_check():
    """
    Liveness probe - is the process running?
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness probe - checks database connectivity.
    """
    db_health = get_db_health(db)

    if db_health["status"] == "up":
        return {
            "status": "ready",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "status": "not_ready",
            "reason": "database_unavailable",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


@router.get("/detailed")
async def detailed_health(db: Session = Depends(get_db)):
    db_health = get_db_health(db)
    components = {
        "database": db_health,
        "outbox": get_outbox_health(db) if db_health["status"] == "up" else {"status": "unknown"},
        "scheduler": get_scheduler_status(),
    }
    overall = "healthy" if db_health["status"] == "up" else "unhealthy"
    return {
        "status": overall,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": components
    }
