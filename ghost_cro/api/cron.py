"""
Cron endpoints
Called by an external scheduler with the shared CRON_SECRET
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ghost_cro.config import get_settings
from ghost_cro.models.base import get_db
from ghost_cro.services.watchdog import run_weekly_scan
from ghost_cro.utils.logger import log

settings = get_settings()

router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Accepts "Bearer <secret>" or the bare secret"""
    if not settings.cron_secret:
        log.error("CRON_SECRET environment variable is not set")
        raise HTTPException(status_code=500, detail="Cron secret not configured")

    provided = (authorization or "").replace("Bearer ", "", 1).strip()
    if not authorization or provided != settings.cron_secret:
        log.error("Invalid cron secret provided")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/weekly-scan", dependencies=[Depends(verify_cron_secret)])
async def weekly_scan(db: Session = Depends(get_db)):
    """Weekly watchdog scan over all active stores"""
    try:
        return run_weekly_scan(db)
    except Exception as e:
        log.error(f"Weekly scan cron job error: {str(e)}")
        raise HTTPException(status_code=500, detail={"error": "Cron job failed", "message": str(e)})
