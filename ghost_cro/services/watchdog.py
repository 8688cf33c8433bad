"""
Weekly watchdog scan

Walks every active store, records the scan and flags stores that have not
run an analysis recently. Shared by the cron endpoint and the in-process
scheduler.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ghost_cro.config import get_settings
from ghost_cro.models.store import Store
from ghost_cro.models.test_result import TestResultRecord
from ghost_cro.utils.logger import log

settings = get_settings()


def _latest_result(db: Session, shop: str) -> Optional[TestResultRecord]:
    return (
        db.query(TestResultRecord)
        .filter(TestResultRecord.shop == shop, TestResultRecord.status == "completed")
        .order_by(TestResultRecord.created_at.desc())
        .first()
    )


def run_weekly_scan(db: Session, now: Optional[datetime] = None) -> Dict:
    now = now or datetime.utcnow()
    stale_cutoff = now - timedelta(days=settings.stale_store_days)

    log.info("=== WEEKLY WATCHDOG SCAN START ===")
    stores = db.query(Store).filter(Store.is_active.is_(True)).all()
    log.info(f"Found {len(stores)} active stores to scan")

    stale_shops = []
    for store in stores:
        log.info(f"Running scan for {store.shop} (user: {store.user_id})")

        latest = _latest_result(db, store.shop)
        if latest is not None:
            store.last_score = latest.score

        # No analysis since install counts from the install date
        last_activity = latest.created_at if latest is not None else store.installed_at
        if last_activity is None or last_activity < stale_cutoff:
            stale_shops.append(store.shop)

        store.last_scan_at = now

    db.commit()

    if stale_shops:
        log.warning(f"{len(stale_shops)} stores idle for {settings.stale_store_days}+ days: {', '.join(stale_shops)}")
    log.info("=== WEEKLY WATCHDOG SCAN COMPLETE ===")

    return {
        "success": True,
        "storesScanned": len(stores),
        "staleStores": stale_shops,
        "timestamp": now.isoformat(),
    }
