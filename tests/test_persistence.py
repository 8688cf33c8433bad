"""
Stored reports, plan limits and the weekly watchdog scan.

Runs against the throwaway SQLite database set up in conftest.
"""
import asyncio
from datetime import datetime, timedelta, timezone

from ghost_cro.models import Store, Subscription, TestResultRecord
from ghost_cro.scheduler import scheduler, setup_scheduler, weekly_scan_job
from ghost_cro.services.billing import (
    extract_plan_from_name,
    get_subscription_status,
    record_test_run,
)
from ghost_cro.services.test_storage import (
    get_latest_score,
    get_test_result,
    list_test_results,
    save_test_result,
)
from ghost_cro.services.watchdog import run_weekly_scan
from tests.conftest import make_test_result

SHOP = "demo-store.myshopify.com"


class TestReportStorage:

    def test_round_trip_keeps_report(self, db, sample_result):
        save_test_result(db, sample_result, shop=SHOP)

        loaded = get_test_result(db, sample_result.id)

        assert loaded == sample_result
        assert db.get(TestResultRecord, sample_result.id).shop == SHOP

    def test_same_id_replaces(self, db, sample_result):
        save_test_result(db, sample_result, shop=SHOP)
        save_test_result(db, sample_result.model_copy(update={"score": 80}))

        assert db.query(TestResultRecord).count() == 1
        record = db.get(TestResultRecord, sample_result.id)
        assert record.score == 80
        # Re-saving without a shop keeps the original one
        assert record.shop == SHOP

    def test_list_newest_first(self, db):
        older = save_test_result(db, make_test_result(id="test_1_aaaaaa"), shop=SHOP)
        older.created_at = datetime(2024, 1, 1)
        db.commit()
        save_test_result(db, make_test_result(id="test_2_bbbbbb"), shop=SHOP)
        save_test_result(db, make_test_result(id="test_3_cccccc"), shop="other.myshopify.com")

        ids = [r.id for r in list_test_results(db, shop=SHOP)]
        assert ids == ["test_2_bbbbbb", "test_1_aaaaaa"]
        assert len(list_test_results(db)) == 3
        assert len(list_test_results(db, limit=1)) == 1

    def test_missing_report(self, db):
        assert get_test_result(db, "test_0_nothing") is None

    def test_latest_score_for_url(self, db):
        older = save_test_result(db, make_test_result(id="test_1_aaaaaa", score=40))
        older.created_at = datetime(2024, 1, 1)
        db.commit()
        save_test_result(db, make_test_result(id="test_2_bbbbbb", score=55))
        save_test_result(db, make_test_result(id="test_3_cccccc", score=90, status="failed"))

        assert get_latest_score(db, "https://demo-store.myshopify.com/products/tee") == 55
        assert get_latest_score(db, "https://elsewhere.myshopify.com") is None


class TestBilling:

    def test_plan_from_subscription_name(self):
        assert extract_plan_from_name("Ghost CRO Growth Plan") == "growth"
        assert extract_plan_from_name("SCALE") == "scale"
        assert extract_plan_from_name("Starter (annual)") == "starter"
        assert extract_plan_from_name("Enterprise") == "free"
        assert extract_plan_from_name(None) == "free"

    def test_shop_without_subscription(self, db):
        status = get_subscription_status(db, SHOP)

        assert status == {
            "shop": SHOP,
            "plan": "free",
            "planName": "Free",
            "price": 0,
            "status": "none",
            "testsLimit": 1,
            "testsUsed": 0,
            "testsRemaining": 1,
        }

    def test_runs_count_against_limit(self, db):
        db.add(Subscription(shopify_shop=SHOP, plan="growth", status="active", tests_limit=15, tests_used=14))
        db.commit()

        record_test_run(db, SHOP)
        assert get_subscription_status(db, SHOP)["testsRemaining"] == 0

        record_test_run(db, SHOP)
        status = get_subscription_status(db, SHOP)
        assert status["testsUsed"] == 16
        assert status["testsRemaining"] == 0
        assert (status["planName"], status["price"]) == ("Growth", 99)

    def test_run_without_subscription_is_ignored(self, db):
        record_test_run(db, SHOP)
        assert db.query(Subscription).count() == 0


class TestWeeklyScan:

    def test_scan_flags_idle_stores(self, db):
        now = datetime(2024, 6, 1, 0, 0)
        installed = now - timedelta(days=60)

        db.add_all([
            Store(shop="busy.myshopify.com", access_token="a", is_active=True, installed_at=installed),
            Store(shop="idle.myshopify.com", access_token="b", is_active=True, installed_at=installed),
            Store(shop="gone.myshopify.com", access_token=None, is_active=False, installed_at=installed),
            Store(shop="new.myshopify.com", access_token="c", is_active=True, installed_at=now - timedelta(days=3)),
        ])
        db.add(TestResultRecord(
            id="test_5_eeeeee", url="https://busy.myshopify.com", persona_mix="balanced", score=72,
            status="completed", shop="busy.myshopify.com", payload={}, created_at=now - timedelta(days=2),
        ))
        db.commit()

        result = run_weekly_scan(db, now=now)

        assert result["success"] is True
        assert result["storesScanned"] == 3
        assert result["staleStores"] == ["idle.myshopify.com"]
        assert result["timestamp"] == "2024-06-01T00:00:00"

        busy = db.query(Store).filter(Store.shop == "busy.myshopify.com").one()
        gone = db.query(Store).filter(Store.shop == "gone.myshopify.com").one()
        assert busy.last_score == 72
        assert busy.last_scan_at == now
        assert gone.last_scan_at is None

    def test_scan_with_no_stores(self, db):
        result = run_weekly_scan(db)
        assert result["storesScanned"] == 0
        assert result["staleStores"] == []

    def test_scheduled_job_scans_stores(self, db):
        db.add(Store(shop="demo-store.myshopify.com", access_token="a", is_active=True))
        db.commit()

        asyncio.run(weekly_scan_job())

        db.expire_all()
        assert db.query(Store).one().last_scan_at is not None

    def test_job_registered_on_crontab(self):
        setup_scheduler()
        try:
            job = scheduler.get_job("weekly_scan")
            assert job.name == "Weekly Watchdog Scan"
            assert job.max_instances == 1
            # Monday 3 June 2024 -> Sunday 9 June, midnight UTC
            monday = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
            assert job.trigger.get_next_fire_time(None, monday) == datetime(2024, 6, 9, 0, 0, tzinfo=timezone.utc)
        finally:
            scheduler.remove_all_jobs()
