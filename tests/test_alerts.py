"""
Tests - alert sections and the summary bundle
"""
from decimal import Decimal

import pytest
from sqlalchemy import text

from pharmacy_stock.services import alerts, ledger
from pharmacy_stock.services.batches import set_block


@pytest.fixture
def store(make_product, make_batch):
    """2 low-stock products, 1 expiring batch, 3 expired batches, no movements."""
    low1 = make_product("Amoxicilina 250mg")
    make_batch(low1, "A1", days=400, qty=3)
    low2 = make_product("Ibuprofeno 400mg")

    busy = make_product("Loratadina 10mg")
    make_batch(busy, "C-SOON", days=15, qty=20, purchase_price="0.75")
    make_batch(busy, "C-EXP1", days=-1, qty=5, purchase_price="1.10")
    make_batch(busy, "C-EXP2", days=-10, qty=5, purchase_price="1.10")
    make_batch(busy, "C-EXP3", days=-40, qty=5, purchase_price="1.10")
    return low1, low2, busy


class TestSections:
    def test_low_stock(self, db, store):
        low1, low2, _ = store
        res = alerts.low_stock_alerts(db)
        assert res.count == 2
        assert res.threshold == 10
        assert [p.id for p in res.products] == [low2.id, low1.id]
        assert res.products[1].current_stock == 3

    def test_low_stock_ignores_inactive(self, db, make_product):
        make_product("Retired", is_active=False)
        assert alerts.low_stock_alerts(db).count == 0

    def test_expiring(self, db, store):
        res = alerts.expiring_alerts(db)
        assert res.count == 1
        row = res.batches[0]
        assert row.batch_number == "C-SOON"
        assert row.days_until_expiry == 15
        assert row.estimated_loss == Decimal("15.00")
        assert row.message == "Expires in 15 days"

    def test_expiring_window(self, db, store):
        assert alerts.expiring_alerts(db, days=10).count == 0

    def test_expiring_skips_blocked(self, db, store):
        soon = alerts.expiring_alerts(db).batches[0]
        set_block(db, soon.id, True)
        assert alerts.expiring_alerts(db).count == 0

    def test_expired(self, db, store):
        res = alerts.expired_alerts(db)
        assert res.count == 3
        assert [b.batch_number for b in res.batches] == ["C-EXP1", "C-EXP2", "C-EXP3"]
        assert res.batches[0].days_expired == 1
        assert res.batches[0].message == "Expired 1 day ago"
        assert res.total_loss == Decimal("16.50")

    def test_pending_approvals(self, db, make_product, make_batch):
        p = make_product()
        b = make_batch(p, qty=50)
        first = ledger.record_movement(db, product_id=p.id, batch_id=b.id,
                                       movement_type="sale", quantity=1, actor_id=1)
        ledger.record_movement(db, product_id=p.id, batch_id=b.id,
                               movement_type="damage", quantity=2, actor_id=1)
        ledger.approve_movement(db, first.id, 2)

        res = alerts.pending_approval_alerts(db)
        assert res.count == 1
        assert res.movements[0].movement_type == "damage"


class TestSummary:
    def test_fixed_weighting(self, db, store):
        bundle = alerts.get_alerts_summary(db)
        assert bundle.summary.model_dump() == {"total": 6, "critical": 3, "high": 3, "medium": 0}
        assert bundle.partial is False
        assert bundle.failed_sections == []

    def test_pending_counts_as_medium(self, db, store):
        _, _, busy = store
        ledger.record_movement(db, product_id=busy.id, movement_type="sale",
                               quantity=1, actor_id=1)
        summary = alerts.get_alerts_summary(db).summary
        assert summary.medium == 1
        assert summary.total == 7

    def test_failed_section_is_reported_not_dropped(self, db, store, monkeypatch):
        def boom(*a, **kw):
            raise RuntimeError("expired scan failed")

        monkeypatch.setattr(alerts, "expired_alerts", boom)
        bundle = alerts.get_alerts_summary(db)

        assert bundle.partial is True
        assert bundle.failed_sections == ["expired"]
        assert bundle.expired.count == 0
        assert bundle.expired.error == "expired scan failed"
        assert bundle.low_stock.count == 2
        assert bundle.summary.critical == 0
        assert bundle.summary.high == 3

    def test_sql_error_in_one_section_leaves_the_others(self, db, store, monkeypatch):
        def broken_low_stock(session, threshold):
            session.execute(text("SELECT missing_column FROM products"))

        savepoints = []
        begin_nested = db.begin_nested

        def counting_begin_nested():
            savepoints.append(1)
            return begin_nested()

        monkeypatch.setattr(alerts, "low_stock_alerts", broken_low_stock)
        monkeypatch.setattr(db, "begin_nested", counting_begin_nested)
        bundle = alerts.get_alerts_summary(db)

        assert len(savepoints) == 4
        assert bundle.failed_sections == ["low_stock"]
        assert bundle.low_stock.error
        assert bundle.expiring.count == 1
        assert bundle.expired.count == 3
        assert bundle.pending_approvals.count == 0
        assert alerts.batch_stats(db).total == 5


def test_batch_stats(db, store):
    stats = alerts.batch_stats(db)
    assert stats.total == 5
    assert stats.active == 1
    assert stats.near_expiry == 1
    assert stats.expired == 3
    assert stats.total_quantity == 23
    assert stats.total_value == Decimal("18.00")
