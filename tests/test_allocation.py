"""
Tests - FIFO (soonest expiry first) selection and commit
"""
from datetime import datetime

import pytest

from pharmacy_stock.models.batch import BatchStatus
from pharmacy_stock.services import allocation, ledger
from pharmacy_stock.services.allocation import BatchAllocation
from pharmacy_stock.services.batches import set_block
from pharmacy_stock.services.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    ValidationError,
)

ACTOR = 3


class TestSelectBatchesFifo:
    def test_soonest_expiry_first(self, db, make_product, make_batch):
        p = make_product()
        b2 = make_batch(p, "B2", days=200, qty=50)
        b1 = make_batch(p, "B1", days=10, qty=5)

        plan = allocation.select_batches_fifo(db, p.id, 20)

        assert [(a.batch_id, a.quantity) for a in plan] == [(b1.id, 5), (b2.id, 15)]
        assert plan[0].available == 5
        assert plan[1].available == 50

    def test_is_read_only(self, db, make_product, make_batch):
        p = make_product()
        b = make_batch(p, qty=10)
        allocation.select_batches_fifo(db, p.id, 7)
        assert b.current_quantity == 10
        assert p.stock == 10

    def test_exact_fit_stops_early(self, db, make_product, make_batch):
        p = make_product()
        b1 = make_batch(p, "B1", days=50, qty=10)
        make_batch(p, "B2", days=60, qty=10)
        plan = allocation.select_batches_fifo(db, p.id, 10)
        assert plan == [BatchAllocation(b1.id, 10, 10)]

    def test_same_expiry_oldest_receipt_first(self, db, make_product, make_batch):
        p = make_product()
        newer = make_batch(p, "N", days=90, qty=5, receipt_date=datetime(2025, 2, 1))
        older = make_batch(p, "O", days=90, qty=5, receipt_date=datetime(2025, 1, 1))
        plan = allocation.select_batches_fifo(db, p.id, 6)
        assert [a.batch_id for a in plan] == [older.id, newer.id]

    def test_skips_blocked_expired_and_depleted(self, db, make_product, make_batch):
        p = make_product()
        blocked = make_batch(p, "BLK", days=5, qty=10)
        set_block(db, blocked.id, True)
        make_batch(p, "EXP", days=-3, qty=10)
        empty = make_batch(p, "DEP", days=20, qty=4)
        ledger.record_movement(db, product_id=p.id, batch_id=empty.id,
                               movement_type="sale", quantity=4, actor_id=ACTOR)
        good = make_batch(p, "OK", days=300, qty=8)

        plan = allocation.select_batches_fifo(db, p.id, 8)
        assert [a.batch_id for a in plan] == [good.id]

    def test_near_expiry_can_be_excluded(self, db, make_product, make_batch):
        p = make_product()
        make_batch(p, "SOON", days=10, qty=5)
        far = make_batch(p, "FAR", days=200, qty=50)
        plan = allocation.select_batches_fifo(db, p.id, 5, include_near_expiry=False)
        assert [a.batch_id for a in plan] == [far.id]

    def test_shortfall_reports_total_available(self, db, make_product, make_batch):
        p = make_product()
        make_batch(p, "B1", days=10, qty=5)
        make_batch(p, "B2", days=200, qty=50)
        with pytest.raises(InsufficientStockError) as exc:
            allocation.select_batches_fifo(db, p.id, 60)
        assert exc.value.available == 55
        assert exc.value.requested == 60

    def test_quantity_must_be_positive(self, db, make_product):
        with pytest.raises(ValidationError):
            allocation.select_batches_fifo(db, make_product().id, 0)


class TestCommit:
    def test_consume_fifo_records_one_movement_per_batch(self, db, make_product, make_batch):
        p = make_product()
        b1 = make_batch(p, "B1", days=10, qty=5)
        b2 = make_batch(p, "B2", days=200, qty=50)

        movements = allocation.consume_fifo(db, product_id=p.id, quantity=20, actor_id=ACTOR)

        assert [(m.batch_id, m.quantity) for m in movements] == [(b1.id, -5), (b2.id, -15)]
        assert movements[0].previous_stock == 55
        assert movements[1].new_stock == 35
        assert p.stock == 35
        assert b1.current_quantity == 0
        assert b1.status == BatchStatus.DEPLETED
        assert b2.current_quantity == 35

    def test_conflict_when_batch_shrank(self, db, make_product, make_batch):
        p = make_product()
        b1 = make_batch(p, "B1", days=10, qty=5)
        make_batch(p, "B2", days=200, qty=50)
        plan = allocation.select_batches_fifo(db, p.id, 20)

        # another writer takes from B1 before the commit
        ledger.record_movement(db, product_id=p.id, batch_id=b1.id,
                               movement_type="sale", quantity=2, actor_id=99)

        with pytest.raises(ConcurrencyConflictError) as exc:
            allocation.commit_allocations(
                db, product_id=p.id, allocations=plan,
                movement_type="sale", actor_id=ACTOR,
            )
        assert exc.value.status_code == 409
        assert exc.value.context["batch_id"] == b1.id
        assert exc.value.context["actual"] == 3
        assert p.stock == 53

    def test_inbound_type_rejected(self, db, make_product, make_batch):
        p = make_product()
        make_batch(p, qty=5)
        plan = allocation.select_batches_fifo(db, p.id, 2)
        with pytest.raises(ValidationError):
            allocation.commit_allocations(db, product_id=p.id, allocations=plan,
                                          movement_type="purchase", actor_id=ACTOR)
