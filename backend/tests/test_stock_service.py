"""
StockConsistencyEngine tests.

Verifies:
- Shortfall iff requested > available (missing products count as 0)
- set_stock / batch_set_stock always update the cache and report the
  remote outcome separately
- batch_set_stock is idempotent
- deduct_after_sale never goes negative and never partially deducts
"""

import threading

import pytest

from possync.errors import RemoteRejected
from possync.validation import ValidationError

from conftest import network_down, raiser


# =============================================================================
# AVAILABILITY
# =============================================================================


class TestCheckAvailability:
    def test_scenario_b_reports_single_shortfall(self, engine, make_product):
        product = make_product(name="Soap", stock=3)

        result = engine.stock.check_availability([{"id": product["id"], "quantity": 5}])

        assert result.ok is False
        assert result.shortfalls == [
            {"id": product["id"], "name": "Soap", "requested": 5, "available": 3}
        ]

    @pytest.mark.parametrize("requested,expect_shortfall", [(2, False), (3, False), (4, True)])
    def test_shortfall_iff_requested_exceeds_available(self, engine, make_product, requested, expect_shortfall):
        product = make_product(stock=3)

        result = engine.stock.check_availability([{"id": product["id"], "quantity": requested}])

        assert (not result.ok) == expect_shortfall

    def test_missing_product_is_a_shortfall(self, engine):
        result = engine.stock.check_availability([{"id": "nope", "quantity": 1}])

        assert result.shortfalls == [
            {"id": "nope", "name": "Product #nope", "requested": 1, "available": 0}
        ]

    def test_quantities_for_same_product_are_summed(self, engine, make_product):
        product = make_product(stock=3)

        result = engine.stock.check_availability([
            {"id": product["id"], "quantity": 2},
            {"id": product["id"], "quantity": 2},
        ])

        assert result.shortfalls[0]["requested"] == 4

    def test_offline_check_uses_cached_view(self, engine, make_product, probe):
        product = make_product(stock=3)
        probe.set_online(False)

        assert engine.stock.check_availability([{"id": product["id"], "quantity": 3}]).ok

    @pytest.mark.parametrize("items", [None, [{"quantity": 1}], [{"id": "a", "quantity": 0}], "abc"])
    def test_malformed_requests_rejected(self, engine, items):
        with pytest.raises(ValidationError):
            engine.stock.check_availability(items)


# =============================================================================
# SET STOCK
# =============================================================================


class TestSetStock:
    def test_online_writes_both_sides(self, engine, make_product):
        product = make_product(stock=10)

        result = engine.stock.set_stock(product["id"], 4)

        assert result and result.remote_ok and result.local_ok
        assert engine.remote.get("products", product["id"])["stock"] == 4
        assert engine.cache.get_products()[0]["stock"] == 4

    def test_remote_failure_still_updates_cache(self, engine, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(engine.remote, "update", raiser(RemoteRejected("constraint")))

        result = engine.stock.set_stock(product["id"], 4)

        assert bool(result) is True
        assert result.remote_ok is False
        assert result.remote_failed_ids == [product["id"]]
        assert engine.cache.get_products()[0]["stock"] == 4
        assert engine.cache.get_pending_product_ops() == [
            {"op": "update", "id": product["id"], "patch": {"stock": 4}}
        ]

    def test_later_successful_write_supersedes_queued_value(self, engine, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(engine.remote, "update", raiser(RemoteRejected("constraint")))
        engine.stock.set_stock(product["id"], 8)
        monkeypatch.undo()

        assert engine.stock.set_stock(product["id"], 20).remote_ok

        assert engine.cache.get_pending_product_ops() == []
        [listed] = engine.products.list_products()
        assert listed["stock"] == 20
        assert engine.remote.get("products", product["id"])["stock"] == 20

    def test_successful_write_keeps_other_queued_fields(self, engine, make_product, monkeypatch):
        product = make_product(name="Soap", stock=10)
        monkeypatch.setattr(engine.remote, "update", network_down())
        engine.products.update_product(product["id"], {"name": "Bar soap", "stock": 8})
        monkeypatch.undo()

        engine.stock.set_stock(product["id"], 20)

        assert engine.cache.get_pending_product_ops() == [
            {"op": "update", "id": product["id"], "patch": {"name": "Bar soap"}}
        ]
        [listed] = engine.products.list_products()
        assert (listed["name"], listed["stock"]) == ("Bar soap", 20)

    def test_offline_is_cache_only(self, engine, make_product, probe):
        product = make_product(stock=10)
        probe.set_online(False)

        result = engine.stock.set_stock(product["id"], 4)

        assert result.local_ok and result.offline and not result.remote_ok
        assert engine.cache.get_products()[0]["stock"] == 4
        assert engine.remote.get("products", product["id"])["stock"] == 10

    def test_negative_stock_rejected(self, engine, make_product):
        product = make_product(stock=10)

        with pytest.raises(ValidationError):
            engine.stock.set_stock(product["id"], -1)

    def test_local_write_failure_reported(self, engine, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(engine.cache, "save_products", lambda products: False)

        result = engine.stock.set_stock(product["id"], 4)

        assert bool(result) is False
        assert result.remote_ok is True


# =============================================================================
# BATCH SET STOCK
# =============================================================================


class TestBatchSetStock:
    def test_continues_past_individual_failures(self, engine, make_product, monkeypatch):
        good = make_product(name="Good", stock=10)
        bad = make_product(name="Bad", stock=10)
        real_update = engine.remote.update

        def flaky_update(table, row_id, patch):
            if row_id == bad["id"]:
                raise RemoteRejected("constraint")
            return real_update(table, row_id, patch)

        monkeypatch.setattr(engine.remote, "update", flaky_update)

        result = engine.stock.batch_set_stock([
            {"id": bad["id"], "new_stock": 1},
            {"id": good["id"], "new_stock": 2},
        ])

        assert result.local_ok is True
        assert result.remote_ok is False
        assert result.remote_failed_ids == [bad["id"]]
        assert engine.remote.get("products", good["id"])["stock"] == 2
        cached = {p["id"]: p["stock"] for p in engine.cache.get_products()}
        assert cached == {good["id"]: 2, bad["id"]: 1}

    def test_idempotent(self, engine, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)
        updates = [{"id": a["id"], "new_stock": 3}, {"id": b["id"], "new_stock": 0}]

        engine.stock.batch_set_stock(updates)
        once = {p["id"]: p["stock"] for p in engine.cache.get_products()}
        engine.stock.batch_set_stock(updates)
        twice = {p["id"]: p["stock"] for p in engine.cache.get_products()}

        assert once == twice == {a["id"]: 3, b["id"]: 0}

    def test_offline_batch_is_queued_for_replay(self, engine, make_product, probe):
        product = make_product(stock=10)
        probe.set_online(False)

        result = engine.stock.batch_set_stock([{"id": product["id"], "new_stock": 6}])

        assert result.local_ok and result.offline
        assert engine.remote.get("products", product["id"])["stock"] == 10

        probe.set_online(True)

        assert engine.remote.get("products", product["id"])["stock"] == 6

    def test_rejects_negative_values_before_writing(self, engine, make_product):
        a = make_product(name="A", stock=10)

        with pytest.raises(ValidationError):
            engine.stock.batch_set_stock([
                {"id": a["id"], "new_stock": 5},
                {"id": a["id"], "new_stock": -5},
            ])
        assert engine.remote.get("products", a["id"])["stock"] == 10


# =============================================================================
# DEDUCT AFTER SALE
# =============================================================================


class TestDeductAfterSale:
    def test_decrements_stock(self, engine, make_product):
        product = make_product(stock=10)

        result = engine.stock.deduct_after_sale([{"id": product["id"], "quantity": 2}])

        assert result
        assert engine.remote.get("products", product["id"])["stock"] == 8
        assert engine.cache.get_products()[0]["stock"] == 8

    def test_shortfall_changes_nothing(self, engine, make_product):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=1)

        result = engine.stock.deduct_after_sale([
            {"id": a["id"], "quantity": 2},
            {"id": b["id"], "quantity": 5},
        ])

        assert not result
        assert result.shortfalls[0]["id"] == b["id"]
        assert engine.remote.get("products", a["id"])["stock"] == 10
        assert engine.remote.get("products", b["id"])["stock"] == 1

    def test_remote_failure_still_deducts_locally(self, engine, make_product, monkeypatch):
        product = make_product(stock=10)
        monkeypatch.setattr(engine.remote, "update", network_down())

        result = engine.stock.deduct_after_sale([{"id": product["id"], "quantity": 4}])

        assert result.local_ok and not result.remote_ok
        assert engine.cache.get_products()[0]["stock"] == 6

    def test_concurrent_deductions_never_oversell(self, engine, make_product, probe):
        product = make_product(stock=5)
        probe.set_online(False)
        outcomes = []

        def sell_one():
            outcomes.append(bool(engine.stock.deduct_after_sale([{"id": product["id"], "quantity": 1}])))

        threads = [threading.Thread(target=sell_one) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(True) == 5
        assert engine.cache.get_products()[0]["stock"] == 0

    def test_stock_never_negative_over_sequence(self, engine, make_product):
        product = make_product(stock=4)

        for quantity in (3, 3, 1, 2, 1):
            engine.stock.deduct_after_sale([{"id": product["id"], "quantity": quantity}])
            assert engine.cache.get_products()[0]["stock"] >= 0
            assert engine.remote.get("products", product["id"])["stock"] >= 0
