# Overview: Pytest coverage for the stock consistency sweep.

from restoflow.models import Product, SystemLog
from restoflow.services.consistency_service import verify_stock_consistency


class TestVerifyStockConsistency:

    def test_available_with_no_stock_is_disabled(self, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=0, is_available=True)

        result = verify_stock_consistency()

        assert result["checked_inconsistencies"] == 1
        assert db_session.get(Product, product.id).is_available is False

        logs = db_session.query(SystemLog).filter_by(action="stock_consistency_fix").all()
        assert len(logs) == 1
        assert logs[0].level == "warning"
        assert logs[0].payload["action"] == "disabled"
        assert logs[0].payload["quantity"] == 0
        assert logs[0].restaurant_id == restaurant_a.id

    def test_negative_stock_is_disabled(self, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=-2, is_available=True)

        verify_stock_consistency()

        assert db_session.get(Product, product.id).is_available is False

    def test_unavailable_with_stock_is_enabled(self, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=4, is_available=False)

        result = verify_stock_consistency()

        assert db_session.get(Product, product.id).is_available is True
        assert result["enabled"] == [{"product_id": product.id, "name": product.name, "quantity": 4}]
        log = db_session.query(SystemLog).filter_by(action="stock_consistency_fix").one()
        assert log.level == "info"
        assert log.payload["action"] == "enabled"

    def test_consistent_catalog_writes_nothing(self, db_session, restaurant_a, make_product):
        available = make_product(restaurant_a, name="A", quantity=5, is_available=True)
        unavailable = make_product(restaurant_a, name="B", quantity=0, is_available=False)
        before = {p.id: p.updated_at for p in db_session.query(Product)}

        result = verify_stock_consistency()

        assert result["checked_inconsistencies"] == 0
        assert db_session.query(SystemLog).count() == 0
        after = {p.id: p.updated_at for p in db_session.query(Product)}
        assert after == before
        assert available.id in after and unavailable.id in after

    def test_untracked_products_are_ignored(self, db_session, restaurant_a, make_product):
        make_product(restaurant_a, name="Delivery", quantity=None, product_type="service", is_available=True)

        result = verify_stock_consistency()

        assert result["checked_inconsistencies"] == 0

    def test_mixed_run_one_entry_per_product(self, db_session, restaurant_a, restaurant_b, make_product):
        make_product(restaurant_a, name="A", quantity=0, is_available=True)
        make_product(restaurant_a, name="B", quantity=0, is_available=True)
        make_product(restaurant_b, name="C", quantity=9, is_available=False)

        result = verify_stock_consistency()

        assert len(result["disabled"]) == 2
        assert len(result["enabled"]) == 1
        assert db_session.query(SystemLog).filter_by(action="stock_consistency_fix").count() == 3

    def test_second_run_is_noop(self, db_session, restaurant_a, make_product):
        make_product(restaurant_a, quantity=0, is_available=True)

        verify_stock_consistency()
        result = verify_stock_consistency()

        assert result["checked_inconsistencies"] == 0
        assert db_session.query(SystemLog).count() == 1
