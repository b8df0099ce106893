# Overview: Pytest coverage for stock movements (order decrement and manual adjustments).

import pytest

from restoflow.models import Product, Stock, StockMovement
from restoflow.services import stock_service
from restoflow.services.stock_service import StockError, StockNotFoundError


class TestApplyOrderDecrement:

    def test_retry_does_not_decrement_twice(self, db_session, restaurant_a, make_product, make_order):
        product = make_product(restaurant_a, quantity=10)
        order = make_order(restaurant_a, [(product, 3)])

        first = stock_service.apply_order_decrement(order)
        db_session.commit()
        second = stock_service.apply_order_decrement(order)
        db_session.commit()

        assert len(first) == 1
        assert second == []
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 7

    def test_same_product_on_two_lines(self, db_session, restaurant_a, make_product, make_order):
        product = make_product(restaurant_a, quantity=10)
        order = make_order(restaurant_a, [(product, 2), (product, 1)])

        movements = stock_service.apply_order_decrement(order)
        db_session.commit()

        assert len(movements) == 1
        assert movements[0].quantity == -3

    def test_can_go_below_zero(self, db_session, restaurant_a, make_product, make_order):
        product = make_product(restaurant_a, quantity=1)
        order = make_order(restaurant_a, [(product, 3)])

        stock_service.apply_order_decrement(order)
        db_session.commit()

        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == -2


class TestAdjustStock:

    def test_manual_in_restores_availability(self, db_session, restaurant_a, owner_a, make_product):
        product = make_product(restaurant_a, quantity=0, is_available=False)

        stock = stock_service.adjust_stock(
            restaurant_a.id, product.id, 12, "manual_in", reason="Delivery", user_id=owner_a.id
        )

        assert stock.quantity == 12
        assert db_session.get(Product, product.id).is_available is True
        movement = db_session.query(StockMovement).one()
        assert (movement.previous_qty, movement.new_qty, movement.quantity) == (0, 12, 12)

    def test_manual_out_to_zero_hides_product(self, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=4)

        stock_service.adjust_stock(restaurant_a.id, product.id, 4, "manual_out")

        assert db_session.get(Product, product.id).is_available is False

    def test_manual_out_cannot_go_negative(self, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=2)

        with pytest.raises(StockError):
            stock_service.adjust_stock(restaurant_a.id, product.id, 3, "manual_out")

    def test_adjustment_sets_level(self, db_session, restaurant_a, make_product):
        product = make_product(restaurant_a, quantity=8)

        stock_service.adjust_stock(restaurant_a.id, product.id, 5, "adjustment", reason="Count")

        movement = db_session.query(StockMovement).one()
        assert movement.quantity == -3
        assert movement.new_qty == 5

    @pytest.mark.parametrize("quantity,movement_type", [(-1, "manual_in"), (0, "manual_in"), (2, "order"), ("3", "manual_in")])
    def test_invalid_input(self, db_session, restaurant_a, make_product, quantity, movement_type):
        product = make_product(restaurant_a, quantity=8)

        with pytest.raises(StockError):
            stock_service.adjust_stock(restaurant_a.id, product.id, quantity, movement_type)

    def test_foreign_product_not_found(self, db_session, restaurant_a, restaurant_b, make_product):
        product = make_product(restaurant_b, quantity=8)

        with pytest.raises(StockNotFoundError):
            stock_service.adjust_stock(restaurant_a.id, product.id, 1, "manual_in")


class TestStockRoutes:

    def test_owner_can_adjust(self, client, db_session, restaurant_a, owner_a, make_product, login):
        product = make_product(restaurant_a, quantity=1)

        resp = client.post(
            f"/api/stocks/{product.id}/adjust",
            json={"movement_type": "manual_in", "quantity": 5},
            headers=login(owner_a),
        )

        assert resp.status_code == 200
        assert resp.json["stock"]["quantity"] == 6

    def test_kitchen_cannot_adjust(self, client, db_session, restaurant_a, kitchen_a, make_product, login):
        product = make_product(restaurant_a, quantity=1)

        resp = client.post(
            f"/api/stocks/{product.id}/adjust",
            json={"movement_type": "manual_in", "quantity": 5},
            headers=login(kitchen_a),
        )

        assert resp.status_code == 403

    def test_movements_history(self, client, db_session, restaurant_a, owner_a, make_product, login):
        product = make_product(restaurant_a, quantity=1)
        stock_service.adjust_stock(restaurant_a.id, product.id, 2, "manual_in")
        stock_service.adjust_stock(restaurant_a.id, product.id, 1, "manual_out")

        resp = client.get(f"/api/stocks/{product.id}/movements", headers=login(owner_a))

        assert resp.status_code == 200
        assert [m["movement_type"] for m in resp.json["movements"]] == ["manual_out", "manual_in"]
