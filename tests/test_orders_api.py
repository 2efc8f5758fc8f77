import re

import pytest

from models.order import Order
from models.product import Product


@pytest.fixture
def cake(make_product):
    return make_product(name="Chocolate Cake", price="200.00", stock=10)


@pytest.fixture
def tart(make_product):
    return make_product(name="Lemon Tart", price="150.00", stock=5)


def _stock(db, product_id):
    db.expire_all()
    return db.get(Product, product_id).stock_quantity


def _place(client, items, **extra):
    return client.post("/orders/", json={"items": items, **extra})


class TestCreateOrder:
    def test_place_order(self, client, db, cake, tart, customer, mock_email_send):
        response = _place(
            client,
            [{"product_id": cake.id, "quantity": 2}, {"product_id": tart.id, "quantity": 1}],
            customer_id=customer.id,
            payment_method="cash",
        )

        assert response.status_code == 201
        data = response.json()
        assert re.fullmatch(r"BK\d{9}", data["order_number"])
        assert float(data["total_amount"]) == 550.0
        assert data["status"] == "pending"
        assert data["order_type"] == "pickup"
        assert [item["product_name"] for item in data["items"]] == ["Chocolate Cake", "Lemon Tart"]
        assert _stock(db, cake.id) == 8
        assert _stock(db, tart.id) == 4

        # notifications go out after the order is committed
        assert [m["to"] for m in mock_email_send] == ["ada@example.com", "kitchen@example.com"]

    def test_guest_checkout(self, client, cake):
        response = _place(client, [{"product_id": cake.id, "quantity": 1}])

        assert response.status_code == 201
        assert response.json()["customer_id"] is None

    def test_empty_order_rejected(self, client, db):
        response = _place(client, [])

        assert response.status_code == 422
        assert db.query(Order).count() == 0

    def test_delivery_requires_address(self, client, cake):
        response = _place(client, [{"product_id": cake.id, "quantity": 1}], order_type="delivery")

        assert response.status_code == 422

    def test_line_quantity_is_capped(self, client, db, cake):
        response = _place(client, [{"product_id": cake.id, "quantity": 10**20}])

        assert response.status_code == 422
        assert _stock(db, cake.id) == 10

    def test_invalid_order_type(self, client, cake):
        response = _place(client, [{"product_id": cake.id, "quantity": 1}], order_type="drone")

        assert response.status_code == 422

    def test_unknown_product_rolls_back(self, client, db, cake, tart):
        response = _place(
            client,
            [
                {"product_id": cake.id, "quantity": 1},
                {"product_id": 4242, "quantity": 1},
                {"product_id": tart.id, "quantity": 1},
            ],
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Product with ID 4242 not found"
        assert _stock(db, cake.id) == 10
        assert _stock(db, tart.id) == 5
        assert db.query(Order).count() == 0

    def test_insufficient_stock(self, client, db, tart):
        response = _place(client, [{"product_id": tart.id, "quantity": 6}])

        assert response.status_code == 409
        assert "Insufficient stock" in response.json()["detail"]
        assert _stock(db, tart.id) == 5

    def test_email_failure_does_not_fail_order(self, client, db, cake, customer, monkeypatch):
        from services import email as email_service

        def _broken(*args, **kwargs):
            raise RuntimeError("smtp down")

        monkeypatch.setattr(email_service, "send_email", _broken)

        response = _place(client, [{"product_id": cake.id, "quantity": 1}], customer_id=customer.id)

        assert response.status_code == 201
        assert db.query(Order).count() == 1


class TestTrackOrder:
    def test_track_by_number(self, client, cake):
        number = _place(client, [{"product_id": cake.id, "quantity": 1}]).json()["order_number"]

        response = client.get(f"/orders/track/{number.lower()}")

        assert response.status_code == 200
        assert response.json()["order_number"] == number
        assert len(response.json()["items"]) == 1

    def test_unknown_number(self, client):
        assert client.get("/orders/track/BK000000000").status_code == 404


class TestStaffOrderViews:
    def test_requires_auth(self, client):
        assert client.get("/orders/").status_code == 401
        assert client.patch("/orders/1/status").status_code == 401
        assert client.patch("/orders/1/cancel").status_code == 401

    def test_list_and_filter(self, client, auth_headers, cake, tart):
        first = _place(client, [{"product_id": cake.id, "quantity": 1}, {"product_id": tart.id, "quantity": 1}]).json()
        second = _place(client, [{"product_id": tart.id, "quantity": 1}]).json()
        client.patch(f"/orders/{second['id']}/status", headers=auth_headers)

        response = client.get("/orders/", headers=auth_headers)
        assert response.status_code == 200
        counts = {row["id"]: row["item_count"] for row in response.json()}
        assert counts == {first["id"]: 2, second["id"]: 1}

        confirmed = client.get("/orders/", params={"status": "confirmed"}, headers=auth_headers).json()
        assert [row["id"] for row in confirmed] == [second["id"]]

        limited = client.get("/orders/", params={"limit": 1}, headers=auth_headers).json()
        assert len(limited) == 1

    def test_get_order(self, client, auth_headers, cake):
        order = _place(client, [{"product_id": cake.id, "quantity": 3}]).json()

        response = client.get(f"/orders/{order['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["items"][0]["quantity"] == 3
        assert client.get("/orders/999", headers=auth_headers).status_code == 404

    def test_stats(self, client, auth_headers, cake, tart):
        _place(client, [{"product_id": cake.id, "quantity": 1}])
        cancelled = _place(client, [{"product_id": tart.id, "quantity": 2}]).json()
        client.patch(f"/orders/{cancelled['id']}/cancel", headers=auth_headers)

        stats = client.get("/orders/stats", headers=auth_headers).json()

        assert stats["total_orders"] == 2
        assert float(stats["total_revenue"]) == 500.0
        assert float(stats["average_order_value"]) == 250.0
        assert stats["cancelled_orders"] == 1
        assert stats["completed_orders"] == 0


class TestStatusTransitions:
    def test_advance_without_body(self, client, auth_headers, cake, customer, mock_email_send):
        order = _place(client, [{"product_id": cake.id, "quantity": 1}], customer_id=customer.id).json()
        mock_email_send.clear()

        response = client.patch(f"/orders/{order['id']}/status", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"
        assert len(mock_email_send) == 1
        assert mock_email_send[0]["subject"].startswith("Order Confirmed")

    def test_empty_body_also_advances(self, client, auth_headers, cake):
        order = _place(client, [{"product_id": cake.id, "quantity": 1}]).json()

        response = client.patch(f"/orders/{order['id']}/status", json={}, headers=auth_headers)

        assert response.json()["status"] == "confirmed"

    def test_full_delivery_flow(self, client, auth_headers, cake):
        order = _place(
            client, [{"product_id": cake.id, "quantity": 1}], order_type="delivery", delivery_address="5 Icing Ave"
        ).json()

        seen = []
        for _ in range(5):
            seen.append(client.patch(f"/orders/{order['id']}/status", headers=auth_headers).json()["status"])

        assert seen == ["confirmed", "preparing", "ready", "out_for_delivery", "delivered"]
        response = client.patch(f"/orders/{order['id']}/status", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "No valid next status"

    def test_explicit_status(self, client, auth_headers, cake):
        order = _place(client, [{"product_id": cake.id, "quantity": 1}]).json()

        response = client.patch(f"/orders/{order['id']}/status", json={"status": "ready"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_unknown_status_rejected(self, client, auth_headers, cake):
        order = _place(client, [{"product_id": cake.id, "quantity": 1}]).json()

        response = client.patch(f"/orders/{order['id']}/status", json={"status": "burnt"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid status"

    def test_unknown_order(self, client, auth_headers):
        assert client.patch("/orders/404/status", headers=auth_headers).status_code == 404


class TestCancel:
    def test_cancel_restores_stock(self, client, db, auth_headers, cake, tart):
        order = _place(client, [{"product_id": cake.id, "quantity": 4}, {"product_id": tart.id, "quantity": 2}]).json()
        assert _stock(db, cake.id) == 6

        response = client.patch(f"/orders/{order['id']}/cancel", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert _stock(db, cake.id) == 10
        assert _stock(db, tart.id) == 5

    def test_cannot_cancel_twice(self, client, db, auth_headers, cake, mock_email_send):
        order = _place(client, [{"product_id": cake.id, "quantity": 4}]).json()
        client.patch(f"/orders/{order['id']}/cancel", headers=auth_headers)
        mock_email_send.clear()

        response = client.patch(f"/orders/{order['id']}/cancel", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["detail"] == "Cannot cancel order with current status"
        assert _stock(db, cake.id) == 10
        assert mock_email_send == []

    def test_cannot_cancel_delivered(self, client, auth_headers, cake):
        order = _place(client, [{"product_id": cake.id, "quantity": 1}]).json()
        client.patch(f"/orders/{order['id']}/status", json={"status": "delivered"}, headers=auth_headers)

        response = client.patch(f"/orders/{order['id']}/cancel", headers=auth_headers)

        assert response.status_code == 409
