from models.category import Category
from models.order_item import OrderItem


class TestCategories:
    def test_create_and_list(self, client, auth_headers):
        response = client.post("/categories/", json={"name": "Cakes", "display_order": 2}, headers=auth_headers)
        assert response.status_code == 201
        client.post("/categories/", json={"name": "Breads", "display_order": 1}, headers=auth_headers)

        names = [c["name"] for c in client.get("/categories/").json()]

        assert names == ["Breads", "Cakes"]

    def test_duplicate_name(self, client, auth_headers):
        client.post("/categories/", json={"name": "Cakes"}, headers=auth_headers)

        response = client.post("/categories/", json={"name": "Cakes"}, headers=auth_headers)

        assert response.status_code == 400

    def test_requires_staff(self, client):
        assert client.post("/categories/", json={"name": "Cakes"}).status_code == 401

    def test_soft_delete(self, client, db, auth_headers, make_product):
        category_id = client.post("/categories/", json={"name": "Pastries"}, headers=auth_headers).json()["id"]
        product = make_product(name="Danish", category_id=category_id)

        response = client.delete(f"/categories/{category_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert client.get("/categories/").json() == []
        assert len(client.get("/categories/", params={"include_inactive": True}).json()) == 1
        db.expire_all()
        assert db.get(Category, category_id) is not None
        assert client.get(f"/products/{product.id}").json()["category_id"] == category_id

    def test_category_products(self, client, auth_headers, make_product):
        category_id = client.post("/categories/", json={"name": "Cookies"}, headers=auth_headers).json()["id"]
        make_product(name="Oatmeal Cookie", category_id=category_id)
        make_product(name="Sold Out Cookie", category_id=category_id, is_available=False)
        make_product(name="Rye Loaf")

        names = [p["name"] for p in client.get(f"/categories/{category_id}/products").json()]

        assert names == ["Oatmeal Cookie"]


class TestProducts:
    def test_create_product(self, client, auth_headers):
        response = client.post(
            "/products/",
            json={"name": "Focaccia", "price": "7.50", "stock_quantity": 12},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Focaccia"
        assert float(data["price"]) == 7.5
        assert data["stock_quantity"] == 12
        assert data["is_available"] is True

    def test_negative_price_rejected(self, client, auth_headers):
        response = client.post("/products/", json={"name": "Free Bread", "price": "-1"}, headers=auth_headers)

        assert response.status_code == 422

    def test_unknown_category(self, client, auth_headers):
        response = client.post(
            "/products/", json={"name": "Focaccia", "price": "7.50", "category_id": 99}, headers=auth_headers
        )

        assert response.status_code == 404

    def test_filters(self, client, make_product):
        make_product(name="Plain Bagel")
        make_product(name="Truffle Cake", is_featured=True)
        make_product(name="Old Bun", is_available=False)

        featured = client.get("/products/", params={"featured": True}).json()
        available = client.get("/products/", params={"available": True}).json()

        assert [p["name"] for p in featured] == ["Truffle Cake"]
        assert {p["name"] for p in available} == {"Plain Bagel", "Truffle Cake"}

    def test_update_product(self, client, auth_headers, make_product):
        product = make_product(name="Pretzel", price="2.00")

        response = client.patch(f"/products/{product.id}", json={"price": "2.25", "stock_quantity": 40}, headers=auth_headers)

        assert response.status_code == 200
        assert float(response.json()["price"]) == 2.25
        assert response.json()["stock_quantity"] == 40
        assert response.json()["name"] == "Pretzel"

    def test_delete_unordered_product(self, client, auth_headers, make_product):
        product = make_product(name="Test Loaf")

        assert client.delete(f"/products/{product.id}", headers=auth_headers).status_code == 204
        assert client.get(f"/products/{product.id}").status_code == 404

    def test_ordered_product_cannot_be_deleted(self, client, db, auth_headers, make_product):
        product = make_product(name="Popular Loaf")
        client.post("/orders/", json={"items": [{"product_id": product.id, "quantity": 1}]})

        response = client.delete(f"/products/{product.id}", headers=auth_headers)

        assert response.status_code == 409
        assert db.query(OrderItem).count() == 1


class TestCustomers:
    def test_create_customer(self, client):
        response = client.post(
            "/customers/",
            json={"first_name": "Grace", "last_name": "Hopper", "email": "Grace@Example.com"},
        )

        assert response.status_code == 201
        assert response.json()["email"] == "grace@example.com"

    def test_duplicate_email(self, client, customer):
        response = client.post(
            "/customers/",
            json={"first_name": "Ada", "last_name": "Again", "email": customer.email},
        )

        assert response.status_code == 400

    def test_staff_views(self, client, auth_headers, customer):
        assert client.get("/customers/", headers=auth_headers).json()[0]["id"] == customer.id
        assert client.get(f"/customers/{customer.id}", headers=auth_headers).json()["first_name"] == "Ada"
        assert client.get(f"/customers/email/{customer.email}", headers=auth_headers).status_code == 200
        assert client.get("/customers/", params={"search": "bak"}, headers=auth_headers).json()[0]["email"] == customer.email
        assert client.get(f"/customers/{customer.id}").status_code == 401

    def test_update_and_deactivate(self, client, auth_headers, customer):
        response = client.patch(f"/customers/{customer.id}", json={"phone": "555-0199"}, headers=auth_headers)
        assert response.json()["phone"] == "555-0199"

        response = client.delete(f"/customers/{customer.id}", headers=auth_headers)
        assert response.json()["is_active"] is False

    def test_order_history(self, client, auth_headers, customer, make_product):
        bread = make_product(name="Rye", price="5.00")
        client.post("/orders/", json={"customer_id": customer.id, "items": [{"product_id": bread.id, "quantity": 2}]})
        client.post("/orders/", json={"items": [{"product_id": bread.id, "quantity": 1}]})

        history = client.get(f"/customers/{customer.id}/orders", headers=auth_headers).json()

        assert len(history) == 1
        assert float(history[0]["total_amount"]) == 10.0
        assert history[0]["item_count"] == 1

    def test_customer_stats(self, client, auth_headers, customer, make_product):
        bread = make_product(name="Sourdough", price="6.00")
        first = client.post("/orders/", json={"customer_id": customer.id, "items": [{"product_id": bread.id, "quantity": 1}]}).json()
        client.post("/orders/", json={"customer_id": customer.id, "items": [{"product_id": bread.id, "quantity": 3}]})
        client.patch(f"/orders/{first['id']}/status", json={"status": "delivered"}, headers=auth_headers)

        stats = client.get(f"/customers/{customer.id}/stats", headers=auth_headers).json()

        assert stats["total_orders"] == 2
        assert float(stats["total_spent"]) == 24.0
        assert float(stats["average_order_value"]) == 12.0
        assert stats["completed_orders"] == 1
        assert stats["last_order_date"] is not None

    def test_customer_stats_without_orders(self, client, auth_headers, customer):
        stats = client.get(f"/customers/{customer.id}/stats", headers=auth_headers).json()

        assert stats["total_orders"] == 0
        assert float(stats["total_spent"]) == 0
        assert stats["last_order_date"] is None
        assert client.get("/customers/999/stats", headers=auth_headers).status_code == 404
