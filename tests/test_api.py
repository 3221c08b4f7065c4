"""Tests for API endpoints"""
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from main import app, get_gateway, serialize_doc


@pytest.fixture
def client(gateway):
    """Test client backed by the in-memory database"""
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(identity, token_factory):
    return {"Authorization": f"Bearer {token_factory(identity.id)}"}


def test_serialize_doc():
    oid, nested = ObjectId(), ObjectId()

    doc = serialize_doc({"_id": oid, "products": [{"productId": {"_id": nested, "name": "Cap"}}]})

    assert doc == {"id": str(oid), "products": [{"productId": {"id": str(nested), "name": "Cap"}}]}


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200


def test_database_status_without_database(client):
    response = client.get("/test")
    assert response.status_code == 200
    assert response.json()["backend"] == "✅ Running"


class TestCatalogEndpoints:

    def test_search_without_body(self, client, catalog_data):
        response = client.post("/products/search")

        assert response.status_code == 200
        assert len(response.json()) == 5

    def test_search_with_filter(self, client, catalog_data):
        response = client.post(
            "/products/search",
            json={"minPrice": 30, "maxPrice": 60, "sort": {"field": "price", "order": "asc"}},
        )

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Oxford Shirt", "Running Shoe"]

    def test_search_with_bad_id(self, client, catalog_data):
        response = client.post("/products/search", json={"_id": "nope"})

        assert response.status_code == 400
        assert response.json()["code"] == "BAD_USER_INPUT"

    def test_get_product(self, client, catalog_data):
        product_id = str(catalog_data["products"][0])

        response = client.get(f"/products/{product_id}")

        body = response.json()
        assert response.status_code == 200
        assert body["id"] == product_id
        assert body["categories"][0]["name"] == "Shirts"
        assert body["reviews"][0]["user_id"]["name"] == "Asha"

    def test_get_missing_product(self, client):
        response = client.get(f"/products/{ObjectId()}")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_categories(self, client, catalog_data):
        response = client.get("/categories")

        assert {c["name"] for c in response.json()} == {"Shirts", "Shoes"}


class TestAuthenticatedEndpoints:

    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("get", "/cart", None),
            ("post", "/cart", {"product_id": str(ObjectId()), "quantity": 1}),
            ("delete", f"/cart/{ObjectId()}", None),
            ("get", "/wishlist", None),
            ("post", "/wishlist", {"product_id": str(ObjectId())}),
            ("post", "/reviews", {"review": "ok", "score": 3, "product_id": str(ObjectId())}),
            ("delete", f"/wishlist/{ObjectId()}", None),
            ("get", "/addresses", None),
            (
                "post",
                "/addresses",
                {"name": "Home", "address_line_1": "1 Main St", "city": "Pune", "pincode": "411001",
                 "state": "MH", "country": "India", "email": "home@example.com", "phone_number": "1"},
            ),
        ],
    )
    def test_requires_token(self, client, mongo, method, path, body):
        kwargs = {"json": body} if body is not None else {}

        response = getattr(client, method)(path, **kwargs)

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"
        assert mongo["cart"].count_documents({}) == 0
        assert mongo["wishlist"].count_documents({}) == 0
        assert mongo["product_review"].count_documents({}) == 0
        assert mongo["address"].count_documents({}) == 0

    def test_invalid_token(self, client):
        response = client.get("/cart", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_public_route_ignores_invalid_token(self, client, catalog_data):
        response = client.get("/categories", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 200

    def test_cart_flow(self, client, auth_headers, catalog_data):
        product_id = str(catalog_data["products"][1])

        client.post("/cart", json={"product_id": product_id, "quantity": 2}, headers=auth_headers)
        response = client.post("/cart", json={"product_id": product_id, "quantity": 3}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["products"] == [{"productId": product_id, "quantity": 5}]

        cart = client.get("/cart", headers=auth_headers).json()
        assert cart["products"][0]["productId"]["name"] == "Oxford Shirt"

        response = client.delete(f"/cart/{product_id}", headers=auth_headers)
        assert response.json()["products"] == []

    def test_cart_rejects_zero_quantity(self, client, auth_headers):
        response = client.post(
            "/cart", json={"product_id": str(ObjectId()), "quantity": 0}, headers=auth_headers
        )

        assert response.status_code == 400

    def test_wishlist_flow(self, client, auth_headers, catalog_data):
        product_id = str(catalog_data["products"][3])

        client.post("/wishlist", json={"product_id": product_id}, headers=auth_headers)
        response = client.post("/wishlist", json={"product_id": product_id}, headers=auth_headers)
        assert response.json()["products"] == [product_id]

        wishlist = client.get("/wishlist", headers=auth_headers).json()
        assert wishlist["products"][0]["name"] == "Trail Shoe"

        response = client.delete(f"/wishlist/{product_id}", headers=auth_headers)
        assert response.json()["products"] == []

    def test_review_upsert(self, client, auth_headers, mongo, catalog_data):
        product_id = str(catalog_data["products"][2])

        client.post("/reviews", json={"review": "meh", "score": 2, "product_id": product_id},
                    headers=auth_headers)
        response = client.post("/reviews", json={"review": "great", "score": 5, "product_id": product_id},
                               headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["score"] == 5
        assert mongo["product_review"].count_documents({"product_id": catalog_data["products"][2]}) == 1

    def test_addresses(self, client, auth_headers, identity):
        address = {
            "name": "Home",
            "address_line_1": "12 MG Road",
            "city": "Pune",
            "pincode": "411001",
            "state": "MH",
            "country": "India",
            "email": "home@example.com",
            "phone_number": "9999999999",
        }

        created = client.post("/addresses", json=address, headers=auth_headers)
        listed = client.get("/addresses", headers=auth_headers)

        assert created.status_code == 201
        assert created.json()["user_id"] == str(identity.id)
        assert [a["city"] for a in listed.json()] == ["Pune"]

    def test_address_requires_valid_email(self, client, auth_headers):
        response = client.post(
            "/addresses",
            json={"name": "x", "address_line_1": "x", "city": "x", "pincode": "x", "state": "x",
                  "country": "x", "email": "not-an-email", "phone_number": "1"},
            headers=auth_headers,
        )

        assert response.status_code == 422
