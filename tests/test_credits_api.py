"""
Tests for the credits HTTP API
"""

import httpx
import pytest

from credit_ledger.main import create_app
from ledger_helpers import SHOP_NAME, STAFF_EMAIL


@pytest.fixture
async def client(app_settings, services):
    app = create_app(app_settings, services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def seeded(client):
    response = await client.post("/api/credits/packages/seed")
    assert response.status_code == 200
    return {p["name"]: p for p in response.json()["packages"]}


class TestPackagesApi:
    async def test_seed_and_list(self, client, seeded):
        response = await client.get("/api/credits/packages")

        assert response.status_code == 200
        packages = response.json()["packages"]
        assert [p["name"] for p in packages] == ["SMALL", "MEDIUM", "LARGE", "ENTERPRISE"]
        assert packages[0]["features"]["ai"]["request_limits"] == 500
        assert packages[0]["features"]["crawl"] == {"request_limits": 50}

    async def test_custom_package(self, client):
        response = await client.post(
            "/api/credits/packages/custom",
            json={"price": {"amount": "50", "currencyCode": "USD"}, "credits": 200},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["is_custom"] is True
        assert body["features"]["ai"]["request_limits"] == 1000

    async def test_invalid_custom_package(self, client):
        response = await client.post(
            "/api/credits/packages/custom", json={"price": {"amount": "50"}, "credits": 0}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestPurchaseApi:
    async def test_purchase_and_details(self, client, seeded, shop, staff_user):
        response = await client.post(
            "/api/credits/purchases",
            json={
                "shop_name": SHOP_NAME,
                "credit_package_id": seeded["SMALL"]["id"],
                "shopify_charge_id": "charge-1",
                "email": STAFF_EMAIL,
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["credit_purchase"]["status"] == "ACTIVE"
        assert body["credit_purchase"]["purchase_snapshot"]["credit_amount"] == 100
        assert body["outbox_id"] is not None

        details = await client.get(f"/api/credits/shops/{SHOP_NAME}/details")
        assert details.status_code == 200
        assert details.json()["details"]["total_active_packages"] == 1

        history = await client.get(f"/api/credits/shops/{SHOP_NAME}/history")
        assert len(history.json()["purchases"]) == 1

    async def test_unknown_shop(self, client, seeded):
        response = await client.post(
            "/api/credits/purchases",
            json={
                "shop_name": "nobody.myshopify.com",
                "credit_package_id": seeded["SMALL"]["id"],
                "shopify_charge_id": "charge-1",
            },
        )

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "SHOP_NOT_FOUND"
        assert body["message"] == "Shop not found"

    async def test_duplicate_charge(self, client, seeded, shop):
        payload = {
            "shop_name": SHOP_NAME,
            "credit_package_id": seeded["SMALL"]["id"],
            "shopify_charge_id": "charge-1",
        }
        await client.post("/api/credits/purchases", json=payload)

        response = await client.post("/api/credits/purchases", json=payload)

        assert response.status_code == 409
        assert response.json()["details"]["field"] == "shopify_purchase_id"

    async def test_payment_status(self, client, seeded, shop):
        await client.post(
            "/api/credits/purchases",
            json={
                "shop_name": SHOP_NAME,
                "credit_package_id": seeded["SMALL"]["id"],
                "shopify_charge_id": "charge-1",
            },
        )

        response = await client.post(
            "/api/credits/payments/charge-1/status", json={"status": "cancelled"}
        )

        assert response.status_code == 200
        assert response.json()["payment_status"] == "CANCELLED"
        assert (await client.get(f"/api/credits/shops/{SHOP_NAME}/details")).json()[
            "details"
        ] is None


class TestUsageApi:
    async def test_deduct_without_balance(self, client, shop):
        response = await client.post(
            f"/api/credits/shops/{SHOP_NAME}/deduct", json={"amount": "5"}
        )

        assert response.status_code == 402
        assert response.json()["error"] == "INSUFFICIENT_CREDITS"

    async def test_deduct(self, client, shop, subscription):
        response = await client.post(
            f"/api/credits/shops/{SHOP_NAME}/deduct", json={"amount": "4"}
        )

        assert response.status_code == 200
        assert float(response.json()["credit_balance"]) == 6.0

    async def test_record_usage(self, client, seeded, shop):
        await client.post(
            "/api/credits/purchases",
            json={
                "shop_name": SHOP_NAME,
                "credit_package_id": seeded["SMALL"]["id"],
                "shopify_charge_id": "charge-1",
            },
        )

        response = await client.post(
            f"/api/credits/shops/{SHOP_NAME}/usage", json={"service": "CRAWL_API", "requests": 5}
        )

        assert response.status_code == 200
        assert float(response.json()["credits_charged"]) == 5.0

    async def test_rate_limited_usage(self, client, seeded, shop):
        await client.post(
            "/api/credits/purchases",
            json={
                "shop_name": SHOP_NAME,
                "credit_package_id": seeded["SMALL"]["id"],
                "shopify_charge_id": "charge-1",
            },
        )

        response = await client.post(
            f"/api/credits/shops/{SHOP_NAME}/usage", json={"service": "AI_API", "requests": 11}
        )

        assert response.status_code == 429
        assert response.json()["details"]["window"] == "minute"

    async def test_sweep(self, client, shop):
        response = await client.post(f"/api/credits/shops/{SHOP_NAME}/sweep")

        assert response.status_code == 200
        assert response.json() == {"shop_name": SHOP_NAME, "expired": []}


class TestExpiredApi:
    async def test_inverted_range_is_bad_request(self, client, shop):
        response = await client.get(
            f"/api/credits/shops/{SHOP_NAME}/expired",
            params={"min_credits_used": 10, "max_credits_used": 5},
        )

        assert response.status_code == 400

    async def test_empty_listing(self, client, shop):
        response = await client.get(f"/api/credits/shops/{SHOP_NAME}/expired")

        assert response.status_code == 200
        assert response.json() == {"packages": [], "total": 0}


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] is True
