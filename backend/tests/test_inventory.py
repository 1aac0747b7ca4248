"""
Warehouse and inventory tests.

Verifies:
- Sellers manage warehouses and per-warehouse stock through the API
- total_inventory is derived from stock rows, never taken from input
- Stock reservation refuses to go below zero and release restores it
- Add-on discounts are applied when pricing an order
"""

import pytest

from conftest import auth_headers, stock_of, token_for
from marketplace.errors import ConflictError
from marketplace.extensions import db
from marketplace.models import Inventory, InventoryAddOn, Seller
from marketplace.services import inventory_service
from marketplace.time_utils import utcnow


WAREHOUSE_BODY = {
    "name": "Township Depot",
    "city": "Lahore",
    "address": "Block 3, Township",
    "latitude": 31.45,
    "longitude": 74.30,
}


def _reload(inventory_id):
    return db.session.get(Inventory, inventory_id, populate_existing=True)


# =============================================================================
# WAREHOUSES
# =============================================================================


class TestWarehouses:
    def test_create_and_list(self, client, db_session, seller, seller_headers):
        resp = client.post("/api/seller/warehouses", json=WAREHOUSE_BODY, headers=seller_headers)
        assert resp.status_code == 201
        assert resp.json["warehouse"]["seller_id"] == seller.id

        listed = client.get("/api/seller/warehouses", headers=seller_headers)
        assert [w["name"] for w in listed.json["warehouses"]] == ["Township Depot"]

    def test_missing_fields(self, client, db_session, seller_headers):
        resp = client.post("/api/seller/warehouses", json={"name": "Depot"}, headers=seller_headers)
        assert resp.status_code == 400
        assert set(resp.json["details"]) == {"address", "city", "latitude", "longitude"}

    def test_unknown_field_rejected(self, client, db_session, seller_headers):
        resp = client.post(
            "/api/seller/warehouses", json={**WAREHOUSE_BODY, "seller_id": 999}, headers=seller_headers,
        )
        assert resp.status_code == 400
        assert resp.json["details"] == {"seller_id": "not writable"}

    def test_coordinates_validated(self, client, db_session, seller_headers):
        resp = client.post(
            "/api/seller/warehouses", json={**WAREHOUSE_BODY, "latitude": 123}, headers=seller_headers,
        )
        assert resp.status_code == 400

    def test_city_change_follows_to_inventory(self, client, db_session, warehouse, inventory, seller_headers):
        resp = client.patch(f"/api/seller/warehouses/{warehouse.id}", json={"city": "Kasur"}, headers=seller_headers)
        assert resp.status_code == 200
        assert _reload(inventory.id).city == "Kasur"

    def test_deactivate_hides_from_list(self, client, db_session, warehouse, seller_headers):
        resp = client.delete(f"/api/seller/warehouses/{warehouse.id}", headers=seller_headers)
        assert resp.status_code == 200
        assert client.get("/api/seller/warehouses", headers=seller_headers).json["count"] == 0
        listed = client.get("/api/seller/warehouses?include_inactive=true", headers=seller_headers)
        assert listed.json["count"] == 1

    def test_other_sellers_warehouse(self, client, db_session, warehouse):
        rival = Seller(
            phone_number="+923000000009",
            business_name="Rival Gas",
            license_number="LPG-LHR-099",
            seller_status="approved",
            approved_at=utcnow(),
        )
        db_session.add(rival)
        db_session.commit()
        headers = auth_headers(token_for(rival))

        resp = client.patch(f"/api/seller/warehouses/{warehouse.id}", json={"name": "Mine"}, headers=headers)
        assert resp.status_code == 403
        resp = client.put(
            f"/api/seller/warehouses/{warehouse.id}/inventory",
            json={"price_per_kg_cents": 1},
            headers=headers,
        )
        assert resp.status_code == 403


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventory:
    def test_upsert_creates_inventory(self, client, db_session, seller, warehouse, seller_headers):
        resp = client.put(
            f"/api/seller/warehouses/{warehouse.id}/inventory",
            json={
                "price_per_kg_cents": 28000,
                "total_inventory": 999,
                "cylinders": {
                    "15kg": {"quantity": 4, "security_price_cents": 450000},
                    "6kg": {"quantity": 3},
                },
                "add_ons": [{"title": "Pipe", "price_cents": 50000, "quantity": 10}],
            },
            headers=seller_headers,
        )
        assert resp.status_code == 200
        inventory = resp.json["inventory"]
        assert inventory["total_inventory"] == 7
        assert inventory["city"] == "Lahore"
        assert inventory["cylinders"]["15kg"] == {"quantity": 4, "security_price_cents": 450000}
        assert [a["title"] for a in inventory["add_ons"]] == ["Pipe"]

    def test_new_inventory_requires_price(self, client, db_session, warehouse, seller_headers):
        url = f"/api/seller/warehouses/{warehouse.id}/inventory"
        resp = client.put(url, json={"cylinders": {"15kg": {"quantity": 1}}}, headers=seller_headers)
        assert resp.status_code == 400
        assert db_session.query(Inventory).count() == 0

        # The failed attempt must not leave the write lock behind
        resp = client.put(url, json={"price_per_kg_cents": 100}, headers=seller_headers)
        assert resp.status_code == 200

    def test_upsert_replaces_add_ons(self, client, db_session, warehouse, inventory, seller_headers):
        resp = client.put(
            f"/api/seller/warehouses/{warehouse.id}/inventory",
            json={"add_ons": [{"title": "Stove", "price_cents": 900000, "discount_percent": 10, "quantity": 2}]},
            headers=seller_headers,
        )
        assert resp.status_code == 200
        assert [a["title"] for a in resp.json["inventory"]["add_ons"]] == ["Stove"]
        # Untouched sizes keep their stock
        assert resp.json["inventory"]["cylinders"]["15kg"]["quantity"] == 10

    @pytest.mark.parametrize(
        "body",
        [
            {"cylinders": {"50kg": {"quantity": 1}}},
            {"cylinders": {"15kg": {"quantity": -1}}},
            {"price_per_kg_cents": -5},
            {"add_ons": [{"price_cents": 100}]},
            {"add_ons": [{"title": "Pipe", "price_cents": 100, "discount_percent": 150}]},
        ],
    )
    def test_invalid_payloads(self, client, db_session, warehouse, inventory, seller_headers, body):
        resp = client.put(f"/api/seller/warehouses/{warehouse.id}/inventory", json=body, headers=seller_headers)
        assert resp.status_code == 400

    def test_set_stock_updates_total(self, client, db_session, inventory, seller_headers):
        assert _reload(inventory.id).total_inventory == 11
        resp = client.patch(
            f"/api/seller/inventory/{inventory.id}/stock",
            json={"cylinder_size": "15kg", "quantity": 3},
            headers=seller_headers,
        )
        assert resp.status_code == 200
        assert resp.json["inventory"]["total_inventory"] == 4

    def test_set_stock_adds_new_size(self, client, db_session, inventory, seller_headers):
        resp = client.patch(
            f"/api/seller/inventory/{inventory.id}/stock",
            json={"cylinder_size": "4.5kg", "quantity": 6, "security_price_cents": 150000},
            headers=seller_headers,
        )
        assert resp.status_code == 200
        assert resp.json["inventory"]["cylinders"]["4.5kg"]["quantity"] == 6

    def test_set_stock_rejects_negative(self, client, db_session, inventory, seller_headers):
        resp = client.patch(
            f"/api/seller/inventory/{inventory.id}/stock",
            json={"cylinder_size": "15kg", "quantity": -2},
            headers=seller_headers,
        )
        assert resp.status_code == 400
        assert stock_of(inventory.id) == 10


# =============================================================================
# RESERVATION
# =============================================================================


class TestReservation:
    def test_reserve_and_release(self, db_session, inventory):
        inventory_service.reserve_stock(inventory.id, "15kg", 4)
        db_session.commit()
        assert stock_of(inventory.id) == 6
        assert _reload(inventory.id).issued_cylinders == 4
        assert _reload(inventory.id).total_inventory == 7

        inventory_service.release_stock(inventory.id, "15kg", 4)
        db_session.commit()
        assert stock_of(inventory.id) == 10
        assert _reload(inventory.id).issued_cylinders == 0

    def test_cannot_reserve_more_than_stock(self, db_session, inventory):
        with pytest.raises(ConflictError) as exc:
            inventory_service.reserve_stock(inventory.id, "15kg", 11)
        db_session.rollback()
        assert exc.value.details["available"] == 10
        assert stock_of(inventory.id) == 10

    def test_release_unknown_size_creates_row(self, db_session, inventory):
        inventory_service.release_stock(inventory.id, "6kg", 2)
        db_session.commit()
        assert stock_of(inventory.id, "6kg") == 2


# =============================================================================
# ADD-ON PRICING
# =============================================================================


class TestAddOnPricing:
    def test_discount_applied_to_snapshot(self, client, db_session, seller, inventory, buyer_headers):
        regulator = db_session.query(InventoryAddOn).filter_by(inventory_id=inventory.id).one()
        regulator.discount_percent = 10
        db_session.commit()

        resp = client.post(
            "/api/buyer/quote",
            json={
                "seller_id": seller.id,
                "delivery_location": {"address": "Gulberg", "latitude": 31.52, "longitude": 74.36},
                "cylinder_size": "15kg",
                "add_ons": [{"add_on_id": regulator.id, "quantity": 2}],
            },
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["quote"]["add_ons"][0]["price_cents"] == 135000
        assert resp.json["quote"]["add_ons_total_cents"] == 270000

    def test_add_on_stock_checked(self, client, db_session, seller, inventory, buyer_headers):
        regulator = db_session.query(InventoryAddOn).filter_by(inventory_id=inventory.id).one()
        resp = client.post(
            "/api/buyer/orders",
            json={
                "seller_id": seller.id,
                "delivery_location": {"address": "Gulberg", "latitude": 31.52, "longitude": 74.36},
                "cylinder_size": "15kg",
                "add_ons": [{"add_on_id": regulator.id, "quantity": 6}],
            },
            headers=buyer_headers,
        )
        assert resp.status_code == 409
        assert stock_of(inventory.id) == 10

    def test_unknown_add_on(self, client, db_session, seller, inventory, buyer_headers):
        resp = client.post(
            "/api/buyer/quote",
            json={
                "seller_id": seller.id,
                "delivery_location": {"address": "Gulberg", "latitude": 31.52, "longitude": 74.36},
                "cylinder_size": "15kg",
                "add_ons": [{"add_on_id": 99999}],
            },
            headers=buyer_headers,
        )
        assert resp.status_code == 404
