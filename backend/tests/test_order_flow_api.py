"""
End-to-end order flow over the HTTP API.

Verifies:
- Quotes and orders are priced server-side from the seller's inventory
- Stock is reserved at order time and never oversold
- Seller -> driver -> buyer lifecycle through the role routes
- Optimistic concurrency via expected_version (409)
- Other users' orders look absent (404)
- Admin payment recording and overdue auto-completion
"""

from datetime import timedelta

from conftest import (
    DELIVERY_LOCATION,
    advance_to,
    auth_headers,
    place_order,
    stock_of,
    token_for,
    weights,
)
from marketplace.extensions import db
from marketplace.models import Cylinder, InventoryAddOn, Notification, Order
from marketplace.time_utils import utcnow


def _order_body(seller, **extra):
    body = {
        "seller_id": seller.id,
        "delivery_location": dict(DELIVERY_LOCATION),
        "cylinder_size": "15kg",
        "quantity": 1,
    }
    body.update(extra)
    return body


# =============================================================================
# PRICING AND STOCK
# =============================================================================


class TestOrderCreation:
    def test_quote_matches_inventory_prices(self, client, db_session, seller, inventory, buyer_headers):
        regulator = db_session.query(InventoryAddOn).filter_by(inventory_id=inventory.id).one()
        resp = client.post(
            "/api/buyer/quote",
            json=_order_body(seller, quantity=2, add_ons=[{"add_on_id": regulator.id, "quantity": 1}]),
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        quote = resp.json["quote"]
        assert quote["cylinder_price_cents"] == 450000
        assert quote["security_charges_cents"] == 1000000
        assert quote["delivery_charges_cents"] == 10000
        assert quote["add_ons_total_cents"] == 150000
        assert quote["subtotal_cents"] == 1050000
        assert quote["grand_total_cents"] == 2060000
        # Quoting reserves nothing
        assert stock_of(inventory.id) == 10

    def test_quote_rejects_string_urgent_flag(self, client, db_session, seller, inventory, buyer_headers):
        resp = client.post("/api/buyer/quote", json=_order_body(seller, is_urgent="false"), headers=buyer_headers)
        assert resp.status_code == 400
        assert resp.json["details"] == {"is_urgent": "not a boolean"}

    def test_refill_quote_has_no_deposit(self, client, db_session, buyer, seller, inventory, driver, buyer_headers):
        order = advance_to(place_order(buyer, seller), driver, "completed")
        cylinder = db_session.query(Cylinder).filter_by(origin_order_id=order.id).one()

        resp = client.post(
            "/api/buyer/quote",
            json={"order_type": "refill", "existing_cylinder_id": cylinder.id,
                  "delivery_location": dict(DELIVERY_LOCATION)},
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        quote = resp.json["quote"]
        assert quote["order_type"] == "refill"
        assert quote["seller_id"] == seller.id
        assert quote["cylinder_price_cents"] == 450000
        assert quote["security_charges_cents"] == 0
        assert quote["grand_total_cents"] == 450000 + 10000

    def test_return_quote_is_free_and_shows_refund(self, client, db_session, buyer, seller, inventory, driver,
                                                   buyer_headers):
        order = advance_to(place_order(buyer, seller), driver, "completed")
        cylinder = db_session.query(Cylinder).filter_by(origin_order_id=order.id).one()

        resp = client.post(
            "/api/buyer/quote",
            json={"order_type": "return", "existing_cylinder_id": cylinder.id,
                  "delivery_location": dict(DELIVERY_LOCATION)},
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        quote = resp.json["quote"]
        assert quote["cylinder_price_cents"] == 0
        assert quote["security_charges_cents"] == 0
        assert quote["security_refund_cents"] == 500000
        assert quote["add_ons"] == []

    def test_refill_order_over_api(self, client, db_session, buyer, seller, inventory, driver, buyer_headers):
        order = advance_to(place_order(buyer, seller), driver, "completed")
        cylinder = db_session.query(Cylinder).filter_by(origin_order_id=order.id).one()

        resp = client.post(
            "/api/buyer/orders",
            json={"order_type": "refill", "existing_cylinder_id": cylinder.id,
                  "delivery_location": dict(DELIVERY_LOCATION)},
            headers=buyer_headers,
        )
        assert resp.status_code == 201
        assert resp.json["order"]["status"] == "refill_requested"
        assert resp.json["order"]["pricing"]["security_charges_cents"] == 0

    def test_create_order_reserves_stock_and_snapshots_prices(self, client, db_session, seller, inventory, buyer_headers):
        regulator = db_session.query(InventoryAddOn).filter_by(inventory_id=inventory.id).one()
        resp = client.post(
            "/api/buyer/orders",
            json=_order_body(
                seller,
                quantity=2,
                add_ons=[{"add_on_id": regulator.id, "quantity": 1}],
                grand_total_cents=1,
                cylinder_price_cents=1,
            ),
            headers=buyer_headers,
        )
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["status"] == "pending"
        assert order["version_id"] == 1
        assert order["order_number"].startswith("ORD-")
        assert order["pricing"]["cylinder_price_cents"] == 450000
        assert order["pricing"]["grand_total_cents"] == 2060000
        assert order["pricing"]["add_ons"][0]["title"] == "Regulator"

        assert stock_of(inventory.id) == 8
        db_session.refresh(regulator)
        assert regulator.quantity == 4

    def test_urgent_delivery_adds_fee(self, client, db_session, seller, inventory, buyer_headers):
        resp = client.post("/api/buyer/orders", json=_order_body(seller, is_urgent=True), headers=buyer_headers)
        assert resp.status_code == 201
        pricing = resp.json["order"]["pricing"]
        assert pricing["delivery_charges_cents"] == 20000
        assert pricing["urgent_delivery_fee_cents"] == 10000
        assert pricing["grand_total_cents"] == 450000 + 500000 + 20000 + 10000

    def test_more_than_stock_is_rejected(self, client, db_session, seller, inventory, buyer_headers):
        resp = client.post("/api/buyer/orders", json=_order_body(seller, quantity=11), headers=buyer_headers)
        assert resp.status_code == 409
        assert stock_of(inventory.id) == 10

    def test_last_cylinder_sold_once(self, client, db_session, seller, inventory, buyer_headers):
        body = _order_body(seller, cylinder_size="11.8kg")
        first = client.post("/api/buyer/orders", json=body, headers=buyer_headers)
        second = client.post("/api/buyer/orders", json=body, headers=buyer_headers)
        assert first.status_code == 201
        assert second.status_code == 409
        assert stock_of(inventory.id, "11.8kg") == 0

    def test_unapproved_seller_cannot_receive_orders(self, client, db_session, pending_seller, buyer_headers):
        resp = client.post("/api/buyer/orders", json=_order_body(pending_seller), headers=buyer_headers)
        assert resp.status_code == 409

    def test_missing_delivery_location(self, client, db_session, seller, inventory, buyer_headers):
        body = _order_body(seller)
        del body["delivery_location"]
        resp = client.post("/api/buyer/orders", json=body, headers=buyer_headers)
        assert resp.status_code == 400
        assert resp.json["details"] == {"delivery_location": "required"}

    def test_unknown_cylinder_size(self, client, db_session, seller, inventory, buyer_headers):
        resp = client.post("/api/buyer/orders", json=_order_body(seller, cylinder_size="50kg"), headers=buyer_headers)
        assert resp.status_code == 400


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:
    def test_full_flow(self, client, db_session, buyer, seller, inventory, driver,
                       buyer_headers, seller_headers, driver_headers):
        created = client.post("/api/buyer/orders", json=_order_body(seller), headers=buyer_headers)
        order_id = created.json["order"]["id"]

        # Seller marks ready; the zone driver is assigned automatically
        ready = client.post(f"/api/seller/orders/{order_id}/ready", headers=seller_headers)
        assert ready.status_code == 200
        assert ready.json["driver_assigned"] is True
        assert ready.json["order"]["status"] == "assigned"
        assert ready.json["order"]["driver_id"] == driver.id

        # Accepting without weights changes nothing
        resp = client.post(f"/api/driver/orders/{order_id}/accept", json={}, headers=driver_headers)
        assert resp.status_code == 400
        detail = client.get(f"/api/driver/orders/{order_id}", headers=driver_headers)
        assert detail.json["order"]["status"] == "assigned"
        assert detail.json["allowed_events"] == ["accept"]

        resp = client.post(
            f"/api/driver/orders/{order_id}/accept",
            json={"cylinders": weights(1), "expected_version": detail.json["order"]["version_id"]},
            headers=driver_headers,
        )
        assert resp.status_code == 200
        qr_code = resp.json["order"]["qr_code"]
        assert resp.json["order"]["status"] == "pickup_ready"
        assert len(resp.json["order"]["verifications"]) == 1

        resp = client.post(f"/api/driver/orders/{order_id}/qr-printed", headers=driver_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["qr_code_printed_at"] is not None

        resp = client.post(f"/api/driver/orders/{order_id}/pickup", json={"qr_code": qr_code}, headers=driver_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "in_transit"

        resp = client.post("/api/driver/location", json={"latitude": 31.521, "longitude": 74.359}, headers=driver_headers)
        assert resp.status_code == 200
        assert resp.json["tracked_orders"] == [created.json["order"]["order_number"]]

        resp = client.post(f"/api/driver/orders/{order_id}/deliver", json={"qr_code": qr_code}, headers=driver_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "delivered"

        resp = client.post(f"/api/buyer/orders/{order_id}/confirm", json={}, headers=buyer_headers)
        assert resp.status_code == 200
        completed = resp.json["order"]
        assert completed["status"] == "completed"
        assert completed["invoice"]["number"].startswith("INV-")
        assert completed["payment"]["status"] == "completed"

        resp = client.post(
            f"/api/buyer/orders/{order_id}/rate",
            json={"stars": 5, "description": "On time"},
            headers=buyer_headers,
        )
        assert resp.status_code == 201
        ratings = client.get("/api/seller/ratings", headers=seller_headers)
        assert ratings.json["average"] == 5.0
        assert ratings.json["count"] == 1

        cylinders = client.get("/api/buyer/cylinders", headers=buyer_headers)
        assert cylinders.json["count"] == 1
        assert cylinders.json["cylinders"][0]["serial_number"] == "SN-10000"

        history = client.get(f"/api/buyer/orders/{order_id}", headers=buyer_headers).json["order"]["status_history"]
        assert [h["status"] for h in history] == [
            "pending", "assigned", "pickup_ready", "in_transit", "delivered", "completed",
        ]

    def test_stale_version_returns_conflict(self, client, db_session, buyer, seller, inventory, driver, driver_headers):
        order = advance_to(place_order(buyer, seller), driver, "assigned")
        resp = client.post(
            f"/api/driver/orders/{order.id}/accept",
            json={"cylinders": weights(1), "expected_version": 1},
            headers=driver_headers,
        )
        assert resp.status_code == 409
        assert resp.json["kind"] == "conflict"
        assert db.session.get(Order, order.id, populate_existing=True).status == "assigned"

    def test_illegal_transition_returns_409(self, client, db_session, buyer, seller, inventory, buyer_headers):
        order = place_order(buyer, seller)
        resp = client.post(f"/api/buyer/orders/{order.id}/confirm", json={}, headers=buyer_headers)
        assert resp.status_code == 409
        assert resp.json["kind"] == "invalid_transition"

    def test_rating_requires_completed_order(self, client, db_session, buyer, seller, inventory, buyer_headers):
        order = place_order(buyer, seller)
        resp = client.post(f"/api/buyer/orders/{order.id}/rate", json={"stars": 4}, headers=buyer_headers)
        assert resp.status_code == 409

    def test_buyer_cancels_pending_order(self, client, db_session, buyer, seller, inventory, buyer_headers):
        order = place_order(buyer, seller, quantity=3)
        resp = client.post(
            f"/api/buyer/orders/{order.id}/cancel",
            json={"reason": "Found a closer seller"},
            headers=buyer_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "cancelled"
        assert stock_of(inventory.id) == 10


# =============================================================================
# VISIBILITY
# =============================================================================


class TestVisibility:
    def test_other_buyer_sees_404(self, client, db_session, buyer, other_buyer, seller, inventory):
        order = place_order(buyer, seller)
        headers = auth_headers(token_for(other_buyer))
        assert client.get(f"/api/buyer/orders/{order.id}", headers=headers).status_code == 404
        assert client.post(f"/api/buyer/orders/{order.id}/cancel", json={}, headers=headers).status_code == 404
        assert db.session.get(Order, order.id, populate_existing=True).status == "pending"

    def test_unassigned_driver_sees_404(self, client, db_session, buyer, seller, inventory, driver, other_driver):
        order = advance_to(place_order(buyer, seller), driver, "assigned")
        headers = auth_headers(token_for(other_driver))
        resp = client.post(f"/api/driver/orders/{order.id}/accept", json={"cylinders": weights(1)}, headers=headers)
        assert resp.status_code == 404

    def test_lists_are_scoped(self, client, db_session, buyer, other_buyer, seller, inventory, buyer_headers, seller_headers):
        mine = place_order(buyer, seller)
        place_order(other_buyer, seller)

        resp = client.get("/api/buyer/orders", headers=buyer_headers)
        assert [o["id"] for o in resp.json["orders"]] == [mine.id]

        resp = client.get("/api/seller/orders", headers=seller_headers)
        assert resp.json["count"] == 2

        resp = client.get("/api/seller/orders?status=cancelled", headers=seller_headers)
        assert resp.json["count"] == 0


# =============================================================================
# ADMIN
# =============================================================================


class TestAdminOrders:
    def test_assign_driver_manually(self, client, db_session, buyer, seller, inventory, other_driver, admin_headers):
        order = place_order(buyer, seller)
        resp = client.post(
            f"/api/admin/orders/{order.id}/assign",
            json={"driver_id": other_driver.id, "expected_version": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order"]["driver_id"] == other_driver.id

    def test_assign_offline_driver_rejected(self, client, db_session, buyer, seller, inventory, other_driver, admin_headers):
        other_driver.driver_status = "offline"
        db_session.commit()
        order = place_order(buyer, seller)
        resp = client.post(
            f"/api/admin/orders/{order.id}/assign", json={"driver_id": other_driver.id}, headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_record_payment(self, client, db_session, buyer, seller, inventory, admin_headers):
        order = place_order(buyer, seller, payment_method="jazzcash")
        resp = client.post(
            f"/api/admin/orders/{order.id}/payment",
            json={"payment_status": "completed", "transaction_id": "JC-889900"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["order"]["payment"]["status"] == "completed"
        assert resp.json["order"]["payment"]["transaction_id"] == "JC-889900"
        assert db_session.query(Notification).filter_by(
            user_id=buyer.id, notification_type="payment_success",
        ).count() == 1

        again = client.post(
            f"/api/admin/orders/{order.id}/payment", json={"payment_status": "completed"}, headers=admin_headers,
        )
        assert again.status_code == 409

    def test_auto_complete_overdue_deliveries(self, client, db_session, buyer, seller, inventory, driver, admin_headers):
        overdue = advance_to(place_order(buyer, seller), driver, "delivered")
        overdue.delivery_scanned_at = utcnow() - timedelta(hours=49)
        db_session.commit()
        fresh = advance_to(place_order(buyer, seller), driver, "delivered")

        resp = client.post("/api/admin/orders/auto-complete", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["completed"] == [overdue.order_number]
        assert resp.json["failed"] == []
        assert db.session.get(Order, fresh.id, populate_existing=True).status == "delivered"


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class TestNotifications:
    def test_list_and_mark_read(self, client, db_session, buyer, seller, inventory, driver, buyer_headers):
        advance_to(place_order(buyer, seller), driver, "in_transit")

        resp = client.get("/api/notifications?unread=true", headers=buyer_headers)
        assert resp.status_code == 200
        unread = resp.json["count"]
        assert unread == 3

        first_id = resp.json["notifications"][0]["id"]
        resp = client.post("/api/notifications/read", json={"ids": [first_id]}, headers=buyer_headers)
        assert resp.json["updated"] == 1

        resp = client.post("/api/notifications/read", json={}, headers=buyer_headers)
        assert resp.json["updated"] == unread - 1
        assert client.get("/api/notifications?unread=true", headers=buyer_headers).json["count"] == 0

    def test_ids_must_be_integers(self, client, db_session, buyer_headers):
        resp = client.post("/api/notifications/read", json={"ids": ["all"]}, headers=buyer_headers)
        assert resp.status_code == 400


# =============================================================================
# ADDRESSES
# =============================================================================


class TestAddresses:
    def test_default_address_moves(self, client, db_session, buyer, buyer_headers):
        home = client.post(
            "/api/buyer/addresses",
            json={"address": "House 12, Gulberg", "latitude": 31.52, "longitude": 74.36},
            headers=buyer_headers,
        ).json["address"]
        assert home["is_default"] is True

        office = client.post(
            "/api/buyer/addresses",
            json={"label": "Office", "address": "Plot 5, DHA", "latitude": 31.47, "longitude": 74.41, "is_default": True},
            headers=buyer_headers,
        ).json["address"]
        assert office["is_default"] is True

        profile = client.get("/api/auth/me", headers=buyer_headers).json["user"]["profile"]
        assert {a["label"]: a["is_default"] for a in profile["addresses"]} == {"Home": False, "Office": True}

        resp = client.delete(f"/api/buyer/addresses/{office['id']}", headers=buyer_headers)
        assert resp.status_code == 200
        profile = client.get("/api/auth/me", headers=buyer_headers).json["user"]["profile"]
        assert [(a["label"], a["is_default"]) for a in profile["addresses"]] == [("Home", True)]

    def test_invalid_coordinates(self, client, db_session, buyer_headers):
        resp = client.post(
            "/api/buyer/addresses",
            json={"address": "Nowhere", "latitude": 95, "longitude": 74.36},
            headers=buyer_headers,
        )
        assert resp.status_code == 400
