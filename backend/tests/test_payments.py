"""
Payment timeline tests.

Verifies:
- Orders write sale, deposit, delivery fee and refund entries as they move
- Cancellation cancels pending entries and owes refunds where money moved
- The seller timeline hides deposits and driver fees except on returns
- Admin filtering, summaries and clearing of pending entries
"""

from conftest import DELIVERY_LOCATION, SECURITY_15KG_CENTS, advance_to, auth_headers, place_order, token_for
from marketplace.extensions import db
from marketplace.models import Cylinder, PaymentEntry
from marketplace.services import order_service
from marketplace.services.order_state_machine import SYSTEM, apply_transition
from marketplace.time_utils import utcnow


def _entries(order_id):
    return (
        db.session.query(PaymentEntry)
        .filter_by(order_id=order_id)
        .order_by(PaymentEntry.id)
        .all()
    )


def _summary(order_id):
    return [(e.entry_type, e.amount_cents, e.status) for e in _entries(order_id)]


def _return_order(buyer, seller, driver):
    first = advance_to(place_order(buyer, seller), driver, "completed")
    cylinder = db.session.query(Cylinder).filter_by(origin_order_id=first.id).one()
    order = order_service.create_order(buyer, {
        "order_type": "return",
        "existing_cylinder_id": cylinder.id,
        "delivery_location": dict(DELIVERY_LOCATION),
    })
    return order, cylinder


# =============================================================================
# LEDGER ENTRIES
# =============================================================================


class TestLedgerEntries:
    def test_new_order_records_sale_and_deposit(self, db_session, buyer, seller, inventory):
        order = place_order(buyer, seller)

        assert _summary(order.id) == [
            ("sale", 450000, "pending"),
            ("security_deposit", SECURITY_15KG_CENTS, "pending"),
        ]
        sale = _entries(order.id)[0]
        assert sale.payee_id == seller.id
        assert sale.liability_type == "revenue"
        assert sale.seller_id == seller.id

    def test_completion_owes_driver_the_delivery_fee(self, db_session, buyer, seller, inventory, driver):
        order = advance_to(place_order(buyer, seller, is_urgent=True), driver, "completed")

        fee = _entries(order.id)[-1]
        assert fee.entry_type == "delivery_fee"
        assert fee.payee_id == driver.id
        assert fee.amount_cents == 20000 + 10000
        assert fee.liability_type == "expense"

    def test_unpaid_cancel_cancels_pending_entries(self, db_session, buyer, seller, inventory):
        order = place_order(buyer, seller)
        apply_transition(order.id, "cancel", buyer)

        assert _summary(order.id) == [
            ("sale", 450000, "cancelled"),
            ("security_deposit", SECURITY_15KG_CENTS, "cancelled"),
        ]

    def test_paid_cancel_owes_buyer_a_refund(self, db_session, buyer, seller, inventory):
        order = place_order(buyer, seller, payment_method="card")
        order.payment_status = "completed"
        db_session.commit()

        apply_transition(order.id, "cancel", buyer)

        refund = _entries(order.id)[-1]
        assert refund.entry_type == "refund"
        assert refund.status == "pending"
        assert refund.payee_id == buyer.id
        assert refund.amount_cents == 450000 + SECURITY_15KG_CENTS + 10000

    def test_return_order_records_deposit_refund_and_pickup_fee(self, db_session, buyer, seller, inventory, driver):
        order, cylinder = _return_order(buyer, seller, driver)
        assert _summary(order.id) == [("refund", SECURITY_15KG_CENTS, "pending")]

        apply_transition(order.id, "assign_driver", SYSTEM, {"driver_id": driver.id})
        apply_transition(order.id, "confirm_return", driver, {"cylinder_qr_code": cylinder.qr_code})

        assert _summary(order.id) == [
            ("refund", SECURITY_15KG_CENTS, "pending"),
            ("delivery_fee", 10000, "pending"),
        ]

    def test_cancelled_return_request_drops_the_refund(self, db_session, buyer, seller, inventory, driver):
        order, _ = _return_order(buyer, seller, driver)
        apply_transition(order.id, "cancel", buyer)
        assert _summary(order.id) == [("refund", SECURITY_15KG_CENTS, "cancelled")]

    def test_cancel_after_dispatch_settles_on_confirm_return(self, db_session, buyer, seller, inventory, driver):
        order = advance_to(place_order(buyer, seller), driver, "in_transit")
        order = apply_transition(order.id, "cancel", buyer)
        assert [e.status for e in _entries(order.id)] == ["pending", "pending"]

        apply_transition(order.id, "confirm_return", driver, {"qr_code": order.qr_code})

        assert _summary(order.id) == [
            ("sale", 450000, "cancelled"),
            ("security_deposit", SECURITY_15KG_CENTS, "cancelled"),
            ("delivery_fee", 10000, "pending"),
        ]


# =============================================================================
# SELLER TIMELINE
# =============================================================================


class TestSellerTimeline:
    def test_deposits_and_driver_fees_hidden_on_sales(self, client, db_session, buyer, seller, inventory, driver,
                                                      seller_headers):
        advance_to(place_order(buyer, seller), driver, "completed")

        resp = client.get("/api/seller/payments", headers=seller_headers)
        assert resp.status_code == 200
        assert [p["type"] for p in resp.json["payments"]] == ["sale"]
        assert resp.json["payments"][0]["person"]["name"] == "Lahore Gas Co"

    def test_return_orders_show_refund_and_driver_fee(self, client, db_session, buyer, seller, inventory, driver,
                                                      seller_headers):
        order, cylinder = _return_order(buyer, seller, driver)
        apply_transition(order.id, "assign_driver", SYSTEM, {"driver_id": driver.id})
        apply_transition(order.id, "confirm_return", driver, {"cylinder_qr_code": cylinder.qr_code})

        resp = client.get(f"/api/seller/payments?search={order.order_number}", headers=seller_headers)
        assert resp.status_code == 200
        payments = resp.json["payments"]
        assert sorted(p["type"] for p in payments) == ["delivery_fee", "refund"]
        refund = next(p for p in payments if p["type"] == "refund")
        assert refund["person"]["name"] == "Ayesha Khan"

        summary = resp.json["summary"]
        assert summary["amount_to_refund_cents"] == SECURITY_15KG_CENTS
        assert summary["amount_to_drivers_cents"] == 10000
        assert summary["total_pending_cents"] == SECURITY_15KG_CENTS + 10000
        assert summary["pending_count"] == 2
        assert summary["cleared_count"] == 0

    def test_other_sellers_entries_are_not_listed(self, client, db_session, buyer, seller, pending_seller, inventory):
        place_order(buyer, seller)
        pending_seller.seller_status = "approved"
        db_session.commit()

        resp = client.get("/api/seller/payments", headers=auth_headers(token_for(pending_seller)))
        assert resp.status_code == 200
        assert resp.json["payments"] == []
        assert resp.json["pagination"]["total"] == 0

    def test_filters(self, client, db_session, buyer, seller, inventory, seller_headers):
        place_order(buyer, seller)
        today = utcnow().date().isoformat()

        resp = client.get(f"/api/seller/payments?date_from={today}&date_to={today}&type=sale", headers=seller_headers)
        assert [p["type"] for p in resp.json["payments"]] == ["sale"]

        resp = client.get("/api/seller/payments?status=completed", headers=seller_headers)
        assert resp.json["payments"] == []

        resp = client.get("/api/seller/payments?search=ORD-none", headers=seller_headers)
        assert resp.json["payments"] == []

    def test_bad_filters_are_rejected(self, client, db_session, seller, seller_headers):
        resp = client.get("/api/seller/payments?date_from=18-10-2026", headers=seller_headers)
        assert resp.status_code == 400
        assert resp.json["details"] == {"date_from": "invalid date"}

        resp = client.get("/api/seller/payments?type=tip", headers=seller_headers)
        assert resp.status_code == 400


# =============================================================================
# ADMIN TIMELINE AND CLEARING
# =============================================================================


class TestAdminPayments:
    def test_admin_sees_every_entry(self, client, db_session, buyer, seller, inventory, driver, admin_headers):
        order = advance_to(place_order(buyer, seller), driver, "completed")

        resp = client.get(f"/api/admin/payments?seller_id={seller.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert sorted(p["type"] for p in resp.json["payments"]) == ["delivery_fee", "sale", "security_deposit"]
        assert all(p["order_number"] == order.order_number for p in resp.json["payments"])

        resp = client.get("/api/admin/payments?type=delivery_fee&limit=1", headers=admin_headers)
        assert resp.json["pagination"] == {"page": 1, "limit": 1, "total": 1}
        assert resp.json["payments"][0]["person"]["role"] == "driver"

    def test_clear_pending_entry(self, client, db_session, buyer, seller, inventory, driver, admin, admin_headers):
        order = advance_to(place_order(buyer, seller), driver, "completed")
        fee = _entries(order.id)[-1]

        resp = client.post(
            f"/api/admin/payments/{fee.id}/clear",
            json={"reference_id": "TXN-7781", "notes": "Paid in cash"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        payment = resp.json["payment"]
        assert payment["status"] == "completed"
        assert payment["reference_id"] == "TXN-7781"
        assert payment["cause"] == "Paid in cash"
        assert payment["processed_by_user_id"] == admin.id
        assert payment["processed_at"] is not None

        again = client.post(f"/api/admin/payments/{fee.id}/clear", json={}, headers=admin_headers)
        assert again.status_code == 409

        summary = client.get("/api/admin/payments", headers=admin_headers).json["summary"]
        assert summary["cleared_amount_cents"] == 10000
        assert summary["cleared_count"] == 1

    def test_cancelled_entry_cannot_be_cleared(self, client, db_session, buyer, seller, inventory, admin_headers):
        order = place_order(buyer, seller)
        apply_transition(order.id, "cancel", buyer)
        sale = _entries(order.id)[0]

        resp = client.post(f"/api/admin/payments/{sale.id}/clear", json={}, headers=admin_headers)
        assert resp.status_code == 409

    def test_unknown_entry(self, client, db_session, admin_headers):
        resp = client.post("/api/admin/payments/999/clear", json={}, headers=admin_headers)
        assert resp.status_code == 404
