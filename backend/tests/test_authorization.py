"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Each role is confined to its own routes (403)
- Pending sellers can read their profile and nothing else
- Admin approval opens the seller routes
"""

import pytest

from conftest import auth_headers, token_for


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/buyer/sellers/nearby"),
            ("POST", "/api/buyer/quote"),
            ("POST", "/api/buyer/orders"),
            ("GET", "/api/buyer/orders"),
            ("POST", "/api/buyer/orders/1/confirm"),
            ("GET", "/api/seller/profile"),
            ("GET", "/api/seller/warehouses"),
            ("PUT", "/api/seller/warehouses/1/inventory"),
            ("POST", "/api/seller/orders/1/ready"),
            ("PATCH", "/api/seller/profile"),
            ("GET", "/api/seller/dashboard/stats"),
            ("GET", "/api/seller/payments"),
            ("PUT", "/api/seller/update-city-price"),
            ("PUT", "/api/buyer/cylinders/1"),
            ("GET", "/api/driver/orders"),
            ("POST", "/api/driver/orders/1/accept"),
            ("POST", "/api/driver/location"),
            ("GET", "/api/admin/sellers"),
            ("POST", "/api/admin/drivers"),
            ("POST", "/api/admin/orders/auto-complete"),
            ("GET", "/api/admin/dashboard/widgets"),
            ("GET", "/api/admin/payments"),
            ("POST", "/api/admin/payments/1/clear"),
            ("GET", "/api/notifications"),
            ("GET", "/api/realtime/rooms"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401
        assert resp.json["kind"] == "auth_error"


# =============================================================================
# ROLE BOUNDARIES (403)
# =============================================================================


class TestRoleBoundaries:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/buyer/orders"),
            ("GET", "/api/seller/warehouses"),
            ("GET", "/api/driver/orders"),
            ("GET", "/api/admin/sellers"),
            ("GET", "/api/seller/cylinders/map"),
            ("GET", "/api/admin/dashboard/widgets"),
            ("GET", "/api/admin/payments"),
        ],
    )
    def test_roles_are_confined(self, client, db_session, buyer, seller, driver, method, path):
        owners = {"buyer": buyer, "seller": seller, "driver": driver}
        area = path.split("/")[2]
        for role, user in owners.items():
            if role == area:
                continue
            resp = getattr(client, method.lower())(path, json={}, headers=auth_headers(token_for(user)))
            assert resp.status_code == 403, f"{role} {method} {path} returned {resp.status_code}"
            assert resp.json["kind"] == "permission_denied"

    def test_buyer_cannot_create_driver(self, client, db_session, buyer_headers):
        resp = client.post(
            "/api/admin/drivers",
            json={"phone_number": "03005550000", "full_name": "X", "vehicle_number": "X-1", "license_number": "X"},
            headers=buyer_headers,
        )
        assert resp.status_code == 403

    def test_admin_can_search_sellers(self, client, db_session, inventory, admin_headers):
        resp = client.get("/api/buyer/sellers/nearby?latitude=31.52&longitude=74.36", headers=admin_headers)
        assert resp.status_code == 200

    def test_admin_creates_driver(self, client, db_session, admin_headers):
        resp = client.post(
            "/api/admin/drivers",
            json={
                "phone_number": "03005550000",
                "full_name": "Imran Shah",
                "vehicle_number": "lec-4321",
                "license_number": "DL-LHR-90",
                "zone": {"name": "Johar Town", "latitude": 31.47, "longitude": 74.27, "radius_km": 8},
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        profile = resp.json["driver"]["profile"]
        assert profile["vehicle_number"] == "LEC-4321"
        assert profile["zone"]["radius_km"] == 8


# =============================================================================
# SELLER APPROVAL GATE
# =============================================================================


class TestSellerApproval:
    def test_pending_seller_reads_profile_only(self, client, db_session, pending_seller):
        headers = auth_headers(token_for(pending_seller))
        resp = client.get("/api/seller/profile", headers=headers)
        assert resp.status_code == 200
        assert resp.json["seller"]["profile"]["seller_status"] == "pending"

        resp = client.get("/api/seller/orders", headers=headers)
        assert resp.status_code == 403
        assert resp.json["seller_status"] == "pending"

    def test_approval_opens_seller_routes(self, client, db_session, pending_seller, admin_headers):
        headers = auth_headers(token_for(pending_seller))
        resp = client.post(
            f"/api/admin/sellers/{pending_seller.id}/status",
            json={"status": "approved"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["seller"]["profile"]["seller_status"] == "approved"
        assert client.get("/api/seller/orders", headers=headers).status_code == 200

    def test_rejection_requires_reason(self, client, db_session, pending_seller, admin_headers):
        resp = client.post(
            f"/api/admin/sellers/{pending_seller.id}/status",
            json={"status": "rejected"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            f"/api/admin/sellers/{pending_seller.id}/status",
            json={"status": "rejected", "reason": "License expired"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["seller"]["profile"]["rejection_reason"] == "License expired"

    def test_pending_list(self, client, db_session, seller, pending_seller, admin_headers):
        resp = client.get("/api/admin/sellers?status=pending", headers=admin_headers)
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json["sellers"]] == [pending_seller.id]

    def test_admin_cannot_deactivate_self(self, client, db_session, admin, admin_headers):
        resp = client.patch(f"/api/admin/users/{admin.id}/active", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 400
