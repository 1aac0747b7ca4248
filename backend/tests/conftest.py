"""
Pytest fixtures for marketplace backend tests.

Provides the test database, one user per role, a stocked warehouse in
Lahore, bearer tokens, and helpers for placing and advancing orders.
"""

import pytest

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import (
    Admin,
    Buyer,
    Driver,
    Inventory,
    InventoryAddOn,
    InventoryStock,
    Seller,
    Warehouse,
)
from marketplace.services import order_service, session_service
from marketplace.services.order_state_machine import SYSTEM, apply_transition
from marketplace.time_utils import utcnow


WAREHOUSE_LAT = 31.5204
WAREHOUSE_LNG = 74.3587

# Delivery point ~130 m from the warehouse
DELIVERY_LOCATION = {"address": "House 12, Street 4, Gulberg", "latitude": 31.52, "longitude": 74.36}

PRICE_PER_KG_CENTS = 30000
SECURITY_15KG_CENTS = 500000


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'OTP_DEBUG_ECHO': True,
        'ORDER_COMPLETION_POLICY': 'buyer_confirmation',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def broadcaster(app):
    return app.extensions["broadcaster"]


# =============================================================================
# Users
# =============================================================================

@pytest.fixture(scope='function')
def admin(db_session):
    user = Admin(phone_number="+923000000001", full_name="Ops Admin", is_verified=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def seller(db_session):
    """Approved seller."""
    user = Seller(
        phone_number="+923000000002",
        business_name="Lahore Gas Co",
        license_number="LPG-LHR-001",
        seller_status="approved",
        approved_at=utcnow(),
        is_verified=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def pending_seller(db_session):
    user = Seller(
        phone_number="+923000000005",
        business_name="New Gas Traders",
        license_number="LPG-LHR-002",
        seller_status="pending",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def buyer(db_session):
    user = Buyer(phone_number="+923000000003", full_name="Ayesha Khan", is_verified=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_buyer(db_session):
    user = Buyer(phone_number="+923000000006", full_name="Usman Tariq", is_verified=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def driver(db_session):
    """Available driver whose zone covers the warehouse."""
    user = Driver(
        phone_number="+923000000004",
        full_name="Bilal Ahmed",
        vehicle_number="LEA-1234",
        license_number="DL-LHR-77",
        zone_name="Gulberg",
        zone_latitude=31.52,
        zone_longitude=74.36,
        zone_radius_km=10,
        driver_status="available",
        is_verified=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_driver(db_session):
    user = Driver(
        phone_number="+923000000007",
        full_name="Kamran Ali",
        vehicle_number="LEB-5678",
        license_number="DL-LHR-78",
        driver_status="available",
        auto_assign_orders=False,
        is_verified=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


# =============================================================================
# Catalogue
# =============================================================================

@pytest.fixture(scope='function')
def warehouse(db_session, seller):
    wh = Warehouse(
        seller_id=seller.id,
        name="Main Depot",
        city="Lahore",
        address="Mall Road",
        latitude=WAREHOUSE_LAT,
        longitude=WAREHOUSE_LNG,
    )
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture(scope='function')
def inventory(db_session, seller, warehouse):
    """10 x 15kg and 1 x 11.8kg in stock, plus a regulator add-on."""
    inv = Inventory(
        seller_id=seller.id,
        warehouse_id=warehouse.id,
        city="Lahore",
        price_per_kg_cents=PRICE_PER_KG_CENTS,
    )
    db_session.add(inv)
    db_session.flush()
    db_session.add(InventoryStock(
        inventory_id=inv.id, cylinder_size="15kg", quantity=10, security_price_cents=SECURITY_15KG_CENTS,
    ))
    db_session.add(InventoryStock(
        inventory_id=inv.id, cylinder_size="11.8kg", quantity=1, security_price_cents=400000,
    ))
    db_session.add(InventoryAddOn(
        inventory_id=inv.id, title="Regulator", price_cents=150000, discount_percent=0, quantity=5,
    ))
    db_session.commit()
    db_session.expire(inv)
    return inv


def stock_of(inventory_id: int, cylinder_size: str = "15kg") -> int:
    row = db.session.query(InventoryStock).filter_by(
        inventory_id=inventory_id, cylinder_size=cylinder_size,
    ).first()
    db.session.refresh(row)
    return row.quantity


# =============================================================================
# Tokens
# =============================================================================

def token_for(user) -> str:
    return session_service.create_session(user).access_token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(token_for(admin))


@pytest.fixture(scope='function')
def seller_headers(seller):
    return auth_headers(token_for(seller))


@pytest.fixture(scope='function')
def buyer_headers(buyer):
    return auth_headers(token_for(buyer))


@pytest.fixture(scope='function')
def driver_headers(driver):
    return auth_headers(token_for(driver))


# =============================================================================
# Orders
# =============================================================================

def weights(count: int = 1, prefix: str = "SN-1000") -> list[dict]:
    return [
        {"serial_number": f"{prefix}{i}", "tare_weight": 14.5, "net_weight": 15.0}
        for i in range(count)
    ]


def place_order(buyer, seller, quantity: int = 1, **extra):
    data = {
        "seller_id": seller.id,
        "delivery_location": dict(DELIVERY_LOCATION),
        "cylinder_size": "15kg",
        "quantity": quantity,
    }
    data.update(extra)
    return order_service.create_order(buyer, data)


def advance_to(order, driver, status: str):
    """Drive a new order forward to `status` along the happy path."""
    path = ["assigned", "pickup_ready", "in_transit", "delivered", "completed"]
    for step in path[: path.index(status) + 1]:
        if step == "assigned":
            order = apply_transition(order.id, "assign_driver", SYSTEM, {"driver_id": driver.id})
        elif step == "pickup_ready":
            order = apply_transition(order.id, "accept", driver, {"cylinders": weights(order.quantity)})
        elif step == "in_transit":
            order = apply_transition(order.id, "scan_pickup", driver, {"qr_code": order.qr_code})
        elif step == "delivered":
            order = apply_transition(order.id, "scan_delivery", driver, {"qr_code": order.qr_code})
        elif step == "completed":
            order = apply_transition(order.id, "confirm_delivery", order.buyer)
    return order
