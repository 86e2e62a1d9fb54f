"""
Pytest fixtures for the ledger engine tests.

Provides test database setup, seed customers and stock, and test client.
"""

import pytest
from lpgops import create_app
from lpgops.extensions import db
from lpgops.models import Customer, B2CCustomer, Cylinder, Product, CustomItem
from lpgops.constants import CYLINDER_CAPACITY_KG, CylinderType, LOCATION_READY_FOR_SALE


ACTOR_ID = 7


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STRICT_INVENTORY_REVERSAL': False,
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
        app.config['STRICT_INVENTORY_REVERSAL'] = False


@pytest.fixture(scope='function')
def actor_id():
    return ACTOR_ID


@pytest.fixture(scope='function')
def auth_headers():
    return {"X-User-Id": str(ACTOR_ID)}


@pytest.fixture(scope='function')
def customer(db_session):
    """B2B customer with an empty ledger."""
    customer = Customer(name="Acme Restaurant", contact_person="R. Patel", phone="555-0100")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def other_customer(db_session):
    customer = Customer(name="Harbor Bakery")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def b2c_customer(db_session):
    customer = B2CCustomer(name="J. Okafor", phone="555-0199", address="12 Elm St")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def regulator(db_session):
    """Accessory product with stock on hand."""
    product = Product(sku="REG-STD", name="Standard Regulator", stock_quantity=10, price_cents=1500)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def custom_stove(db_session):
    item = CustomItem(name="Stove", item_type="Double Burner", quantity=4, cost_per_piece_cents=2000, total_cost_cents=8000)
    db_session.add(item)
    db_session.commit()
    return item


def add_full_cylinders(session, cylinder_type: CylinderType, count: int, prefix: str = "CYL") -> list:
    cylinders = []
    for i in range(count):
        cylinder = Cylinder(
            code=f"{prefix}-{cylinder_type.value[:3]}-{i + 1:03d}",
            cylinder_type=cylinder_type.value,
            capacity_kg=CYLINDER_CAPACITY_KG[cylinder_type],
            current_status="FULL",
            location=LOCATION_READY_FOR_SALE,
        )
        session.add(cylinder)
        cylinders.append(cylinder)
    session.commit()
    return cylinders


@pytest.fixture(scope='function')
def full_cylinders(db_session):
    """Five FULL cylinders of each type at the sale bay."""
    created = []
    for cyl_type in CylinderType:
        created.extend(add_full_cylinders(db_session, cyl_type, 5))
    return created
