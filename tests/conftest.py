"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch the
real database. Tables are created before each test and dropped
after it. Audit records are written inline so tests can read
them back right after the call that produced them.
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("AUDIT_MODE", "inline")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from purchase_ledger.api.deps import get_audit
from purchase_ledger.main import app
from purchase_ledger.models import Employee, Product, Role, User
from purchase_ledger.models.base import Base, get_db
from purchase_ledger.services.audit_service import AuditDispatcher, AuditSink
from purchase_ledger.services.authorization import Actor
from purchase_ledger.services.purchase_service import PurchaseService


TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores FOREIGN KEY / ON DELETE clauses unless asked
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def session_factory():
    """Factory for extra sessions, e.g. a second concurrent caller."""
    return TestSessionLocal


@pytest.fixture
def audit():
    """Inline dispatcher writing to the test database."""
    dispatcher = AuditDispatcher(AuditSink(TestSessionLocal), mode="inline")
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def service(db_session, audit):
    return PurchaseService(db_session, audit)


# --- Reference data ---

@pytest.fixture
def users(db_session):
    """One user per role, plus a second employee-role user."""
    created = {
        "admin": User(email="admin@test.com", name="Admin", role=Role.ADMIN),
        "manager": User(email="manager@test.com", name="Manager", role=Role.MANAGER),
        "alice": User(email="alice@test.com", name="Alice", role=Role.EMPLOYEE),
        "bob": User(email="bob@test.com", name="Bob", role=Role.EMPLOYEE),
    }
    db_session.add_all(created.values())
    db_session.commit()
    return created


@pytest.fixture
def admin(users):
    return Actor(id=users["admin"].id, role=Role.ADMIN)


@pytest.fixture
def manager(users):
    return Actor(id=users["manager"].id, role=Role.MANAGER)


@pytest.fixture
def alice(users):
    return Actor(id=users["alice"].id, role=Role.EMPLOYEE)


@pytest.fixture
def bob(users):
    return Actor(id=users["bob"].id, role=Role.EMPLOYEE)


@pytest.fixture
def employee(db_session):
    emp = Employee(name="Erin Example", employee_number="E-001")
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture
def products(db_session):
    """Catalog: coffee at 25.00, tea at 10.00."""
    coffee = Product(name="Coffee", price=Decimal("25.00"))
    tea = Product(name="Tea", price=Decimal("10.00"))
    db_session.add_all([coffee, tea])
    db_session.commit()
    return {"coffee": coffee, "tea": tea}


# --- HTTP ---

@pytest.fixture
def client(db_session, audit):
    """
    Provide a test client bound to the test database.

    get_db and get_audit are overridden so the app uses the
    test session and the inline test dispatcher.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit] = lambda: audit
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers():
    """Build the headers the upstream auth layer would forward."""
    def build(actor: Actor, request_id: str | None = None) -> dict:
        result = {"X-User-Id": str(actor.id), "X-User-Role": actor.role.value}
        if request_id:
            result["X-Request-ID"] = request_id
        return result
    return build
