import os

# Settings are read at import time
os.environ["ENV"] = "testing"
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("LOG_DIR", "logs")

import pytest
from decimal import Decimal
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from main import app
from core.config import settings
from core.database import Base
from models.enums import UserRole
from models.materials import Material
from models.users import User
from schemas.order_schemas import CreateOrderRequest
from services.order_service import OrderService
from services.order_workflow import Actor
from services.storage_service import StorageService
from services.token_service import TokenService
from utils.deps import get_db
from utils.hashing import get_password_hash

# SYNC SQLite for testing (matches sync service layer)
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

TEST_PASSWORD = "TestPassword123!"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False}
)

TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """
    Creates a fresh, empty database for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def storage_dir(tmp_path, monkeypatch):
    """Each test gets its own blob store directory."""
    path = tmp_path / "storage"
    monkeypatch.setattr(settings, "STORAGE_DIR", str(path))
    return path


@pytest.fixture
async def client(session: Session):
    """
    Yields an HTTP client that talks to the app using the test database.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass  # session cleanup handled by the session fixture

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def make_user(session: Session, email: str, role: UserRole = UserRole.CUSTOMER,
              full_name: str = "Test User", is_active: bool = True) -> User:
    user = User(
        email=email,
        full_name=full_name,
        hashed_password=get_password_hash(TEST_PASSWORD),
        phone_number="+201111111111",
        role=role,
        is_active=is_active
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=UserRole(user.role))


def auth_header(user: User) -> dict:
    token = TokenService.create_access_token(user.email, user.id, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer(session):
    return make_user(session, "customer@example.com", full_name="Carla Customer")


@pytest.fixture
def other_customer(session):
    return make_user(session, "other.customer@example.com", full_name="Oscar Other")


@pytest.fixture
def admin(session):
    return make_user(session, "admin@example.com", UserRole.ADMIN, full_name="Ada Admin")


@pytest.fixture
def operator(session):
    return make_user(session, "operator@example.com", UserRole.OPERATOR, full_name="Otto Operator")


@pytest.fixture
def other_operator(session):
    return make_user(session, "operator2@example.com", UserRole.OPERATOR, full_name="Olga Operator")


@pytest.fixture
def material(session):
    model = Material(
        name="Birch Plywood",
        type="wood",
        cost_per_sqm=Decimal("42.50"),
        available_thicknesses=[3.0, 6.0],
        colors=["natural"]
    )
    session.add(model)
    session.commit()
    session.refresh(model)
    return model


@pytest.fixture
def design_file(session, customer):
    return StorageService.save(session, customer.id, "panel.svg", "image/svg+xml", b"<svg></svg>")


@pytest.fixture
def proof_file(session, customer):
    return StorageService.save(session, customer.id, "receipt.png", "image/png", b"\x89PNG proof")


def order_payload(material, design_file, quantity: int = 2, unit_price: str = "12.50",
                  shipping_cost: str = "5.00") -> dict:
    return {
        "items": [{
            "material_id": material.id,
            "thickness": "3.0",
            "quantity": quantity,
            "unit_price": unit_price,
            "design_file_name": design_file.original_filename,
            "design_file_path": design_file.storage_path
        }],
        "shipping_address": {
            "full_name": "Carla Customer",
            "line1": "12 Workshop Lane",
            "city": "Cairo",
            "postal_code": "11511",
            "country": "EG"
        },
        "shipping_cost": shipping_cost
    }


@pytest.fixture
def pending_order(session, customer, material, design_file):
    request = CreateOrderRequest(**order_payload(material, design_file))
    return OrderService.create_order(session, actor_for(customer), request)


@pytest.fixture
def submitted_order(session, customer, pending_order, proof_file):
    return OrderService.submit_payment_proof(session, pending_order.id, actor_for(customer), proof_file.id)


@pytest.fixture
def production_order(session, admin, submitted_order):
    return OrderService.approve_payment(session, submitted_order.id, actor_for(admin))


@pytest.fixture
def assigned_order(session, admin, operator, production_order):
    return OrderService.assign_operator(session, production_order.id, operator.id, actor_for(admin))
