import json
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LEDGER_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTH_ENABLED"] = "false"
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="puremeds-test-")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from puremeds.api.deps import get_ledger_client  # noqa: E402
from puremeds.core.config import settings  # noqa: E402
from puremeds.db.session import Base, get_db  # noqa: E402
from puremeds.models.entities import Product  # noqa: E402
from puremeds.services.hashing import derive_fingerprint  # noqa: E402
from puremeds.services.ledger import InMemoryLedgerClient  # noqa: E402

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def ledger():
    return InMemoryLedgerClient()


@pytest.fixture
def client(session_factory, ledger, tmp_path, monkeypatch):
    from puremeds.main import app

    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "qr_dir", str(tmp_path / "qr"))
    monkeypatch.setattr(settings, "complaint_dir", str(tmp_path / "complaints"))

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ledger_client] = lambda: ledger
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_product(
    db,
    *,
    batch_code="PM-12345",
    product_name="Paracetamol",
    manufacturer="Acme",
    expiry_date=FIXED_NOW + timedelta(days=365),
    category="Analgesic",
):
    product = Product(
        product_name=product_name,
        chemical_name="Acetaminophen",
        manufacturer=manufacturer,
        price=4.5,
        purpose="Pain relief",
        side_effects=["nausea"],
        category=category,
        available_stock=100,
        batch_code=batch_code,
        expiry_date=expiry_date,
        fingerprint=derive_fingerprint(batch_code, manufacturer, expiry_date, product_name),
        qr_code=f"/tmp/{batch_code}.png",
    )
    db.add(product)
    db.commit()
    return product


def product_body(**overrides):
    body = {
        "product_name": "Paracetamol",
        "chemical_name": "Acetaminophen",
        "manufacturer": "Acme",
        "price": 4.5,
        "purpose": "Pain relief",
        "side_effects": ["nausea", "rash"],
        "category": "Analgesic",
        "available_stock": 100,
        "batch_code": "PM-12345",
        "expiry_date": "2099-01-01",
    }
    body.update(overrides)
    return body


@pytest.fixture
def token_auth(monkeypatch):
    """Turn on token auth with two customers, an inventory manager and an admin."""
    from puremeds.core import auth as core_auth

    monkeypatch.setattr(settings, "auth_enabled", True)
    monkeypatch.setattr(
        settings,
        "api_token_map_json",
        json.dumps(
            {
                "alice-token": {"user_id": "alice", "roles": ["viewer"]},
                "bob-token": {"user_id": "bob", "roles": ["viewer"]},
                "admin-token": {"user_id": "root", "roles": ["admin"]},
                "inv-token": {"user_id": "inv-1", "roles": ["inventory_manager"]},
            }
        ),
    )
    core_auth._token_map.cache_clear()
    yield {
        "alice": {"Authorization": "Bearer alice-token"},
        "bob": {"Authorization": "Bearer bob-token"},
        "admin": {"Authorization": "Bearer admin-token"},
        "inventory": {"X-API-Key": "inv-token"},
    }
    core_auth._token_map.cache_clear()
