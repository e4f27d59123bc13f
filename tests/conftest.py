"""Shared pytest fixtures: an in-memory Mongo, an API client, users and catalog items."""
import os
import tempfile
from datetime import datetime, timedelta

os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="lab-uploads-"))

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from auth import hash_password, create_token
from main import app


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """Swap the pymongo database for a fresh mongomock one per test."""
    mock_db = mongomock.MongoClient()["lab_storefront_test"]
    database.ensure_indexes(mock_db)
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    import uploads

    monkeypatch.setattr(uploads, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


def _insert_user(mongo, name, email, role="user", password="secret123", **extra):
    now = datetime.utcnow()
    doc = {
        "name": name,
        "email": email,
        "hashed_password": hash_password(password),
        "phone": "9999999999",
        "role": role,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    doc.update(extra)
    doc["_id"] = mongo["user"].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def make_user(mongo):
    def factory(name="Asha", email="asha@example.com", role="user", **extra):
        return _insert_user(mongo, name, email, role, **extra)
    return factory


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def other_user(make_user):
    return make_user(name="Ravi", email="ravi@example.com")


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", email="admin@example.com", role="admin")


def bearer(user_doc):
    return {"Authorization": f"Bearer {create_token(user_doc)}"}


@pytest.fixture
def user_headers(user):
    return bearer(user)


@pytest.fixture
def other_headers(other_user):
    return bearer(other_user)


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture
def lab_tests(mongo):
    """Three catalog tests, one of them inactive."""
    now = datetime.utcnow()
    docs = [
        {"name": "Complete Blood Count", "price": 400.0, "discount_price": 299.0, "category": "Hematology",
         "sample_type": "Blood", "parameters": [], "is_active": True, "created_at": now, "updated_at": now},
        {"name": "Lipid Profile", "price": 800.0, "discount_price": None, "category": "Biochemistry",
         "sample_type": "Blood", "parameters": [], "is_active": True, "created_at": now, "updated_at": now},
        {"name": "Vitamin D", "price": 1200.0, "discount_price": 999.0, "category": "Vitamins",
         "sample_type": "Blood", "parameters": [], "is_active": False, "created_at": now, "updated_at": now},
    ]
    for d in docs:
        d["_id"] = mongo["test"].insert_one(d).inserted_id
    return docs


@pytest.fixture
def make_offer(mongo):
    def factory(code="SAVE10", **overrides):
        now = datetime.utcnow()
        doc = {
            "title": "Save 10%",
            "coupon_code": code,
            "discount_type": "percentage",
            "discount_value": 10,
            "max_discount_amount": None,
            "min_order_value": 0,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=30),
            "usage_limit": None,
            "per_user_limit": 1,
            "usage_count": 0,
            "is_active": True,
            "is_featured": False,
            "created_at": now,
            "updated_at": now,
        }
        doc.update(overrides)
        doc["_id"] = mongo["offer"].insert_one(doc).inserted_id
        return doc
    return factory
