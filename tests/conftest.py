"""Pytest fixtures for storefront tests."""

import asyncio
import re

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import OperationFailure

from shared.security_config import limiter
from shared.utils import settings
from storefront.models import ProductDB, UserDB

ADMIN_EMAIL = "admin@shopkart.in"
ADMIN_PASSWORD = "Admin12345"
PASSWORD = "Password123"

ADDRESS = {
    "state": "Kerala",
    "district": "Ernakulam",
    "area_name": "Kakkanad",
    "pincode": "682030",
}


def run(coro):
    """Drive a coroutine from a synchronous test."""
    return asyncio.run(coro)


async def insert_product(db, **fields) -> ProductDB:
    defaults = {
        "name": "Cotton T-Shirt",
        "brand": "Roadster",
        "category": "Clothing",
        "price": 499.0,
        "mrp": 999.0,
        "discount": 50.0,
        "stock": 10,
        "main_image": "tshirt.png",
        "tags": ["summer"],
    }
    defaults.update(fields)
    product = ProductDB(**defaults)
    result = await db.products.insert_one(product.model_dump(by_alias=True, exclude={"id"}))
    product.id = str(result.inserted_id)
    return product


async def insert_user(db, email="asha@mail.com", phone="9876543210", **fields) -> UserDB:
    user = UserDB(email=email, phone=phone, password_hash="not-a-real-hash", **ADDRESS, **fields)
    result = await db.users.insert_one(user.model_dump(by_alias=True, exclude={"id"}))
    user.id = str(result.inserted_id)
    return user


class FailingCollection:
    """Wraps a collection and fails the named write methods."""

    def __init__(self, collection, *failing):
        self._collection = collection
        self._failing = failing

    def __getattr__(self, name):
        if name in self._failing:
            async def fail(*args, **kwargs):
                raise OperationFailure(f"{name} failed")
            return fail
        return getattr(self._collection, name)


class FaultyDB:
    def __init__(self, db, **collections):
        self._db = db
        self._collections = collections

    def __getattr__(self, name):
        if name in self._collections:
            return self._collections[name]
        return getattr(self._db, name)


@pytest.fixture
def mongo_client():
    return AsyncMongoMockClient()


@pytest.fixture
def db(mongo_client):
    return mongo_client["storefront_test"]


@pytest.fixture
def app_db(mongo_client):
    return mongo_client[settings.DATABASE_NAME]


@pytest.fixture
def client(mongo_client, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "ADMIN_EMAIL", ADMIN_EMAIL)
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setattr(settings, "ADMIN_PHONE", "9000000000")
    monkeypatch.setattr("storefront.main.get_db_client", lambda: mongo_client)
    monkeypatch.setattr(limiter, "enabled", False)
    limiter.reset()

    from storefront.main import app

    with TestClient(app) as test_client:
        yield test_client


def register(client, email="asha@mail.com", phone="9876543210", password=PASSWORD):
    response = client.post("/register-step1", data={"email": email, "phone": phone, "password": password})
    assert response.status_code == 200, response.text
    token = re.search(r'name="token" value="([^"]+)"', response.text).group(1)
    response = client.post("/register-step2", data={"token": token, **ADDRESS})
    assert response.status_code == 201, response.text
    return response


def login(client, identifier="asha@mail.com", password=PASSWORD):
    return client.post("/login", data={"identifier": identifier, "password": password}, follow_redirects=False)


@pytest.fixture
def customer(client):
    """A registered and logged-in customer session."""
    register(client)
    response = login(client)
    assert response.status_code == 303
    return client


@pytest.fixture
def admin(client):
    response = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert response.status_code == 303
    assert response.headers["location"] == "/admin"
    return client
