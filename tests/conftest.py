"""Pytest configuration and fixtures"""
import asyncio
import os
from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from bson import ObjectId
from jose import jwt

os.environ.setdefault("JWT_SECRET", "test_secret")

from auth import ALGORITHM, SECRET_KEY, Identity  # noqa: E402
from errors import ERROR_STORAGE, StorageFailure  # noqa: E402
from gateway import MongoGateway  # noqa: E402


class AsyncCursor:
    """Async view of a mongomock cursor (sort/skip/limit chain, awaited to_list)."""

    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, key_or_list, direction=None):
        if direction is None:
            self._cursor = self._cursor.sort(key_or_list)
        else:
            self._cursor = self._cursor.sort(key_or_list, direction)
        return self

    def skip(self, count):
        self._cursor = self._cursor.skip(count)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        await asyncio.sleep(0)
        documents = list(self._cursor)
        return documents if length is None else documents[:length]


class AsyncCollection:
    """
    Async view of a mongomock collection.

    Every call yields to the event loop first, so concurrent coroutines
    interleave between storage operations the way they do against a server.
    """

    def __init__(self, collection):
        self._collection = collection

    def find(self, *args, **kwargs):
        return AsyncCursor(self._collection.find(*args, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._collection, name)

        async def call(*args, **kwargs):
            await asyncio.sleep(0)
            return method(*args, **kwargs)

        return call


class AsyncDatabase:
    def __init__(self, database):
        self._database = database
        self.name = database.name

    def __getitem__(self, name):
        return AsyncCollection(self._database[name])

    async def list_collection_names(self):
        return self._database.list_collection_names()


@pytest.fixture
def mongo():
    """In-memory MongoDB database (sync mongomock handle for seeding and assertions)."""
    database = mongomock.MongoClient().db
    database["cart"].create_index("user_id", unique=True)
    database["wishlist"].create_index("user_id", unique=True)
    database["product_review"].create_index([("user_id", 1), ("product_id", 1)], unique=True)
    return database


@pytest.fixture
def async_database_factory():
    return AsyncDatabase


@pytest.fixture
def async_db(mongo):
    return AsyncDatabase(mongo)


@pytest.fixture
def gateway(async_db):
    return MongoGateway(async_db)


@pytest.fixture
def identity():
    return Identity(id=ObjectId())


@pytest.fixture
def other_identity():
    return Identity(id=ObjectId())


@pytest.fixture
def token_factory():
    """Sign bearer tokens the way the auth service issues them."""

    def make(user_id, is_internal=False, expires_delta=timedelta(days=365)):
        payload = {
            "user": {"_id": str(user_id), "isInternal": is_internal},
            "exp": datetime.now(timezone.utc) + expires_delta,
        }
        return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)

    return make


@pytest.fixture
def fail_updates_after():
    """
    Build a replacement for a gateway's atomic_update that lets the first
    `allowed` calls through and then fails like an unreachable server.
    """

    def make(gateway, allowed):
        real = gateway.atomic_update
        calls = []

        async def update(*args, **kwargs):
            calls.append(args)
            if len(calls) > allowed:
                raise StorageFailure(ERROR_STORAGE)
            return await real(*args, **kwargs)

        return update

    return make


@pytest.fixture
def catalog_data(mongo):
    """A small catalog: two categories, images, a reviewer and five products."""
    shirts = mongo["category"].insert_one({"name": "Shirts"}).inserted_id
    shoes = mongo["category"].insert_one({"name": "Shoes"}).inserted_id
    front = mongo["product_image"].insert_one({"url": "front.png"}).inserted_id
    reviewer = mongo["user"].insert_one(
        {"name": "Asha", "email": "asha@example.com", "password": "hashed"}
    ).inserted_id

    products = [
        {"name": "Linen Shirt", "code": "LS-1", "size": "M", "color": "white", "price": 10,
         "categories": [shirts], "keywords": ["summer", "linen"], "product_images": [front], "reviews": []},
        {"name": "Oxford Shirt", "code": "OS-1", "size": "L", "color": "blue", "price": 35,
         "categories": [shirts], "keywords": ["office"], "product_images": [], "reviews": []},
        {"name": "Running Shoe", "code": "RS-1", "size": "42", "color": "black", "price": 50,
         "categories": [shoes], "keywords": ["sport"], "product_images": [], "reviews": []},
        {"name": "Trail Shoe", "code": "TS-1", "size": "43", "color": "green", "price": 80,
         "categories": [shoes], "keywords": ["sport", "outdoor"], "product_images": [], "reviews": []},
        {"name": "Flannel shirt", "code": "FS-1", "size": "M", "color": "red", "price": 5,
         "categories": [shirts], "keywords": [], "product_images": [], "reviews": []},
    ]
    ids = mongo["product"].insert_many(products).inserted_ids

    review_id = mongo["product_review"].insert_one(
        {"user_id": reviewer, "product_id": ids[0], "review": "Great", "score": 5}
    ).inserted_id
    mongo["product"].update_one({"_id": ids[0]}, {"$set": {"reviews": [review_id]}})

    return {
        "products": ids,
        "categories": {"shirts": shirts, "shoes": shoes},
        "image": front,
        "reviewer": reviewer,
        "review": review_id,
    }
