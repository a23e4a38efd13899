"""Shared pytest fixtures for the storefront core and API tests."""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from authorization import AuthorizationGate
from database import MemoryDocumentStore
from identity import Authenticated
from storefront import Storefront
from uploads import UploadCoordinator

from .helpers import ADMIN_EMAIL, FlakyBlobService, image, run


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def blobs():
    return FlakyBlobService()


@pytest.fixture
def gate():
    return AuthorizationGate(ADMIN_EMAIL)


@pytest.fixture
def clock():
    """Strictly increasing timestamps, one minute apart."""
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(minutes=next(ticks))


@pytest.fixture
def admin():
    return Authenticated(uid="admin-uid", email="Admin@Shop.com", display_name="Admin")


@pytest.fixture
def buyer():
    return Authenticated(uid="buyer-uid", email="buyer@example.com", display_name="Test Buyer")


@pytest.fixture
def make_storefront(store, blobs, gate, clock):
    def factory(identity):
        return Storefront(store, gate, UploadCoordinator(blobs), identity=identity, clock=clock)
    return factory


@pytest.fixture
def admin_front(make_storefront, admin):
    return make_storefront(admin)


@pytest.fixture
def buyer_front(make_storefront, buyer):
    return make_storefront(buyer)


@pytest.fixture
def viper(admin_front):
    """The Viper Mouse product, created by the admin with one image."""
    return run(admin_front.create_product(
        {"name": "Viper Mouse", "price": 2500, "qr_code_url": "qr://x"},
        [image("viper.png")],
    ))
