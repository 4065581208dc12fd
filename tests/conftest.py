import io
import os
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

# No default admin and no atexit save for stores created under test
os.environ["APP_ENV"] = "test"

import pytest
from werkzeug.datastructures import FileStorage

from carmarket.models.store import Store
from carmarket.models.user import Identity
from carmarket.services.image_storage import LocalImageStorage
from carmarket.utils.constants import Availability, Role
from carmarket.utils.security import generate_hash

PHONE = "+97336123456"


class FakeImageStorage:
    """Records uploads and deletes instead of touching the filesystem."""

    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_on = set()

    def upload(self, file):
        handle = f"img-{len(self.uploaded) + 1}-{file.filename}"
        self.uploaded.append(handle)
        return {"url": f"/uploads/{handle}", "handle": handle}

    def delete(self, handle):
        if handle in self.fail_on:
            raise OSError(f"cannot delete {handle}")
        self.deleted.append(handle)


@pytest.fixture(autouse=True)
def store(tmp_path, monkeypatch):
    """A fresh store file per test, installed as the process-wide singleton."""
    st = Store(tmp_path / "data.pkl", env="test")
    monkeypatch.setattr(Store, "_inst", st)
    yield st


@pytest.fixture(autouse=True)
def images(monkeypatch):
    fake = FakeImageStorage()
    monkeypatch.setattr(LocalImageStorage, "_inst", fake)
    return fake


@pytest.fixture
def make_user(store):
    def _make(username, role=Role.USER, password="Secret123"):
        uid = store.create_user(username, generate_hash(password), role)
        return Identity.from_user(store.get_user(uid))

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", Role.ADMIN)


@pytest.fixture
def dealer(make_user):
    return make_user("dealer", Role.DEALER)


@pytest.fixture
def seed_car(store):
    """Insert a car straight into the store; rent listing at 20/day unless overridden."""
    def _seed(dealer_id, **overrides):
        car = {
            "dealer_id": dealer_id,
            "brand": "Toyota",
            "model": "Corolla",
            "year": 2020,
            "type": "Sedan",
            "location": "Manama",
            "mileage": 40000,
            "for_sale": False,
            "price_per_day": 20.0,
            "sale_price": None,
            "is_sold": False,
            "buyer_id": None,
            "availability": Availability.AVAILABLE,
            "dealer_phone": PHONE,
            "is_compatible": False,
        }
        car.update(overrides)
        return store.create_car(car)

    return _seed


@pytest.fixture
def upload():
    def _file(name="photo.jpg", data=b"\xff\xd8fake"):
        return FileStorage(stream=io.BytesIO(data), filename=name, content_type="image/jpeg")

    return _file


@pytest.fixture
def app(store):
    from carmarket import create_app
    from carmarket.config import TestConfig

    return create_app(TestConfig)


@pytest.fixture
def client(app):
    with app.test_client() as c:
        yield c


@pytest.fixture
def login(client):
    def _login(identity):
        with client.session_transaction() as sess:
            sess["uid"] = identity.user_id
            sess["role"] = identity.role

    return _login
