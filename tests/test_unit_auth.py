from carmarket.models.user import Identity
from carmarket.utils.constants import Role
from carmarket.utils.security import check_hash, generate_hash, public_user, verify_credentials


def test_password_hash_roundtrip():
    pw = "Secret123"
    h = generate_hash(pw)
    assert check_hash(pw, h)
    assert not check_hash("wrong", h)


def test_check_hash_rejects_garbage_hash():
    assert not check_hash("Secret123", "not-a-hash")


def test_verify_credentials_requires_existing_user():
    user = {"user_id": "u1", "password_hash": generate_hash("Secret123")}
    assert verify_credentials(user, "Secret123")
    assert not verify_credentials(user, "secret123")
    assert not verify_credentials(None, "Secret123")


def test_public_user_drops_password_hash():
    user = {"user_id": "u1", "username": "amal", "password_hash": "x", "role": "user"}
    assert public_user(user) == {"user_id": "u1", "username": "amal", "role": "user"}


def test_identity_can_manage_own_cars_only_unless_admin():
    car = {"car_id": "c1", "dealer_id": "d1"}
    assert Identity("d1", Role.DEALER).can_manage(car)
    assert not Identity("d2", Role.DEALER).can_manage(car)
    assert Identity("a1", Role.ADMIN).can_manage(car)
    # owning a car record without the dealer role is not enough
    assert not Identity("d1", Role.USER).can_manage(car)
