from carmarket.models.store import Store
from carmarket.utils.constants import Role


def test_new_store_outside_test_env_gets_default_admin(tmp_path, monkeypatch):
    monkeypatch.setattr(Store, "_atexit_registered", True)
    st = Store(tmp_path / "dev.pkl", env="development")
    admin = st.find_user("admin")
    assert admin is not None
    assert admin["role"] == Role.ADMIN


def test_test_env_store_starts_empty(tmp_path):
    st = Store(tmp_path / "test.pkl", env="test")
    assert st.count("users") == 0


def test_env_defaults_to_configured_app_env(tmp_path, monkeypatch):
    monkeypatch.setattr("carmarket.models.store.Config.APP_ENV", "test")
    assert Store(tmp_path / "x.pkl").env == "test"
