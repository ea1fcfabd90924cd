import json

from conftest import make_token
from crawldash.models.credential import Credential, Identity
from crawldash.storage import CredentialStore
from crawldash.storage.credential_store import STORAGE_KEYS


def test_store_persists_under_fixed_keys(tmp_path):
    path = tmp_path / "state" / "session.json"
    store = CredentialStore(path)
    token = make_token(600)
    store.set_credential(Credential.issue(token, "refresh-1"))
    store.set_identity(Identity(id=7, username="ada"))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data[STORAGE_KEYS["token"]] == token
    assert data[STORAGE_KEYS["refresh"]] == "refresh-1"
    assert data[STORAGE_KEYS["user"]]["username"] == "ada"
    assert set(STORAGE_KEYS.values()) == {"auth_token", "refresh_token", "auth_user"}


def test_load_restores_and_rederives_expiry(tmp_path):
    path = tmp_path / "session.json"
    token = make_token(900)
    path.write_text(
        json.dumps({"auth_token": token, "refresh_token": "r", "auth_user": {"id": 1, "username": "bob"}}),
        encoding="utf-8",
    )
    store = CredentialStore(path)
    credential = store.load()
    assert credential is not None
    assert credential.access_token == token
    assert credential.refresh_token == "r"
    assert 890 < credential.remaining() <= 900
    assert store.identity is not None and store.identity.username == "bob"


def test_clear_removes_persisted_state(tmp_path):
    path = tmp_path / "session.json"
    store = CredentialStore(path)
    store.set_credential(Credential.issue(make_token(60)))
    store.clear()

    assert store.credential is None
    assert store.identity is None
    assert json.loads(path.read_text(encoding="utf-8")) == {}
    assert CredentialStore(path).load() is None


def test_unreadable_state_is_discarded(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{broken", encoding="utf-8")
    store = CredentialStore(path)
    assert store.load() is None
    assert store.identity is None


def test_memory_store_without_path():
    store = CredentialStore()
    store.set_credential(Credential.issue(make_token(60)))
    assert store.path is None
    assert store.credential is not None
    assert store.load() is None
