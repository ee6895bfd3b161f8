import pytest

from catalog_sync import handoff as handoff_module
from catalog_sync.config import Settings
from catalog_sync.errors import HandoffUnavailable
from catalog_sync.handoff import AUTH_CODE_PREFIX, NONCE_PREFIX, PENDING_PREFIX, HandoffStore


@pytest.fixture()
def store(redis) -> HandoffStore:
    return HandoffStore(redis=redis, settings=Settings())


def test_auth_code_is_single_use(store, redis):
    code = store.issue_auth_code({"supplier_id": 2, "shop": "acme"})

    first = store.redeem_auth_code(code)
    replay = store.redeem_auth_code(code)

    assert first.status == "found"
    assert first.found
    assert first.value == {"supplier_id": 2, "shop": "acme"}
    assert replay.status == "not_found"
    assert redis.ttls[AUTH_CODE_PREFIX + code] == 300


def test_redeem_fails_closed_during_outage(store, redis):
    code = store.issue_auth_code({"supplier_id": 2})
    redis.down = True

    lookup = store.redeem_auth_code(code)

    assert lookup.status == "unavailable"
    assert not lookup.found

    redis.down = False
    assert store.redeem_auth_code(code).status == "found"


def test_redeem_without_redis_is_unavailable():
    store = HandoffStore(settings=Settings(), connect=False)

    assert store.redeem_auth_code("anything").status == "unavailable"
    with pytest.raises(HandoffUnavailable):
        store.issue_auth_code({"supplier_id": 2})


def test_issue_during_outage_raises(store, redis):
    redis.down = True
    with pytest.raises(HandoffUnavailable):
        store.issue_auth_code({"supplier_id": 2})


def test_auth_codes_never_use_memory_fallback(store, redis):
    redis.down = True
    store.save_nonce("n-1", {"state": "x"})

    assert store.redeem_auth_code("n-1").status == "unavailable"


def test_nonce_and_pending_ttls(store, redis):
    store.save_nonce("n-1", {"shop": "acme"})
    store.save_pending_connection("p-1", {"shop": "acme"})

    assert redis.ttls[NONCE_PREFIX + "n-1"] == 600
    assert redis.ttls[PENDING_PREFIX + "p-1"] == 300
    assert store.get_pending_connection("p-1") == {"shop": "acme"}
    assert store.consume_nonce("n-1") == {"shop": "acme"}
    assert store.consume_nonce("n-1") is None

    store.delete_pending_connection("p-1")
    assert store.get_pending_connection("p-1") is None


def test_nonce_falls_back_to_memory_without_redis():
    store = HandoffStore(settings=Settings(), connect=False)

    store.save_nonce("n-1", {"shop": "acme"})

    assert store.consume_nonce("n-1") == {"shop": "acme"}
    assert store.consume_nonce("n-1") is None


def test_pending_falls_back_to_memory_during_outage(store, redis):
    redis.down = True

    store.save_pending_connection("p-1", {"shop": "acme"})

    assert store.get_pending_connection("p-1") == {"shop": "acme"}


def test_memory_fallback_expires(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(handoff_module.time, "monotonic", lambda: now[0])
    store = HandoffStore(settings=Settings(), connect=False)

    store.save_pending_connection("p-1", {"shop": "acme"})
    now[0] += 301

    assert store.get_pending_connection("p-1") is None
