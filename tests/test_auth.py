import pytest

from conftest import STATIC_KEY
from farmpulse.auth import ANONYMOUS_DEVICE_ID, AuthGate
from farmpulse.database import create_tables, make_engine, make_session_factory
from farmpulse.devices import InMemoryDeviceStore, SqlDeviceStore, check_api_key, hash_api_key, make_device_store
from farmpulse.errors import AuthError, NotFoundError


@pytest.fixture
def gate(devices):
    return AuthGate(devices, static_key=STATIC_KEY)


@pytest.fixture
def sql_devices():
    engine = make_engine("sqlite://")
    create_tables(engine)
    yield SqlDeviceStore(make_session_factory(engine), rounds=4)
    engine.dispose()


async def test_static_key_is_accepted_for_any_device(gate):
    result = await gate.authenticate("WHATEVER", STATIC_KEY)
    assert result.valid and result.device_id == "WHATEVER"
    assert (await gate.authenticate(None, STATIC_KEY)).device_id == ANONYMOUS_DEVICE_ID


async def test_registered_device_with_right_key(gate, devices):
    assert devices.get("DEV-001").last_connected_at is None
    result = await gate.authenticate("DEV-001", "secret-1")
    assert result.valid
    assert (result.device_id, result.animal_id) == ("DEV-001", "A1")
    assert result.sensor_types == ["DHT11", "HEALTH"]
    assert devices.get("DEV-001").last_connected_at is not None


@pytest.mark.parametrize("device_id,key", [
    ("DEV-001", "secret-2"),
    ("DEV-404", "secret-1"),
    ("DEV-001", ""),
    (None, "secret-1"),
])
async def test_session_auth_failures_carry_no_detail(gate, device_id, key):
    result = await gate.authenticate(device_id, key)
    assert result.valid is False
    assert result.device_id is None


async def test_store_errors_collapse_to_invalid(devices):
    class Exploding(InMemoryDeviceStore):
        def get(self, device_id):
            raise RuntimeError("db down")

    gate = AuthGate(Exploding(rounds=4))
    assert (await gate.authenticate("DEV-001", "secret-1")).valid is False


async def test_require_device_distinguishes_failures(gate, devices):
    with pytest.raises(AuthError):
        await gate.require_device("DEV-001", None)
    with pytest.raises(NotFoundError):
        await gate.require_device("DEV-404", "secret-1")
    with pytest.raises(AuthError) as err:
        await gate.require_device("DEV-001", "secret-2")
    assert err.value.message == "Invalid API key"
    assert devices.get("DEV-001").last_connected_at is None


async def test_require_device_ignores_static_key(gate):
    with pytest.raises(AuthError):
        await gate.require_device("DEV-001", STATIC_KEY)


def test_keys_are_never_stored_in_plaintext():
    hashed = hash_api_key("secret-1", rounds=4)
    assert hashed != "secret-1"
    assert check_api_key("secret-1", hashed)
    assert not check_api_key("secret-2", hashed)
    assert not check_api_key("secret-1", "not-a-bcrypt-hash")


def test_sql_store_register_verify_and_pair(sql_devices):
    sql_devices.register("DEV-9", "Collar 9", "k9", sensor_types=["HEALTH"])
    assert sql_devices.verify_key("DEV-9", "k9")
    assert not sql_devices.verify_key("DEV-9", "k8")
    assert not sql_devices.verify_key("DEV-10", "k9")

    info = sql_devices.get("DEV-9")
    assert (info.name, info.animal_id, info.sensor_types, info.status) == ("Collar 9", None, ["HEALTH"], "ACTIVE")

    assert sql_devices.pair("DEV-9", "A7").animal_id == "A7"
    assert sql_devices.get("DEV-9").animal_id == "A7"
    assert sql_devices.pair("DEV-10", "A7") is None

    sql_devices.touch_last_connected("DEV-9")
    assert sql_devices.get("DEV-9").last_connected_at is not None


async def test_gate_over_sql_store(sql_devices):
    sql_devices.register("DEV-9", "Collar 9", "k9", animal_id="A7")
    result = await AuthGate(sql_devices).authenticate("DEV-9", "k9")
    assert result.valid and result.animal_id == "A7"


def test_memory_store_is_seeded_with_demo_devices():
    store = make_device_store("memory", session_factory=None, rounds=4)
    assert store.verify_key("DEVICE001", "test-api-key-1")
    assert store.get("DEVICE002").animal_id == "CATTLE002"
    with pytest.raises(ValueError):
        make_device_store("redis", session_factory=None)
