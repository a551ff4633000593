"""Shared fixtures: in-memory device store, token store and fake appliance."""

import pytest

from lanscan.db.database import make_engine, make_session_factory, init_db
from lanscan.db.repository import DeviceRepository
from lanscan.scanner.appliance.session import AuthorizationFlow
from lanscan.scanner.appliance.token_store import TokenStore
from lanscan.scanner.models import DeviceRecord

from tests.mocks import FakeApplianceClient, FakeLocator, RecordingSleep


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "network: test opens real sockets on the loopback interface")


@pytest.fixture
async def engine():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(engine) -> DeviceRepository:
    return DeviceRepository(make_session_factory(engine))


@pytest.fixture
def token_store(tmp_path) -> TokenStore:
    return TokenStore(data_dir=tmp_path / "data")


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def appliance_devices() -> list:
    return [
        DeviceRecord(address="192.168.1.10", hostname="laptop", hardware_address="3c:06:30:00:00:10"),
        DeviceRecord(address="192.168.1.2", hostname="nas", hardware_address="00:11:32:00:00:02"),
        DeviceRecord(address="192.168.1.100", hostname="tv", hardware_address="8c:79:f5:00:01:00"),
    ]


@pytest.fixture
def fake_client(appliance_devices) -> FakeApplianceClient:
    return FakeApplianceClient(devices=appliance_devices)


def make_flow(client, token_store, sleeper, locator=None) -> AuthorizationFlow:
    return AuthorizationFlow(
        locator=locator or FakeLocator(),
        token_store=token_store,
        client_factory=lambda base_url: client,
        poll_interval=1.0,
        sleep=sleeper,
    )


@pytest.fixture
def flow(fake_client, token_store, sleeper) -> AuthorizationFlow:
    return make_flow(fake_client, token_store, sleeper)
