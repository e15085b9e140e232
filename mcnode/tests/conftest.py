import pytest
from fastapi.testclient import TestClient
from mcnode.core.config import Settings
from mcnode.main import create_app
from mcnode.utils.server_utils import ServerManager


@pytest.fixture(name="settings")
def settings_fixture(tmp_path) -> Settings:
    return Settings(
            _env_file=None,
            SERVERS_ROOT=tmp_path / "servers",
            RCON_PASSWORD=None,
            PID_POLL_INTERVAL=0.05,
            PID_POLL_ATTEMPTS=40,
            STOP_GRACE_SECONDS=0,
            STATUS_TIMEOUT=0.5,
            RCON_TIMEOUT=1.0,
            CPU_SAMPLE_SECONDS=0.01,
            LOG_KEEPALIVE_SECONDS=0.3,
            )


@pytest.fixture(name="manager")
def manager_fixture(settings: Settings) -> ServerManager:
    manager = ServerManager(settings)
    manager.paths.root.mkdir(parents=True, exist_ok=True)
    return manager


@pytest.fixture(name="client")
def client_fixture(settings: Settings):
    app = create_app(settings)
    with TestClient(app) as client:
        yield client
