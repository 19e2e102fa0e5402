import pytest
from fastapi.testclient import TestClient

from enst.deps import get_metrics_registry, get_settings

_ENV_KEYS = (
    "ENST_WINDOW_SIZE_S",
    "ENST_DEFAULT_PRICE_USD_PER_MWH",
    "ENST_GPU_WEIGHT",
    "ENST_WORK_UNITS_MODE",
    "ENST_DATA_ROOT",
    "DEMO_MODE",
    "LOG_DIR",
    "LOG_LEVEL",
)


def _reset_singletons():
    get_settings.cache_clear()
    get_metrics_registry.cache_clear()


@pytest.fixture
def make_client(monkeypatch):
    """Builds a fresh app against the given environment."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)

    def _make(**env) -> TestClient:
        for key, value in env.items():
            monkeypatch.setenv(key, str(value))
        _reset_singletons()
        from enst.main import create_app
        return TestClient(create_app())

    yield _make
    _reset_singletons()


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client(DEMO_MODE="true")
