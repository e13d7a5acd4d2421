import pytest
from fastapi.testclient import TestClient

from finance_tracker.main import create_app
from finance_tracker.persistence import ImageCache, RecordGateway, SettingsRepository
from finance_tracker.services.analytics import Analytics
from finance_tracker.store import Store


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "tracker.db"


@pytest.fixture
def store(db_path):
    with Store(db_path) as opened:
        yield opened


@pytest.fixture
def records(store):
    return RecordGateway(store)


@pytest.fixture
def settings_repo(store):
    return SettingsRepository(store)


@pytest.fixture
def images(store):
    return ImageCache(store)


@pytest.fixture
def analytics(store):
    return Analytics(store)


@pytest.fixture
def client(tmp_path, db_path):
    app = create_app(db_path, tmp_path / "exports")
    with TestClient(app) as test_client:
        yield test_client
