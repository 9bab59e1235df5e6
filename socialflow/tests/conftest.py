import pytest
from unittest.mock import MagicMock

from socialflow.api.client import WebhookClient
from socialflow.cache import QueryCache
from socialflow.config import Settings
from socialflow.db import create_sqlite_engine
from socialflow.models import Base


@pytest.fixture
def settings():
    return Settings(
        api_base="http://n8n.test/webhook",
        n8n_dashboard_url="http://n8n.test",
        query_retry=0,
        query_retry_delay=0,
        view_wait_seconds=2.0,
        sync_refetch_delay=60,
    )


@pytest.fixture
def mock_client():
    return MagicMock(spec=WebhookClient)


@pytest.fixture
def cache():
    return QueryCache(default_retry=0, retry_delay=0)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "socialflow.db")


@pytest.fixture
def engine(db_path):
    engine = create_sqlite_engine(db_path)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()

