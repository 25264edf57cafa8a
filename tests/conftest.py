"""
Test configuration and fixtures for the shortlink service.
This centralizes all test setup, making individual tests clean.
"""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from shortlink_app.clock import FrozenClock
from shortlink_app.database.connection import Base, create_db_engine
from shortlink_app.dependencies import (
    get_click_recorder,
    get_statistics_service,
    get_url_service,
)
from shortlink_app.models import URL, Statistics
from shortlink_app.services.click_recorder import ClickRecorder
from shortlink_app.services.qr_renderer import QRRenderer
from shortlink_app.services.short_code_strategies import NanoidShortCodeStrategy
from shortlink_app.services.statistics_service import StatisticsService
from shortlink_app.services.url_service import URLService
from shortlink_app.storage.factory import UNIQUE_KEYS, Collection
from shortlink_app.storage.strategies import InMemoryDocumentStore, SQLAlchemyDocumentStore


class FakeQRRenderer(QRRenderer):
    """Deterministic stand-in: records what it was asked to render"""

    def __init__(self):
        self.rendered = []

    def render(self, text: str) -> bytes:
        self.rendered.append(text)
        return b"\x89PNG\r\n\x1a\n" + text.encode()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def qr_renderer():
    return FakeQRRenderer()


@pytest.fixture
def session_factory(tmp_path):
    """
    Fresh SQLite database file per test.
    This ensures tests are isolated and don't affect each other.
    """
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sqlalchemy"])
def stores(request):
    """(url store, statistics store) for each backend"""
    if request.param == "memory":
        return (
            InMemoryDocumentStore(unique_keys=UNIQUE_KEYS[Collection.URLS]),
            InMemoryDocumentStore(unique_keys=UNIQUE_KEYS[Collection.STATISTICS]),
        )
    factory = request.getfixturevalue("session_factory")
    return (
        SQLAlchemyDocumentStore(URL, factory),
        SQLAlchemyDocumentStore(Statistics, factory),
    )


@pytest.fixture
def url_store(stores):
    return stores[0]


@pytest.fixture
def stats_store(stores):
    return stores[1]


@pytest.fixture
def statistics_service(stats_store, url_store, clock):
    return StatisticsService(statistics=stats_store, urls=url_store, clock=clock)


@pytest.fixture
def recorder(statistics_service, url_store):
    return ClickRecorder(statistics_service=statistics_service, urls=url_store)


@pytest.fixture
def url_service(url_store, statistics_service, recorder, qr_renderer, clock):
    return URLService(
        urls=url_store,
        statistics_service=statistics_service,
        recorder=recorder,
        short_code_strategy=NanoidShortCodeStrategy(length=6),
        qr_renderer=qr_renderer,
        clock=clock,
    )


@pytest.fixture
def client(url_service, statistics_service, recorder):
    """
    Test client with the service dependencies overridden.
    This is the main fixture that API tests use.
    """
    app.dependency_overrides[get_url_service] = lambda: url_service
    app.dependency_overrides[get_statistics_service] = lambda: statistics_service
    app.dependency_overrides[get_click_recorder] = lambda: recorder

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
