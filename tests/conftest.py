from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from app import create_app
from config import TestingConfig
from visitor_management import build_system
from visitor_management.modules.settings import CoreSettings


class FrozenClock:
    """Callable clock the tests can move around."""

    def __init__(self, current):
        self.current = current

    def __call__(self):
        return self.current

    def set(self, current):
        self.current = current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 1, 16, 9, 0, 0))


@pytest.fixture
def settings(tmp_path, clock):
    return CoreSettings(
        database_path=str(tmp_path / 'visitors.db'),
        timezone='America/Los_Angeles',
        clock=clock
    )


@pytest.fixture
def system(settings, tmp_path):
    visitor_system = build_system(settings, str(tmp_path / 'exports'))
    yield visitor_system
    visitor_system.db_manager.close_all_connections()


@pytest.fixture
def db(system):
    return system.db_manager


@pytest.fixture
def identity(system):
    return system.identity_resolver


@pytest.fixture
def tracker(system):
    return system.visit_tracker


@pytest.fixture
def compliance(system):
    return system.compliance_calculator


@pytest.fixture
def ranker(system):
    return system.search_ranker


@pytest.fixture
def importer(system):
    return system.import_reconciler


@pytest.fixture
def purger(system):
    return system.retention_purger


@pytest.fixture
def checkin_service(system):
    return system.checkin_service


@pytest.fixture
def app(settings, tmp_path):
    class TempConfig(TestingConfig):
        DATABASE_PATH = tmp_path / 'visitors.db'
        EXPORTS_FOLDER = tmp_path / 'exports'
        LOG_FILE = tmp_path / 'logs' / 'visitors.log'

    flask_app = create_app(TempConfig, settings=replace(settings, auto_purge_enabled=False))
    yield flask_app
    flask_app.extensions['visitor_system'].db_manager.close_all_connections()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def checkin_payload():
    def make(name='Jane Doe', visitor_type='general', **overrides):
        payload = {
            'name': name,
            'email': f"{name.lower().replace(' ', '.')}@example.com",
            'phone': '5551234567',
            'company': 'Acme Corp',
            'visitor_type': visitor_type
        }
        payload.update(overrides)
        return payload
    return make
