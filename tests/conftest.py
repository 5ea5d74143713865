"""
Shared fixtures: a throwaway SQLite database, a scripted sync function,
a queue standing in for the chain scheduler, and a fixed clock.
"""
import os
import tempfile
from datetime import datetime

_DB_DIR = tempfile.mkdtemp(prefix="adimport-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["LOG_TO_FILE"] = "false"
os.environ["SYNC_FUNCTION_URL"] = "http://sync.test/functions/v1/meta-ads-sync"
os.environ["CHAIN_TRIGGER_URL"] = "http://api.test/imports/month"
os.environ["SYNC_SERVICE_KEY"] = "service-key"
os.environ["CHAIN_DISPATCH_MODE"] = "http"

import pytest  # noqa: E402

import adimport.models  # noqa: E402,F401
from adimport.connectors.meta_ads_sync import SyncPrimitiveError, SyncPrimitiveResult  # noqa: E402
from adimport.models.base import Base, SessionLocal, engine  # noqa: E402
from adimport.models.project import Project  # noqa: E402
from adimport.services.chain_dispatcher import ChainDispatcher  # noqa: E402
from adimport.services.change_feed import ChangeFeed  # noqa: E402
from adimport.services.month_import_service import MonthImportService  # noqa: E402

PROJECT_ID = "11111111-2222-3333-4444-555555555555"


class FakeSyncClient:
    """Sync function stand-in; fails the months listed in `failures`."""

    def __init__(self, counts=None, failures=None, default_count=30):
        self.counts = counts or {}
        self.failures = failures or {}
        self.default_count = default_count
        self.calls = []

    def sync_month(self, project_id, ad_account_id, since, until):
        self.calls.append((project_id, ad_account_id, since, until))
        key = (since.year, since.month)
        if key in self.failures:
            raise SyncPrimitiveError(self.failures[key])
        return SyncPrimitiveResult(records_count=self.counts.get(key, self.default_count))


class QueueDispatcher(ChainDispatcher):
    """Collects queued chain links instead of scheduling them."""

    def __init__(self):
        self.queued = []

    def dispatch(self, request, delay_seconds=0.0):
        self.queued.append((request, delay_seconds))


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def run_chain(service, dispatcher, request, limit=60):
    """Run a request, then every link it queues, the way separate invocations would."""
    results = [service.import_month(request)]
    while dispatcher.queued and len(results) < limit:
        next_request, _delay = dispatcher.queued.pop(0)
        results.append(service.import_month(next_request))
    return results


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def project(db):
    project = Project(id=PROJECT_ID, name="Acme Clinic", ad_account_id="act_123456")
    db.add(project)
    db.commit()
    return project


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def clock():
    # Mid-June 2024: June is the current month
    return FixedClock(datetime(2024, 6, 15, 12, 0, 0))


@pytest.fixture
def sync_client():
    return FakeSyncClient()


@pytest.fixture
def dispatcher():
    return QueueDispatcher()


@pytest.fixture
def service(db, sync_client, dispatcher, feed, clock):
    return MonthImportService(db, sync_client=sync_client, dispatcher=dispatcher, feed=feed, clock=clock)
