"""
Configurazione pytest e fixture comuni.
"""
from datetime import date

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from core.config import ServiceConfig
from core.database import create_engine_for
from core.employee_store import EmployeeStore
from ingest.types import EmployeeRecord


@pytest.fixture
def db_url(tmp_path):
    """URL SQLite su file temporaneo (WAL richiede un file, non :memory:)."""
    return f"sqlite+aiosqlite:///{tmp_path / 'employees.db'}"


@pytest_asyncio.fixture
async def store(db_url):
    """Record store inizializzato su database temporaneo."""
    engine = create_engine_for(db_url, busy_timeout_sec=10.0)
    employee_store = EmployeeStore(engine)
    await employee_store.initialize()
    yield employee_store
    await employee_store.close()


@pytest.fixture
def service_config(db_url):
    """Configurazione servizio per i test API."""
    return ServiceConfig(database_url=db_url, max_upload_bytes=64 * 1024)


@pytest.fixture
def client(service_config):
    """TestClient con startup/shutdown eseguiti (engine creato nel loop del client)."""
    from api.main import create_app

    with TestClient(create_app(service_config)) as test_client:
        yield test_client


@pytest.fixture
def make_record():
    """Factory per record validi."""
    def _make(index: int = 0, **overrides) -> EmployeeRecord:
        values = {
            "name": f"Employee {index:03d}",
            "email": f"employee{index}@example.com",
            "phone": f"010-1234-{index:04d}",
            "joined": date(2020, 1, 1),
            "extra": {},
        }
        values.update(overrides)
        return EmployeeRecord(**values)
    return _make
