import os

os.environ["APP_ENV"] = "test"

import shutil
import uuid
from collections.abc import Iterator
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

import rank_tracker.db.session as session_module
from rank_tracker.core.config import Settings, get_settings
from rank_tracker.db.session import build_engine, get_db
from rank_tracker.providers.rank import clear_position_overrides
from rank_tracker.services import quota_service
from rank_tracker.services.quota_service import InMemoryCounterStore

BACKEND_DIR = Path(__file__).resolve().parents[1]
REQUIRED_TABLES = {"tracked_keywords", "keyword_rank_observations", "tracker_settings", "task_executions"}


def _sqlite_url(path: Path) -> str:
    return f"sqlite:///{path.as_posix()}"


def _test_engine(path: Path) -> Engine:
    return build_engine(Settings(app_env="test", postgres_dsn=_sqlite_url(path)))


@pytest.fixture(scope="session")
def template_db(tmp_path_factory) -> Path:
    """A migrated SQLite file that each test copies instead of re-running Alembic."""
    path = tmp_path_factory.mktemp("db") / "template.sqlite3"
    os.environ["POSTGRES_DSN"] = _sqlite_url(path)
    get_settings.cache_clear()
    session_module.reset_engine_state()

    alembic_cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", _sqlite_url(path))
    command.upgrade(alembic_cfg, "head")

    engine = _test_engine(path)
    try:
        missing = REQUIRED_TABLES - set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    if missing:
        raise RuntimeError(f"Migrations did not create: {sorted(missing)}")
    return path


@pytest.fixture(autouse=True)
def isolated_scheduler_state(monkeypatch) -> Iterator[None]:
    monkeypatch.setattr(quota_service, "_local_counter_store", InMemoryCounterStore())
    clear_position_overrides()
    yield
    clear_position_overrides()


@pytest.fixture()
def db_session(template_db: Path, tmp_path: Path) -> Iterator[Session]:
    db_path = tmp_path / f"{uuid.uuid4().hex}.sqlite3"
    shutil.copy2(template_db, db_path)
    engine = _test_engine(db_path)
    factory = sessionmaker(bind=engine, autoflush=False)
    # Eager Celery tasks open their own sessions; point them at this file too.
    session_module.bind_session_factory_for_tests(factory)

    session = factory()
    try:
        yield session
    finally:
        session.close()
        session_module.reset_engine_state()


@pytest.fixture()
def client(db_session: Session) -> Iterator[TestClient]:
    from rank_tracker.main import app

    def _get_test_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_test_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
