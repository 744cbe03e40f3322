from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from rank_tracker.core.config import Settings, get_settings


class _DatabaseState:
    engine: Engine | None = None
    factory: sessionmaker | None = None


_state = _DatabaseState()


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(settings: Settings) -> Engine:
    url = settings.postgres_dsn
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    options: dict = {"connect_args": {"check_same_thread": False}}
    if settings.app_env.lower() == "test":
        options["poolclass"] = NullPool
    engine = create_engine(url, **options)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_engine() -> Engine:
    if _state.engine is None:
        _state.engine = build_engine(get_settings())
    return _state.engine


def _session_factory() -> sessionmaker:
    if _state.factory is None:
        _state.factory = sessionmaker(bind=get_engine(), autoflush=False, class_=Session)
    return _state.factory


def SessionLocal() -> Session:  # noqa: N802
    """Open a session on whichever factory is currently bound."""
    return _session_factory()()


def reset_engine_state() -> None:
    if _state.engine is not None:
        _state.engine.dispose()
    _state.engine = None
    _state.factory = None


def bind_session_factory_for_tests(factory: sessionmaker) -> None:
    reset_engine_state()
    _state.factory = factory
    _state.engine = factory.kw.get("bind")


def get_db() -> Generator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
