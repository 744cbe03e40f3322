from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from rank_tracker import models  # noqa: F401
from rank_tracker.core.config import get_settings
from rank_tracker.db.base import Base

config = context.config
target_metadata = Base.metadata

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def database_url() -> str:
    """An explicitly configured ``sqlalchemy.url`` wins over POSTGRES_DSN."""
    return config.get_main_option("sqlalchemy.url") or get_settings().postgres_dsn


def run_offline() -> None:
    context.configure(url=database_url(), target_metadata=target_metadata, literal_binds=True, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(database_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
