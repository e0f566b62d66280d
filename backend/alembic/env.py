from logging.config import fileConfig
from pathlib import Path

from dotenv import load_dotenv

# backend/.env must be loaded before settings are read
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from sqlalchemy import engine_from_config, pool
from alembic import context

from booking_sync.config import settings
from booking_sync.db.base import Base
from booking_sync.db.tables import ALL_TABLE_NAMES
from booking_sync.models import Booking, RemoteSessionRecord  # noqa: F401

# Models and migrations describe the same two tables
_registered = set(Base.metadata.tables)
_expected = set(ALL_TABLE_NAMES)
assert _registered == _expected, (
    f"Model tables {_registered} must match booking_sync.db.tables.ALL_TABLE_NAMES {_expected}."
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", settings.database_url)
# sqlite (local dev) cannot ALTER most columns in place
_batch = settings.database_url.startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_batch,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
