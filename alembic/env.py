"""Alembic environment: run migrations against DATABASE_URL_SYNC."""

from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

# Import every model module so Base.metadata is complete
import manahr.attendance.models  # noqa: F401
import manahr.auth.models  # noqa: F401
import manahr.common.audit  # noqa: F401
import manahr.core_hr.models  # noqa: F401
import manahr.leave.models  # noqa: F401
import manahr.payroll.models  # noqa: F401
import manahr.roles.models  # noqa: F401
from manahr.config import settings
from manahr.database import Base

config = context.config
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
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
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
