from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

from gatepass.core.config import settings
from gatepass.core.base import Base

# Imported for their side effect of registering tables on Base.metadata.
from gatepass.models.user import User, UserRole  # noqa: F401
from gatepass.models.refresh_token import RefreshToken  # noqa: F401
from gatepass.models.password_reset_token import PasswordResetToken  # noqa: F401
from gatepass.models.event import Event  # noqa: F401
from gatepass.models.resource import ClaimableResource, ScanRecord  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Alembic runs with the migrator (DDL-capable) credentials when they exist.
migrations_url = settings.migrations_database_url

# ConfigParser treats "%" as interpolation markers; escape them for the .ini writer.
config.set_main_option("sqlalchemy.url", migrations_url.replace("%", "%%"))

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (emit SQL, no DBAPI needed)."""
    context.configure(
        url=migrations_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(
        migrations_url,
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
