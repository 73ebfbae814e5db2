from logging.config import fileConfig
from alembic import context
from dotenv import load_dotenv
import os


load_dotenv()

from config import get_sync_engine
from models import Base


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Tables owned by the hosted Postgres provider, never managed here
EXTERNAL_SCHEMAS = {'auth', 'storage', 'realtime', 'vault', 'extensions', 'graphql', 'graphql_public'}


def include_object(object, name, type_, reflected, compare_to):
    if getattr(object, 'schema', None) in EXTERNAL_SCHEMAS:
        return False
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required for migrations")

    database_url = database_url.replace("postgresql+asyncpg://", "postgresql://")
    database_url = database_url.replace("sqlite+aiosqlite://", "sqlite://")

    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""

    connectable = get_sync_engine()

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
