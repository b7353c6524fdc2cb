"""Migration runner for the user table.

The database URL comes from the application settings unless it is given
explicitly with ``alembic -x url=...``.
"""

from logging.config import fileConfig

from alembic import context

from app.config import Settings
from app.database import Base, create_db_engine
from app.models import user  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

settings = Settings()
settings.DATABASE_URL = context.get_x_argument(as_dictionary=True).get("url", settings.DATABASE_URL)
database_url = settings.DATABASE_URL


def _configure(**kwargs) -> None:
    # SQLite cannot ALTER most columns in place
    context.configure(
        target_metadata=Base.metadata,
        render_as_batch=database_url.startswith("sqlite"),
        compare_type=True,
        **kwargs,
    )


def migrate_offline() -> None:
    """Emit the migration SQL without connecting."""
    _configure(url=database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def migrate_online() -> None:
    """Apply migrations over an engine built the same way the app builds its own."""
    engine = create_db_engine(settings)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    migrate_offline()
else:
    migrate_online()
