"""Alembic environment configuration for Storefront-Engine."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from storefront_engine.common.config import get_settings
from storefront_engine.common.models import Base

# Import all models so they register with Base.metadata
import storefront_engine.catalog.models  # noqa: F401
import storefront_engine.discounts.models  # noqa: F401
import storefront_engine.purchases.models  # noqa: F401
import storefront_engine.licensing.models  # noqa: F401
import storefront_engine.payouts.models  # noqa: F401
import storefront_engine.audit.models  # noqa: F401

config = context.config

# Allow CLI override: alembic -x sqlalchemy.url=... upgrade head
cmd_url = context.get_x_argument(as_dictionary=True).get("sqlalchemy.url")
if cmd_url:
    config.set_main_option("sqlalchemy.url", cmd_url)
elif not config.get_main_option("sqlalchemy.url"):
    # Migrations run synchronously: drop the async driver from the app URL
    sync_url = get_settings().db_url.replace("+aiosqlite", "")
    config.set_main_option("sqlalchemy.url", sync_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, target_metadata=target_metadata, literal_binds=True)
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
            # SQLite cannot ALTER constraints in place
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
