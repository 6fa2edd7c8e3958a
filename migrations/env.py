# migrations/env.py
from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from fleet_api.wsgi import app as flask_app
from fleet_api.extensions import db
from fleet_api.models import load_all

config = context.config

# alembic.ini in dev often has no [loggers] section
if config.config_file_name is not None and config.get_section("loggers"):
    fileConfig(config.config_file_name, disable_existing_loggers=False)

with flask_app.app_context():
    load_all()
    db_uri = flask_app.config["SQLALCHEMY_DATABASE_URI"]

# always source the URL from Flask, never from alembic.ini
config.set_main_option("sqlalchemy.url", db_uri)

target_metadata = db.metadata

# ALTER on sqlite needs batch mode (copy-and-move tables)
render_as_batch = db_uri.startswith("sqlite")


def _configure(**kw) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=render_as_batch,
        **kw,
    )


def run_migrations_offline() -> None:
    """Emit SQL for the settlement schema without a live connection."""
    _configure(url=config.get_main_option("sqlalchemy.url"), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )

    with connectable.connect() as connection:
        _configure(connection=connection)
        with flask_app.app_context():
            with context.begin_transaction():
                context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
