from __future__ import annotations
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context
import os, sys

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if BACKEND_DIR not in sys.path:
    sys.path.append(BACKEND_DIR)

from fixmarket import import_models  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# A URL set on the Config object (tests do this) takes precedence over DATABASE_URL
if not config.get_main_option('sqlalchemy.url'):
    config.set_main_option('sqlalchemy.url', os.getenv('DATABASE_URL', 'sqlite:///dev.db'))

target_metadata = import_models()


def _configure(**kwargs):
    # SQLite cannot ALTER most constraints in place
    url = config.get_main_option('sqlalchemy.url')
    context.configure(target_metadata=target_metadata, render_as_batch=url.startswith('sqlite'), **kwargs)


def run_offline():
    _configure(url=config.get_main_option('sqlalchemy.url'), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_online():
    engine = engine_from_config(config.get_section(config.config_ini_section), prefix='sqlalchemy.', poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
