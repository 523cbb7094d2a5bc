import os
import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

MIGRATIONS = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'migrations'))

TABLES = {
    'organizations', 'maintenance_vendors', 'users', 'tickets', 'marketplace_bids',
    'work_orders', 'parts', 'part_price_history', 'invoices', 'audit_logs',
}


def _config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option('script_location', MIGRATIONS)
    cfg.set_main_option('sqlalchemy.url', url)
    return cfg


def test_upgrade_and_downgrade(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    cfg = _config(url)
    command.upgrade(cfg, 'head')
    engine = create_engine(url)
    insp = inspect(engine)
    assert TABLES <= set(insp.get_table_names())
    indexes = {ix['name']: ix for ix in insp.get_indexes('marketplace_bids')}
    assert indexes['uq_marketplace_bids_active_version']['unique']
    command.downgrade(cfg, 'base')
    assert not TABLES & set(inspect(create_engine(url)).get_table_names())


def test_migrated_schema_allows_one_live_bid_version(tmp_path):
    url = f"sqlite:///{tmp_path / 'bids.db'}"
    command.upgrade(_config(url), 'head')
    engine = create_engine(url)
    insert = text(
        'INSERT INTO marketplace_bids (ticket_id, maintenance_vendor_id, submitted_by, total_amount_cents, '
        "status, approved, version, is_superseded, parts, created_at) "
        "VALUES (1, 1, 1, 100, 'pending', 0, :version, :superseded, '{}', '2026-01-01 00:00:00')"
    )
    with engine.begin() as conn:
        conn.execute(insert, {'version': 1, 'superseded': 1})
        conn.execute(insert, {'version': 2, 'superseded': 0})
    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(insert, {'version': 3, 'superseded': 0})
