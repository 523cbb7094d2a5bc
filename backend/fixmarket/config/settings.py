"""Environment-driven settings merged into ``app.config`` by ``create_app``."""
from __future__ import annotations
import os
from typing import Any, Dict

DEFAULTS: Dict[str, Any] = {
    'DATABASE_URL': 'sqlite:///dev.db',
    'JWT_SECRET_KEY': 'dev-secret',
    'LOG_LEVEL': 'INFO',
    'DEFAULT_HOURLY_RATE_CENTS': 7500,
    'DEFAULT_NET_DAYS': 30,
    'SIBLING_BID_REJECTION_REASON': 'Ticket awarded to another vendor',
    'PAGINATION_DEFAULT_LIMIT': 50,
    'PAGINATION_MAX_LIMIT': 200,
}

_INT_KEYS = {'DEFAULT_HOURLY_RATE_CENTS', 'DEFAULT_NET_DAYS', 'PAGINATION_DEFAULT_LIMIT', 'PAGINATION_MAX_LIMIT'}


def load_settings() -> Dict[str, Any]:
    settings = {}
    for key, default in DEFAULTS.items():
        raw = os.getenv(key)
        if raw is None:
            settings[key] = default
        elif key in _INT_KEYS:
            try:
                settings[key] = int(raw)
            except ValueError:
                raise ValueError(f'{key} must be int')
        else:
            settings[key] = raw
    return settings


def normalize_pagination(limit_raw, offset_raw, default_limit: int = 50, max_limit: int = 200):
    try:
        limit = int(limit_raw) if limit_raw is not None else default_limit
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, max_limit))
    offset = max(0, offset)
    return limit, offset
