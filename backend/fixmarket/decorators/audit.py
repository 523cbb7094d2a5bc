"""Audit logging decorator to reduce repetitive add_audit() calls in route handlers.

Usage examples:

@audit_log('BID.ACCEPT', entity='MarketplaceBid', entity_id_arg='bid_id', meta_keys=['ticket_id', 'status'])
def accept(bid_id): ...

@audit_log('TKT.START', entity='Ticket', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _snapshot(kw.get('ticket_id')))
def start_ticket(ticket_id): ...

Parameters:
  action: required audit action code (e.g. BID.PLACE)
  entity: optional entity label (Ticket, MarketplaceBid, Invoice)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: keys to project from the returned JSON into meta.
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs).
    If provided it overrides meta_keys.
  diff_keys / pre_fetch: pre_fetch(args, kwargs) returns a dict snapshot taken before the view
    runs; keys in diff_keys whose value changed land in meta['changes'] as {before, after}.

The view commits its own work; the audit row is written in a follow-up commit and a
failure there is logged without failing the response. Error responses are never audited.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from fixmarket import get_db
from fixmarket.services.audit import add_audit
from fixmarket.services.policy import current_actor

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, getattr(rv, 'status_code', 200)


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            changes[k] = {'before': before.get(k), 'after': after.get(k)}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if diff_keys and pre_fetch else None
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs)
            elif meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            else:
                meta = None
            if before_snapshot:
                changes = _diff(before_snapshot, data, diff_keys)
                if changes:
                    meta = dict(meta or {})
                    meta['changes'] = changes
            session = get_db()
            try:
                add_audit(session, current_actor(), action, entity, entity_id, meta)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception('Audit write failed for %s %s', action, entity_id)
            return rv
        return wrapper
    return outer
