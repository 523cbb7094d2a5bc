from __future__ import annotations
from typing import Any, Dict, Optional
from fixmarket.models.audit import AuditLog
from fixmarket.services.policy import Actor


def add_audit(session, actor: Optional[Actor], action: str, entity: Optional[str] = None,
              entity_id: Optional[Any] = None, meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """Stage an audit log entry in ``session``.

    Parameters:
      action: short action code e.g. BID.ACCEPT, TKT.START, INV.PAY
      entity: optional entity name (Ticket, MarketplaceBid, Invoice, ...)
      entity_id: optional primary key, stored as a string
      meta: additional JSON-safe dictionary (shallow copied)
    """
    log = AuditLog(
        actor_user_id=actor.user_id if actor else 0,
        actor_role=actor.role if actor else None,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log


def audit_trail(session, entity: str, entity_id: Any):
    return (
        session.query(AuditLog)
        .filter(AuditLog.entity == entity, AuditLog.entity_id == str(entity_id))
        .order_by(AuditLog.id.asc())
        .all()
    )
