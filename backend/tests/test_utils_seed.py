"""Test seeding utilities to reduce duplication.

These helpers centralize creation of organizations, vendors, users and tickets. All
``ensure_*`` helpers are idempotent on their natural key; the shared in-memory database
lives for the whole session, so callers pass unique names (see ``unique``).
"""
import uuid
from typing import Iterable, Optional
from fixmarket import get_db
from fixmarket.constants.permissions import TIER_MARKETPLACE
from fixmarket.models.authz import Organization, User
from fixmarket.models.ticket import Ticket
from fixmarket.models.vendor import MaintenanceVendor


def unique(prefix: str) -> str:
    return f'{prefix}-{uuid.uuid4().hex[:8]}'


def ensure_organization(name: str) -> Organization:
    session = get_db()
    org = session.query(Organization).filter_by(name=name).one_or_none()
    if not org:
        org = Organization(name=name, contact_email=f'{name.lower()}@example.com')
        session.add(org); session.commit()
    return org


def ensure_vendor(name: str, tiers: Iterable[str] = (TIER_MARKETPLACE,), status: str = MaintenanceVendor.STATUS_ACTIVE) -> MaintenanceVendor:
    session = get_db()
    vendor = session.query(MaintenanceVendor).filter_by(name=name).one_or_none()
    if not vendor:
        vendor = MaintenanceVendor(name=name, tiers=list(tiers), status=status)
        session.add(vendor); session.commit()
    return vendor


def ensure_user(email: str, role: str, organization: Optional[Organization] = None,
                vendor: Optional[MaintenanceVendor] = None, tiers: Iterable[str] = (), name: Optional[str] = None) -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(
            name=name or email.split('@')[0],
            email=email,
            role=role,
            organization_id=organization.id if organization else None,
            maintenance_vendor_id=vendor.id if vendor else None,
            tiers=list(tiers),
            is_active=True,
        )
        session.add(u); session.commit()
    return u


def create_ticket(organization: Organization, reporter: User, title: str = 'Leaking kitchen faucet', **fields) -> Ticket:
    """Insert a ticket directly (non-idempotent); extra fields override the open defaults."""
    session = get_db()
    values = dict(
        organization_id=organization.id,
        title=title,
        description='Water pooling under the sink',
        priority=Ticket.PRIORITY_MEDIUM,
        status=Ticket.STATUS_OPEN,
        reporter_id=reporter.id,
        is_marketplace=False,
    )
    values.update(fields)
    t = Ticket(**values)
    session.add(t); session.commit()
    return t


__all__ = ['unique', 'ensure_organization', 'ensure_vendor', 'ensure_user', 'create_ticket']
