from __future__ import annotations
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Set
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import and_, or_, false
from fixmarket.constants.permissions import (
    ROLE_PRESETS, ROLE_ROOT, ROLE_ORG_ADMIN, ROLE_ORG_SUBADMIN, ROLE_MAINTENANCE_ADMIN,
    ROLE_TECHNICIAN, ORGANIZATION_ROLES, TIER_MARKETPLACE,
)
from fixmarket.errors import PermissionDenied
from fixmarket.models.ticket import Ticket
from fixmarket.models.vendor import MaintenanceVendor


@dataclass(frozen=True)
class Actor:
    """Request-scoped caller context, built once from the JWT and passed into services."""
    user_id: int
    role: str
    organization_id: Optional[int] = None
    maintenance_vendor_id: Optional[int] = None
    tiers: FrozenSet[str] = frozenset()
    perms: FrozenSet[str] = frozenset()

    @property
    def is_root(self) -> bool:
        return self.role == ROLE_ROOT

    @property
    def is_organization_user(self) -> bool:
        return self.role in ORGANIZATION_ROLES

    @property
    def is_vendor_admin(self) -> bool:
        return self.role == ROLE_MAINTENANCE_ADMIN

    @property
    def is_technician(self) -> bool:
        return self.role == ROLE_TECHNICIAN

    def has_tier(self, tier: str) -> bool:
        return tier in self.tiers

    def can(self, *codes: str) -> bool:
        if '*' in self.perms:
            return True
        return all(c in self.perms for c in codes)


def effective_permissions(role: Optional[str], explicit: Iterable[str] = ()) -> Set[str]:
    return set(explicit or []) | set(ROLE_PRESETS.get(role or '', []))


def actor_from_claims(identity, claims: dict) -> Actor:
    role = claims.get('role') or ''
    return Actor(
        user_id=int(identity),
        role=role,
        organization_id=claims.get('organization_id'),
        maintenance_vendor_id=claims.get('maintenance_vendor_id'),
        tiers=frozenset(claims.get('tiers') or []),
        perms=frozenset(effective_permissions(role, claims.get('perms', []))),
    )


def current_actor() -> Actor:
    return actor_from_claims(get_jwt_identity(), get_jwt())


def has_permissions(*codes: str) -> bool:
    return current_actor().can(*codes)


def can_open_marketplace(actor: Actor) -> bool:
    """Root and org admins may always post to the marketplace; sub-admins need the tier."""
    if actor.role in (ROLE_ROOT, ROLE_ORG_ADMIN):
        return True
    return actor.role == ROLE_ORG_SUBADMIN and actor.has_tier(TIER_MARKETPLACE)


def vendor_has_marketplace_access(session, vendor_id: Optional[int]) -> bool:
    if vendor_id is None:
        return False
    vendor = session.get(MaintenanceVendor, vendor_id)
    return bool(vendor and vendor.status == MaintenanceVendor.STATUS_ACTIVE and vendor.has_tier(TIER_MARKETPLACE))


def assert_organization_access(actor: Actor, organization_id: int):
    if actor.is_root:
        return
    if not actor.is_organization_user or actor.organization_id != organization_id:
        raise PermissionDenied(description='Organization access denied')


def assert_vendor_staff(actor: Actor, vendor_id: Optional[int]):
    if actor.is_root:
        return
    if actor.maintenance_vendor_id is None or actor.maintenance_vendor_id != vendor_id:
        raise PermissionDenied(description='Vendor access denied')


def ticket_visibility_filter(session, actor: Actor):
    """SQL criterion restricting tickets to those the actor may see."""
    if actor.is_root:
        return None
    if actor.is_organization_user:
        return Ticket.organization_id == actor.organization_id
    if actor.is_technician:
        return Ticket.assignee_id == actor.user_id
    if actor.is_vendor_admin:
        own = Ticket.maintenance_vendor_id == actor.maintenance_vendor_id
        if vendor_has_marketplace_access(session, actor.maintenance_vendor_id):
            market = and_(Ticket.is_marketplace.is_(True), Ticket.status == Ticket.STATUS_ACCEPTED)
            return or_(own, market)
        return own
    return false()


def assert_ticket_visible(session, actor: Actor, ticket: Ticket):
    if actor.is_root:
        return
    if actor.is_organization_user and ticket.organization_id == actor.organization_id:
        return
    if actor.is_technician and ticket.assignee_id == actor.user_id:
        return
    if actor.is_vendor_admin:
        if ticket.maintenance_vendor_id is not None and ticket.maintenance_vendor_id == actor.maintenance_vendor_id:
            return
        if ticket.is_marketplace and vendor_has_marketplace_access(session, actor.maintenance_vendor_id):
            return
    raise PermissionDenied(description='Ticket access denied')
