"""Central enum-like definitions for user roles, tiers and permission codes.
Permission codes follow SERVICE.ACTION; add new codes instead of renaming existing ones.
"""
from __future__ import annotations
from typing import List, Dict

ROLE_ROOT = 'root'
ROLE_ORG_ADMIN = 'org_admin'
ROLE_ORG_SUBADMIN = 'org_subadmin'
ROLE_MAINTENANCE_ADMIN = 'maintenance_admin'
ROLE_TECHNICIAN = 'technician'
ALL_ROLES = (ROLE_ROOT, ROLE_ORG_ADMIN, ROLE_ORG_SUBADMIN, ROLE_MAINTENANCE_ADMIN, ROLE_TECHNICIAN)

ORGANIZATION_ROLES = (ROLE_ROOT, ROLE_ORG_ADMIN, ROLE_ORG_SUBADMIN)
VENDOR_ROLES = (ROLE_MAINTENANCE_ADMIN, ROLE_TECHNICIAN)

TIER_MARKETPLACE = 'marketplace'

SERVICE_ACTIONS = {
    'TKT': ['READ', 'CREATE', 'ACCEPT', 'REJECT', 'START', 'COMPLETE', 'DISPATCH'],
    'BID': ['READ', 'PLACE', 'DECIDE', 'APPROVE'],
    'WO': ['READ', 'CREATE'],
    'PART': ['READ', 'MANAGE'],
    'INV': ['READ', 'CREATE', 'PAY'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_PRESETS: Dict[str, List[str]] = {
    ROLE_ROOT: ['*'],
    ROLE_ORG_ADMIN: [
        'TKT.READ', 'TKT.CREATE', 'TKT.ACCEPT', 'TKT.REJECT',
        'BID.READ', 'BID.DECIDE', 'BID.APPROVE',
        'WO.READ',
        'INV.READ', 'INV.PAY',
    ],
    # Sub-admins decide bids but cannot give the final approval sign-off
    ROLE_ORG_SUBADMIN: [
        'TKT.READ', 'TKT.CREATE', 'TKT.ACCEPT', 'TKT.REJECT',
        'BID.READ', 'BID.DECIDE',
        'WO.READ',
        'INV.READ',
    ],
    ROLE_MAINTENANCE_ADMIN: [
        'TKT.READ', 'TKT.ACCEPT', 'TKT.START', 'TKT.COMPLETE', 'TKT.DISPATCH',
        'BID.READ', 'BID.PLACE',
        'WO.READ', 'WO.CREATE',
        'PART.READ', 'PART.MANAGE',
        'INV.READ', 'INV.CREATE',
    ],
    ROLE_TECHNICIAN: [
        'TKT.READ', 'TKT.START', 'TKT.COMPLETE',
        'WO.READ', 'WO.CREATE',
        'PART.READ',
    ],
}
