from __future__ import annotations
from flask import Blueprint, request
from fixmarket import get_db
from fixmarket.decorators.auth import require_permissions
from fixmarket.decorators.audit import audit_log
from fixmarket.models.part import Part, PartPriceHistory
from fixmarket.services.parts_catalog import create_part, get_part, part_price_cents, price_history, update_part
from fixmarket.services.policy import assert_vendor_staff, current_actor
from fixmarket.utils.dates import iso
from fixmarket.utils.listing import apply_filters, apply_multi_sort, paginated
from fixmarket.utils.validation import parse_bool

parts_bp = Blueprint('parts', __name__)

PART_SORT_FIELDS = {
    'id': Part.id,
    'name': Part.name,
    'cost_cents': Part.cost_cents,
    'updated_at': Part.updated_at,
}

PART_FILTERS = {
    'name': {
        'op': lambda q, v: q.filter(Part.name.ilike(f'%{v}%')),
    },
    'is_active': {
        'coerce': lambda v: parse_bool(v, 'is_active'),
        'op': lambda q, v: q.filter(Part.is_active.is_(v)),
    },
}


def part_json(p: Part):
    return {
        'id': p.id,
        'maintenance_vendor_id': p.maintenance_vendor_id,
        'name': p.name,
        'description': p.description,
        'cost_cents': p.cost_cents,
        'markup_percentage': str(p.markup_percentage),
        'round_to_ninety_nine': p.round_to_ninety_nine,
        'selling_price_cents': part_price_cents(p),
        'is_active': p.is_active,
    }


def history_json(h: PartPriceHistory):
    return {
        'id': h.id,
        'part_id': h.part_id,
        'old_cost_cents': h.old_cost_cents,
        'new_cost_cents': h.new_cost_cents,
        'old_price_cents': h.old_price_cents,
        'new_price_cents': h.new_price_cents,
        'markup_percentage': str(h.markup_percentage),
        'round_to_ninety_nine': h.round_to_ninety_nine,
        'changed_by': h.changed_by,
        'changed_at': iso(h.changed_at),
    }


def _prefetch_part(part_id: int):
    p = get_db().get(Part, part_id)
    return part_json(p) if p else {}


@parts_bp.get('/maintenance-vendors/<int:vendor_id>/parts')
@require_permissions('PART.READ')
def list_parts(vendor_id: int):
    session = get_db()
    assert_vendor_staff(current_actor(), vendor_id)
    q = session.query(Part).filter(Part.maintenance_vendor_id == vendor_id)
    q = apply_filters(q, PART_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), PART_SORT_FIELDS, Part.id)
    return paginated(q, part_json)


@parts_bp.post('/maintenance-vendors/<int:vendor_id>/parts')
@require_permissions('PART.MANAGE')
@audit_log('PART.CREATE', entity='Part', entity_id_key='id', meta_keys=['name', 'cost_cents', 'selling_price_cents'])
def create(vendor_id: int):
    session = get_db()
    part = create_part(session, current_actor(), vendor_id, request.get_json(silent=True) or {})
    session.commit()
    return part_json(part), 201


@parts_bp.put('/parts/<int:part_id>')
@require_permissions('PART.MANAGE')
@audit_log('PART.UPDATE', entity='Part', entity_id_key='id',
           diff_keys=['name', 'cost_cents', 'markup_percentage', 'round_to_ninety_nine', 'selling_price_cents', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_part(kw.get('part_id')))
def update(part_id: int):
    session = get_db()
    part = update_part(session, current_actor(), get_part(session, part_id), request.get_json(silent=True) or {})
    session.commit()
    return part_json(part)


@parts_bp.get('/parts/<int:part_id>/price-history')
@require_permissions('PART.READ')
def part_price_history(part_id: int):
    session = get_db()
    part = get_part(session, part_id)
    assert_vendor_staff(current_actor(), part.maintenance_vendor_id)
    return {'data': [history_json(h) for h in price_history(session, part)]}
