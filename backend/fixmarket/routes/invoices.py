from __future__ import annotations
from flask import Blueprint, request
from fixmarket import get_db
from fixmarket.decorators.auth import require_permissions
from fixmarket.decorators.audit import audit_log
from fixmarket.models.invoice import Invoice
from fixmarket.routes.tickets import load_visible_ticket
from fixmarket.services.invoicing import (
    assemble_invoice, assert_invoice_visible, create_invoice, get_invoice, pay_invoice,
)
from fixmarket.services.policy import current_actor
from fixmarket.utils.dates import iso, utcnow
from fixmarket.utils.listing import apply_multi_sort, paginated, resource_response
from fixmarket.utils.validation import parse_id

invoices_bp = Blueprint('invoices', __name__)

INVOICE_SORT_FIELDS = {
    'id': Invoice.id,
    'invoice_number': Invoice.invoice_number,
    'due_date': Invoice.due_date,
    'total_cents': Invoice.total_cents,
    'updated_at': Invoice.updated_at,
}


def invoice_json(inv: Invoice):
    return {
        'id': inv.id,
        'invoice_number': inv.invoice_number,
        'ticket_id': inv.ticket_id,
        'organization_id': inv.organization_id,
        'maintenance_vendor_id': inv.maintenance_vendor_id,
        'work_order_ids': inv.work_order_ids or [],
        'lines': inv.lines or {},
        'subtotal_cents': inv.subtotal_cents,
        'tax_scope': inv.tax_scope,
        'tax_percentage': str(inv.tax_percentage),
        'tax_cents': inv.tax_cents,
        'discount_cents': inv.discount_cents,
        'total_cents': inv.total_cents,
        'net_days': inv.net_days,
        'payment_terms': inv.payment_terms,
        'issued_on': iso(inv.issued_on),
        'due_date': iso(inv.due_date),
        'notes': inv.notes,
        'status': inv.effective_status(utcnow().date()),
        'payment_method': inv.payment_method,
        'payment_type': inv.payment_type,
        'check_number': inv.check_number,
        'paid_at': iso(inv.paid_at),
        'created_by': inv.created_by,
        'created_at': iso(inv.created_at),
    }


@invoices_bp.post('/invoices/preview')
@require_permissions('INV.CREATE')
def preview():
    """Assemble without persisting so the user can adjust rates and prices first."""
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    ticket = load_visible_ticket(session, actor, parse_id(data.get('ticket_id'), 'ticket_id'))
    return assemble_invoice(session, actor, ticket, data).to_json()


@invoices_bp.post('/invoices')
@require_permissions('INV.CREATE')
@audit_log('INV.CREATE', entity='Invoice', entity_id_key='id', meta_keys=['invoice_number', 'ticket_id', 'total_cents'])
def create():
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    ticket = load_visible_ticket(session, actor, parse_id(data.get('ticket_id'), 'ticket_id'))
    invoice = create_invoice(session, actor, ticket, data)
    session.commit()
    return invoice_json(invoice), 201


@invoices_bp.route('/invoices/<int:invoice_id>', methods=['GET', 'HEAD'])
@require_permissions('INV.READ')
def get(invoice_id: int):
    invoice = get_invoice(get_db(), invoice_id)
    assert_invoice_visible(current_actor(), invoice)
    return resource_response(invoice_json(invoice), invoice.updated_at)


@invoices_bp.get('/tickets/<int:ticket_id>/invoices')
@require_permissions('INV.READ')
def ticket_invoices(ticket_id: int):
    session = get_db()
    ticket = load_visible_ticket(session, current_actor(), ticket_id)
    q = session.query(Invoice).filter(Invoice.ticket_id == ticket.id)
    q = apply_multi_sort(q, request.args.get('sort'), INVOICE_SORT_FIELDS, Invoice.id)
    return paginated(q, invoice_json)


@invoices_bp.post('/invoices/<int:invoice_id>/pay')
@require_permissions('INV.PAY')
@audit_log('INV.PAY', entity='Invoice', entity_id_key='id', meta_keys=['payment_method', 'payment_type', 'check_number'])
def pay(invoice_id: int):
    session = get_db()
    invoice = pay_invoice(session, current_actor(), get_invoice(session, invoice_id), request.get_json(silent=True) or {})
    session.commit()
    return invoice_json(invoice)
