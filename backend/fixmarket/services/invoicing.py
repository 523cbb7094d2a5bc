"""Invoice assembler.

Re-prices a ticket's work orders for billing: the hourly rate, hours and per-part
selling prices are editable by the invoicing user and seeded from the work order
(parts through the vendor catalog markup when the line references a catalog part).
Free-form additional items are added to the subtotal. Tax applies to the chosen
scope (labor + parts, parts only, labor only), then the flat discount.

The assembled draft is a flat record: ``preview`` returns it, ``create`` persists it
with the next ``INV-YYYY-NNNNN`` number.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy import select

from fixmarket.errors import NotFound, PermissionDenied, ValidationError
from fixmarket.models.invoice import Invoice
from fixmarket.models.part import Part
from fixmarket.models.ticket import Ticket
from fixmarket.models.work_order import WorkOrder
from fixmarket.services import costing
from fixmarket.services.line_items import load_charges, load_parts
from fixmarket.services.policy import Actor, assert_organization_access, assert_vendor_staff
from fixmarket.utils.dates import utcnow
from fixmarket.utils.fsm import TransitionValidator
from fixmarket.utils.validation import optional_text, parse_cents, parse_decimal, parse_id, require_text, validate_status

INVOICE_FSM = TransitionValidator({
    Invoice.STATUS_SENT: {Invoice.STATUS_PAID},
    Invoice.STATUS_PAID: set(),
}, entity='invoice')

HUNDRED = Decimal('100')
TAX_PLACES = Decimal('0.001')


@dataclass
class PricedPart:
    name: str
    quantity: Decimal
    unit_price: Decimal
    part_id: Optional[int] = None

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class PricedWorkOrder:
    work_order_id: int
    technician_name: str
    hours: Decimal
    hourly_rate: Decimal
    parts: List[PricedPart] = field(default_factory=list)
    other_charges: Decimal = Decimal('0')

    @property
    def labor(self) -> Decimal:
        return costing.labor_cost(self.hours, self.hourly_rate)

    @property
    def parts_total(self) -> Decimal:
        return costing.parts_cost({'cost': p.unit_price, 'quantity': p.quantity} for p in self.parts)

    @property
    def total(self) -> Decimal:
        return self.labor + self.parts_total + self.other_charges


@dataclass
class AdditionalItem:
    description: str
    quantity: Decimal
    rate: Decimal

    @property
    def amount(self) -> Decimal:
        return costing.non_negative(self.quantity) * costing.non_negative(self.rate)


@dataclass
class InvoiceDraft:
    ticket: Ticket
    work_orders: List[PricedWorkOrder]
    additional_items: List[AdditionalItem]
    tax_scope: str
    tax_percentage: Decimal
    discount: Decimal
    net_days: int
    issued_on: date
    notes: Optional[str] = None

    @property
    def labor_total(self) -> Decimal:
        return sum((w.labor for w in self.work_orders), Decimal('0'))

    @property
    def parts_total(self) -> Decimal:
        return sum((w.parts_total for w in self.work_orders), Decimal('0'))

    @property
    def other_total(self) -> Decimal:
        return sum((w.other_charges for w in self.work_orders), Decimal('0'))

    @property
    def additional_total(self) -> Decimal:
        return sum((i.amount for i in self.additional_items), Decimal('0'))

    @property
    def subtotal(self) -> Decimal:
        return sum((w.total for w in self.work_orders), Decimal('0')) + self.additional_total

    @property
    def tax(self) -> Decimal:
        return costing.tax_amount(costing.tax_base(self.tax_scope, self.labor_total, self.parts_total), self.tax_percentage)

    @property
    def total(self) -> Decimal:
        return costing.invoice_total(self.subtotal, self.tax, self.discount)

    @property
    def due_date(self) -> date:
        return self.issued_on + timedelta(days=self.net_days)

    @property
    def payment_terms(self) -> str:
        return f'Net {self.net_days}'

    def lines_json(self) -> Dict[str, Any]:
        return {
            'work_orders': [{
                'work_order_id': w.work_order_id,
                'technician_name': w.technician_name,
                'hours': costing.format_quantity(w.hours),
                'hourly_rate_cents': costing.to_cents(w.hourly_rate),
                'labor_cents': costing.to_cents(w.labor),
                'parts': [{
                    'name': p.name,
                    'quantity': costing.format_quantity(p.quantity),
                    'unit_price_cents': costing.to_cents(p.unit_price),
                    'amount_cents': costing.to_cents(p.amount),
                    'part_id': p.part_id,
                } for p in w.parts],
                'parts_cents': costing.to_cents(w.parts_total),
                'other_charges_cents': costing.to_cents(w.other_charges),
                'total_cents': costing.to_cents(w.total),
            } for w in self.work_orders],
            'additional_items': [{
                'description': i.description,
                'quantity': costing.format_quantity(i.quantity),
                'rate_cents': costing.to_cents(i.rate),
                'amount_cents': costing.to_cents(i.amount),
            } for i in self.additional_items],
        }

    def to_json(self) -> Dict[str, Any]:
        return {
            'ticket_id': self.ticket.id,
            'organization_id': self.ticket.organization_id,
            'maintenance_vendor_id': self.ticket.maintenance_vendor_id,
            'work_order_ids': [w.work_order_id for w in self.work_orders],
            'lines': self.lines_json(),
            'labor_cents': costing.to_cents(self.labor_total),
            'parts_cents': costing.to_cents(self.parts_total),
            'other_charges_cents': costing.to_cents(self.other_total),
            'additional_items_cents': costing.to_cents(self.additional_total),
            'subtotal_cents': costing.to_cents(self.subtotal),
            'tax_scope': self.tax_scope,
            'tax_percentage': str(self.tax_percentage.quantize(TAX_PLACES)),
            'tax_cents': costing.to_cents(self.tax),
            'discount_cents': costing.to_cents(self.discount),
            'total_cents': costing.to_cents(self.total),
            'net_days': self.net_days,
            'payment_terms': self.payment_terms,
            'issued_on': self.issued_on.isoformat(),
            'due_date': self.due_date.isoformat(),
            'notes': self.notes,
        }


def _seed_part_price(session, line) -> Decimal:
    """Catalog parts are billed at their marked-up selling price, ad hoc parts at cost."""
    if line.part_id is not None:
        part = session.get(Part, line.part_id)
        if part is not None:
            return costing.selling_price(line.cost, part.markup_percentage, part.round_to_ninety_nine)
    return line.cost


def _price_work_order(session, wo: WorkOrder, overrides: Mapping[str, Any], prefix: str) -> PricedWorkOrder:
    default_rate = current_app.config.get('DEFAULT_HOURLY_RATE_CENTS', 7500)
    rate_cents = parse_cents(overrides.get('hourly_rate_cents'), f'{prefix}.hourly_rate_cents', required=False)
    if rate_cents is None:
        rate_cents = wo.hourly_rate_cents or default_rate
    hours = parse_decimal(overrides.get('hours'), f'{prefix}.hours', required=False, places=2)
    if hours is None:
        hours = Decimal(wo.hours_worked or 0)
    price_overrides = overrides.get('part_prices_cents') or []
    if not isinstance(price_overrides, list):
        raise ValidationError(f'{prefix}.part_prices_cents', f'{prefix}.part_prices_cents must be a list')
    parts = []
    for idx, line in enumerate(load_parts(wo.parts)):
        override = price_overrides[idx] if idx < len(price_overrides) else None
        cents = parse_cents(override, f'{prefix}.part_prices_cents[{idx}]', required=False)
        unit = costing.from_cents(cents) if cents is not None else _seed_part_price(session, line)
        parts.append(PricedPart(name=line.name, quantity=line.quantity, unit_price=unit, part_id=line.part_id))
    return PricedWorkOrder(
        work_order_id=wo.id,
        technician_name=wo.technician_name,
        hours=hours,
        hourly_rate=costing.from_cents(rate_cents),
        parts=parts,
        other_charges=costing.other_charges_total(load_charges(wo.other_charges)),
    )


def _additional_items(raw: Any) -> List[AdditionalItem]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError('additional_items', 'additional_items must be a list')
    items = []
    for idx, entry in enumerate(raw):
        prefix = f'additional_items[{idx}]'
        if not isinstance(entry, dict):
            raise ValidationError(prefix, f'{prefix} must be an object')
        description = entry.get('description')
        if not isinstance(description, str) or not description.strip():
            raise ValidationError(f'{prefix}.description')
        quantity = parse_decimal(entry.get('quantity', 1), f'{prefix}.quantity', places=2)
        items.append(AdditionalItem(
            description=description.strip(),
            quantity=quantity,
            rate=costing.from_cents(parse_cents(entry.get('rate_cents'), f'{prefix}.rate_cents')),
        ))
    return items


def _net_days(value: Any) -> int:
    if value is None:
        return int(current_app.config.get('DEFAULT_NET_DAYS', 30))
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError('net_days', 'net_days must be a non-negative integer')
    return value


def _assert_invoicer(actor: Actor, ticket: Ticket):
    if ticket.maintenance_vendor_id is None and not actor.is_root:
        raise PermissionDenied(description=f'Ticket {ticket.id} has no vendor to invoice from')
    assert_vendor_staff(actor, ticket.maintenance_vendor_id)


def assemble_invoice(session, actor: Actor, ticket: Ticket, data: Mapping[str, Any],
                     today: Optional[date] = None) -> InvoiceDraft:
    _assert_invoicer(actor, ticket)
    available = {wo.id: wo for wo in session.execute(
        select(WorkOrder).where(WorkOrder.ticket_id == ticket.id).order_by(WorkOrder.id.asc())
    ).scalars()}
    selections = data.get('work_orders')
    if selections is None:
        selections = [{'work_order_id': wo_id} for wo_id in available]
    if not isinstance(selections, list) or not selections:
        raise ValidationError('work_orders', 'at least one work order is required')
    priced = []
    for idx, sel in enumerate(selections):
        prefix = f'work_orders[{idx}]'
        if not isinstance(sel, dict):
            raise ValidationError(prefix, f'{prefix} must be an object')
        wo_id = parse_id(sel.get('work_order_id'), f'{prefix}.work_order_id')
        wo = available.get(wo_id)
        if wo is None:
            raise NotFound('WorkOrder', wo_id)
        if any(p.work_order_id == wo_id for p in priced):
            raise ValidationError(f'{prefix}.work_order_id', f'work order {wo_id} selected twice')
        priced.append(_price_work_order(session, wo, sel, prefix))

    tax_scope = validate_status(data.get('tax_scope') or costing.TAX_SCOPE_TOTAL, costing.TAX_SCOPES, 'tax_scope')
    tax_percentage = parse_decimal(data.get('tax_percentage'), 'tax_percentage', required=False, places=3) or Decimal('0')
    if tax_percentage > HUNDRED:
        raise ValidationError('tax_percentage', 'tax_percentage must be <= 100')
    discount_cents = parse_cents(data.get('discount_cents'), 'discount_cents', required=False) or 0
    draft = InvoiceDraft(
        ticket=ticket,
        work_orders=priced,
        additional_items=_additional_items(data.get('additional_items')),
        tax_scope=tax_scope,
        tax_percentage=tax_percentage,
        discount=costing.from_cents(discount_cents),
        net_days=_net_days(data.get('net_days')),
        issued_on=today or utcnow().date(),
        notes=optional_text(data, 'notes'),
    )
    if draft.discount > draft.subtotal + draft.tax:
        raise ValidationError('discount_cents', 'discount_cents cannot exceed subtotal plus tax')
    return draft


def next_invoice_number(session, year: int) -> str:
    prefix = f'INV-{year}-'
    last = session.execute(
        select(Invoice.invoice_number)
        .where(Invoice.invoice_number.like(f'{prefix}%'))
        .order_by(Invoice.invoice_number.desc())
        .limit(1)
    ).scalar_one_or_none()
    seq = int(last[len(prefix):]) + 1 if last else 1
    return f'{prefix}{seq:05d}'


def create_invoice(session, actor: Actor, ticket: Ticket, data: Mapping[str, Any],
                   today: Optional[date] = None) -> Invoice:
    draft = assemble_invoice(session, actor, ticket, data, today)
    invoice = Invoice(
        invoice_number=next_invoice_number(session, draft.issued_on.year),
        ticket_id=ticket.id,
        organization_id=ticket.organization_id,
        maintenance_vendor_id=ticket.maintenance_vendor_id,
        work_order_ids=[w.work_order_id for w in draft.work_orders],
        lines=draft.lines_json(),
        subtotal_cents=costing.to_cents(draft.subtotal),
        tax_scope=draft.tax_scope,
        tax_percentage=draft.tax_percentage,
        tax_cents=costing.to_cents(draft.tax),
        discount_cents=costing.to_cents(draft.discount),
        total_cents=costing.to_cents(draft.total),
        net_days=draft.net_days,
        payment_terms=draft.payment_terms,
        issued_on=draft.issued_on,
        due_date=draft.due_date,
        notes=draft.notes,
        status=Invoice.STATUS_SENT,
        created_by=actor.user_id,
    )
    session.add(invoice)
    session.flush()
    current_app.logger.info('Invoice %s created for ticket %s (%s cents)', invoice.invoice_number, ticket.id, invoice.total_cents)
    return invoice


def assert_invoice_visible(actor: Actor, invoice: Invoice):
    if actor.is_root:
        return
    if actor.is_organization_user and actor.organization_id == invoice.organization_id:
        return
    if actor.maintenance_vendor_id is not None and actor.maintenance_vendor_id == invoice.maintenance_vendor_id:
        return
    raise PermissionDenied(description='Invoice access denied')


def pay_invoice(session, actor: Actor, invoice: Invoice, data: Mapping[str, Any]) -> Invoice:
    assert_organization_access(actor, invoice.organization_id)
    INVOICE_FSM.assert_can_transition(invoice.status, Invoice.STATUS_PAID)
    method = validate_status(data.get('payment_method'), Invoice.ALL_PAYMENT_METHODS, 'payment_method')
    payment_type = None
    check_number = None
    if method == Invoice.PAYMENT_EXTERNAL:
        payment_type = validate_status(data.get('payment_type'), Invoice.EXTERNAL_PAYMENT_TYPES, 'payment_type')
        if payment_type == 'check':
            check_number = require_text(data, 'check_number', max_length=64)
    invoice.status = Invoice.STATUS_PAID
    invoice.payment_method = method
    invoice.payment_type = payment_type
    invoice.check_number = check_number
    invoice.paid_at = utcnow()
    session.flush()
    current_app.logger.info('Invoice %s paid via %s', invoice.invoice_number, method)
    return invoice


def get_invoice(session, invoice_id: int) -> Invoice:
    invoice = session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFound('Invoice', invoice_id)
    return invoice

__all__ = [
    'INVOICE_FSM', 'PricedPart', 'PricedWorkOrder', 'AdditionalItem', 'InvoiceDraft',
    'assemble_invoice', 'next_invoice_number', 'create_invoice', 'assert_invoice_visible',
    'pay_invoice', 'get_invoice',
]
