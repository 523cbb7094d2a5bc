import re
from datetime import date, timedelta
from fixmarket import get_db
from fixmarket.models.ticket import Ticket
from fixmarket.services.invoicing import create_invoice
from fixmarket.services.policy import Actor
from tests.test_utils_seed import unique, ensure_organization, ensure_user
from tests.test_lifecycle_helpers import (
    jwt_headers, assert_transition, create_resource_and_assert, in_progress_ticket,
)

INVOICE_NUMBER = re.compile(r'^INV-\d{4}-\d{5}$')


def _completed_with_work_order(client, label, parts=None):
    s = in_progress_ticket(client, label)
    wo = create_resource_and_assert(client, '/api/work-orders', {
        'ticket_id': s.ticket_id,
        'completion_status': 'completed',
        'work_description': 'Rebuilt the shower valve',
        'hours_worked': 3,
        'hourly_rate_cents': 7500,
        'parts': parts if parts is not None else [{'name': 'Supply valve', 'quantity': 2, 'cost_cents': 2000}],
        'other_charges': [{'description': 'Disposal fee', 'amount_cents': 1500}],
    }, s.tech_headers)
    return s, wo


def _preview(client, s, **payload):
    payload.setdefault('ticket_id', s.ticket_id)
    return client.post('/api/invoices/preview', json=payload, headers=s.vendor_headers)


def test_preview_defaults_to_work_order_costs(client):
    s, wo = _completed_with_work_order(client, 'inv-preview')
    r = _preview(client, s, tax_scope='parts', tax_percentage=10, discount_cents=1000, net_days=15)
    assert r.status_code == 200, r.get_data(as_text=True)
    body = r.get_json()
    assert body['work_order_ids'] == [wo['id']]
    assert body['labor_cents'] == 22500
    assert body['parts_cents'] == 4000
    assert body['other_charges_cents'] == 1500
    assert body['subtotal_cents'] == 28000
    assert body['tax_cents'] == 400
    assert body['total_cents'] == 27400
    assert body['payment_terms'] == 'Net 15'
    issued = date.fromisoformat(body['issued_on'])
    assert date.fromisoformat(body['due_date']) == issued + timedelta(days=15)
    line = body['lines']['work_orders'][0]
    assert line['technician_name'] == 'Dana Tech' and line['parts'][0]['unit_price_cents'] == 2000
    # Nothing persisted
    listing = client.get(f'/api/tickets/{s.ticket_id}/invoices', headers=s.org_headers).get_json()
    assert listing['pagination']['total'] == 0


def test_preview_with_rate_hours_and_price_overrides(client):
    s, wo = _completed_with_work_order(client, 'inv-override')
    r = _preview(client, s, work_orders=[{
        'work_order_id': wo['id'], 'hourly_rate_cents': 10000, 'hours': '2', 'part_prices_cents': [2500],
    }])
    body = r.get_json()
    assert body['labor_cents'] == 20000
    assert body['parts_cents'] == 5000
    assert body['subtotal_cents'] == 26500
    assert body['tax_scope'] == 'total' and body['tax_cents'] == 0
    assert body['net_days'] == 30


def test_total_scope_taxes_labor_and_parts_only(client):
    s, _ = _completed_with_work_order(client, 'inv-tax-total')
    body = _preview(client, s, tax_percentage=10, additional_items=[
        {'description': 'After-hours call-out', 'quantity': 2, 'rate_cents': 2500},
    ]).get_json()
    assert body['additional_items_cents'] == 5000
    assert body['subtotal_cents'] == 33000
    assert body['tax_cents'] == 2650
    assert body['total_cents'] == 35650
    assert body['lines']['additional_items'][0]['amount_cents'] == 5000


def test_catalog_parts_billed_at_selling_price(client):
    s = in_progress_ticket(client, 'inv-catalog')
    part = create_resource_and_assert(client, f'/api/maintenance-vendors/{s.vendor.id}/parts', {
        'name': 'Cartridge', 'cost_cents': 1000, 'markup_percentage': 20, 'round_to_ninety_nine': True,
    }, s.vendor_headers)
    create_resource_and_assert(client, '/api/work-orders', {
        'ticket_id': s.ticket_id, 'completion_status': 'completed', 'work_description': 'Swapped cartridge',
        'hours_worked': 0, 'parts': [{'name': 'Cartridge', 'quantity': 1, 'cost_cents': 1000, 'part_id': part['id']}],
    }, s.tech_headers)
    body = _preview(client, s).get_json()
    assert body['parts_cents'] == 1199
    assert body['lines']['work_orders'][0]['parts'][0]['part_id'] == part['id']


def test_preview_validation(client):
    s, wo = _completed_with_work_order(client, 'inv-validate')
    r = _preview(client, s, discount_cents=28001)
    assert r.status_code == 400 and r.get_json()['error']['field'] == 'discount_cents'
    r = _preview(client, s, tax_scope='everything')
    assert r.get_json()['error']['field'] == 'tax_scope'
    r = _preview(client, s, tax_percentage=101)
    assert r.get_json()['error']['field'] == 'tax_percentage'
    r = _preview(client, s, work_orders=[{'work_order_id': wo['id']}, {'work_order_id': wo['id']}])
    assert r.get_json()['error']['field'] == 'work_orders[1].work_order_id'
    r = _preview(client, s, work_orders=[{'work_order_id': 99999999}])
    assert r.status_code == 404
    r = _preview(client, s, work_orders=[])
    assert r.get_json()['error']['field'] == 'work_orders'
    r = _preview(client, s, additional_items=[{'description': '', 'rate_cents': 100}])
    assert r.get_json()['error']['field'] == 'additional_items[0].description'
    # A discount equal to subtotal plus tax is allowed and totals zero
    assert _preview(client, s, discount_cents=28000).get_json()['total_cents'] == 0


def test_only_the_vendor_invoices(client):
    s, _ = _completed_with_work_order(client, 'inv-who')
    r = client.post('/api/invoices', json={'ticket_id': s.ticket_id}, headers=s.tech_headers)
    assert r.status_code == 403
    r = client.post('/api/invoices', json={'ticket_id': s.ticket_id}, headers=s.org_headers)
    assert r.status_code == 403


def test_create_numbers_invoices_sequentially(client):
    s, _ = _completed_with_work_order(client, 'inv-create')
    first = create_resource_and_assert(client, '/api/invoices', {'ticket_id': s.ticket_id, 'notes': 'Thanks!'},
                                       s.vendor_headers, expected_initial_status='sent')
    second = create_resource_and_assert(client, '/api/invoices', {'ticket_id': s.ticket_id}, s.vendor_headers)
    assert INVOICE_NUMBER.match(first['invoice_number'])
    prefix, seq = first['invoice_number'].rsplit('-', 1)
    assert second['invoice_number'] == f'{prefix}-{int(seq) + 1:05d}'
    assert first['total_cents'] == 28000 and first['notes'] == 'Thanks!'
    assert first['organization_id'] == s.organization.id
    fetched = client.get(f"/api/invoices/{first['id']}", headers=s.org_headers)
    assert fetched.status_code == 200 and fetched.get_json()['invoice_number'] == first['invoice_number']
    listing = client.get(f'/api/tickets/{s.ticket_id}/invoices', headers=s.org_headers).get_json()
    assert [i['id'] for i in listing['data']] == [first['id'], second['id']]


def test_invoice_hidden_from_other_organizations(client):
    s, _ = _completed_with_work_order(client, 'inv-private')
    invoice = create_resource_and_assert(client, '/api/invoices', {'ticket_id': s.ticket_id}, s.vendor_headers)
    other_org = ensure_organization(unique('inv-other-org'))
    outsider = ensure_user(f"{unique('inv-outsider')}@example.com", 'org_admin', organization=other_org)
    assert client.get(f"/api/invoices/{invoice['id']}", headers=jwt_headers(outsider)).status_code == 403
    assert client.post(f"/api/invoices/{invoice['id']}/pay", json={'payment_method': 'ach'},
                       headers=jwt_headers(outsider)).status_code == 403


def test_pay_external_check_requires_number(client):
    s, _ = _completed_with_work_order(client, 'inv-pay')
    invoice = create_resource_and_assert(client, '/api/invoices', {'ticket_id': s.ticket_id}, s.vendor_headers)
    url = f"/api/invoices/{invoice['id']}/pay"
    assert client.post(url, json={'payment_method': 'ach'}, headers=s.vendor_headers).status_code == 403
    err = assert_transition(client, url, s.org_headers, 400, json={'payment_method': 'bitcoin'})
    assert err['error']['field'] == 'payment_method'
    err = assert_transition(client, url, s.org_headers, 400, json={'payment_method': 'external'})
    assert err['error']['field'] == 'payment_type'
    err = assert_transition(client, url, s.org_headers, 400, json={'payment_method': 'external', 'payment_type': 'check'})
    assert err['error']['field'] == 'check_number'
    body = assert_transition(client, url, s.org_headers, 200,
                             json={'payment_method': 'external', 'payment_type': 'check', 'check_number': '1042'})
    assert body['status'] == 'paid' and body['check_number'] == '1042' and body['paid_at']
    assert_transition(client, url, s.org_headers, 409, json={'payment_method': 'ach'}, expected_code='INVALID_TRANSITION')


def test_unpaid_invoice_past_due_reads_overdue(client):
    s, _ = _completed_with_work_order(client, 'inv-overdue')
    session = get_db()
    actor = Actor(user_id=s.vendor_admin.id, role='maintenance_admin', maintenance_vendor_id=s.vendor.id)
    invoice = create_invoice(session, actor, session.get(Ticket, s.ticket_id), {'net_days': 30},
                             today=date(2020, 1, 1))
    session.commit()
    assert invoice.invoice_number.startswith('INV-2020-')
    assert invoice.effective_status(date(2020, 1, 31)) == 'sent'
    body = client.get(f'/api/invoices/{invoice.id}', headers=s.org_headers).get_json()
    assert body['due_date'] == '2020-01-31'
    assert body['status'] == 'overdue'


def test_tax_percentage_rounded_to_stored_scale(client, db):
    s, _ = _completed_with_work_order(client, 'inv-tax-scale')
    preview = _preview(client, s, tax_percentage='8.2505').get_json()
    assert preview['tax_percentage'] == '8.251'
    # 8.251% of labor 225.00 + parts 40.00
    assert preview['tax_cents'] == 2187
    created = create_resource_and_assert(client, '/api/invoices',
                                         {'ticket_id': s.ticket_id, 'tax_percentage': '8.2505'}, s.vendor_headers)
    db.expire_all()
    fetched = client.get(f"/api/invoices/{created['id']}", headers=s.org_headers).get_json()
    assert fetched['tax_percentage'] == '8.251'
    assert fetched['tax_cents'] == preview['tax_cents'] == created['tax_cents']
    assert fetched['total_cents'] == 30187
