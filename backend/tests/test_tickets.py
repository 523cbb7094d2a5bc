from fixmarket.constants.permissions import ROLE_ORG_ADMIN, ROLE_ORG_SUBADMIN, ROLE_TECHNICIAN, TIER_MARKETPLACE
from tests.test_utils_seed import unique, ensure_organization, ensure_user
from tests.test_lifecycle_helpers import (
    jwt_headers, assert_transition, direct_parties, in_progress_ticket, open_ticket,
)


def test_create_and_get_ticket(client):
    s = direct_parties('tkt-create')
    ticket = open_ticket(client, s.org_headers, title='Broken window latch')
    assert ticket['organization_id'] == s.organization.id
    assert ticket['reporter_id'] == s.org_admin.id
    assert ticket['priority'] == 'high' and ticket['is_marketplace'] is False
    r = client.get(f"/api/tickets/{ticket['id']}", headers=s.org_headers)
    assert r.status_code == 200 and r.get_json()['title'] == 'Broken window latch'


def test_create_validates_payload(client):
    s = direct_parties('tkt-validate')
    r = client.post('/api/tickets', json={'description': 'no title'}, headers=s.org_headers)
    assert r.status_code == 400 and r.get_json()['error']['field'] == 'title'
    r = client.post('/api/tickets', json={'title': 't', 'description': 'd', 'priority': 'urgent'}, headers=s.org_headers)
    assert r.get_json()['error']['field'] == 'priority'
    r = client.post('/api/tickets', json={'title': 't', 'description': 'd', 'maintenance_vendor_id': 999999},
                    headers=s.org_headers)
    assert r.status_code == 404


def test_vendor_staff_cannot_create_tickets(client):
    s = direct_parties('tkt-vendor-create')
    r = client.post('/api/tickets', json={'title': 't', 'description': 'd'}, headers=s.vendor_headers)
    assert r.status_code == 403


def test_other_organization_cannot_see_ticket(client):
    s = direct_parties('tkt-iso')
    ticket = open_ticket(client, s.org_headers)
    other_org = ensure_organization(unique('tkt-iso-other'))
    outsider = ensure_user(f"{unique('tkt-outsider')}@example.com", ROLE_ORG_ADMIN, organization=other_org)
    r = client.get(f"/api/tickets/{ticket['id']}", headers=jwt_headers(outsider))
    assert r.status_code == 403
    listing = client.get('/api/tickets', headers=jwt_headers(outsider)).get_json()
    assert ticket['id'] not in [t['id'] for t in listing['data']]


def test_accept_to_vendor(client):
    s = direct_parties('tkt-vendor')
    ticket = open_ticket(client, s.org_headers)
    body = assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.org_headers, 200,
                             json={'maintenance_vendor_id': s.vendor.id})
    assert body['status'] == 'accepted'
    assert body['maintenance_vendor_id'] == s.vendor.id and body['assignee_id'] is None
    # The vendor now sees it
    r = client.get(f"/api/tickets/{ticket['id']}", headers=s.vendor_headers)
    assert r.status_code == 200


def test_accept_needs_exactly_one_mode(client):
    s = direct_parties('tkt-mode')
    ticket = open_ticket(client, s.org_headers)
    url = f"/api/tickets/{ticket['id']}/accept"
    err = assert_transition(client, url, s.org_headers, 400, json={})
    assert err['error']['field'] == 'mode'
    err = assert_transition(client, url, s.org_headers, 400,
                            json={'maintenance_vendor_id': s.vendor.id, 'is_marketplace': True})
    assert err['error']['field'] == 'mode'
    err = assert_transition(client, url, s.org_headers, 400, json={'mode': 'marketplace', 'maintenance_vendor_id': s.vendor.id})
    assert err['error']['field'] == 'mode'
    err = assert_transition(client, url, s.org_headers, 400, json={'mode': 'vendor'})
    assert err['error']['field'] == 'maintenance_vendor_id'


def test_marketplace_mode_gated_for_sub_admins(client):
    s = direct_parties('tkt-gate')
    ticket = open_ticket(client, s.org_headers)
    url = f"/api/tickets/{ticket['id']}/accept"
    sub = ensure_user(f"{unique('tkt-sub')}@example.com", ROLE_ORG_SUBADMIN, organization=s.organization)
    assert_transition(client, url, jwt_headers(sub), 403, json={'is_marketplace': True}, expected_code='PERMISSION_DENIED')
    tiered = ensure_user(f"{unique('tkt-sub-tier')}@example.com", ROLE_ORG_SUBADMIN,
                         organization=s.organization, tiers=[TIER_MARKETPLACE])
    body = assert_transition(client, url, jwt_headers(tiered), 200, json={'is_marketplace': True})
    assert body['is_marketplace'] is True
    assert body['maintenance_vendor_id'] is None and body['assignee_id'] is None


def test_maintenance_admin_accepts_for_own_technician_with_schedule(client):
    s = direct_parties('tkt-tech')
    ticket = open_ticket(client, s.org_headers, maintenance_vendor_id=s.vendor.id)
    body = assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.vendor_headers, 200, json={
        'assignee_id': s.technician.id,
        'scheduled_start': '2026-03-02T09:00:00Z',
        'scheduled_end': '2026-03-02T11:30:00Z',
    })
    assert body['assignee_id'] == s.technician.id
    assert body['maintenance_vendor_id'] == s.vendor.id
    assert body['scheduled_start'] == '2026-03-02T09:00:00Z'
    assert body['estimated_duration_minutes'] == 150
    # The technician can now see and start it
    started = assert_transition(client, f"/api/tickets/{ticket['id']}/start", jwt_headers(s.technician), 200)
    assert started['status'] == 'in-progress'


def test_technician_mode_refuses_foreign_vendor(client):
    s = direct_parties('tkt-foreign')
    other = direct_parties('tkt-foreign-other')
    ticket = open_ticket(client, s.org_headers, maintenance_vendor_id=s.vendor.id)
    # Other vendor's admin cannot even see the ticket
    r = client.post(f"/api/tickets/{ticket['id']}/accept", json={'assignee_id': other.technician.id},
                    headers=other.vendor_headers)
    assert r.status_code == 403
    # Org admin cannot pick a technician directly
    assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.org_headers, 403,
                      json={'assignee_id': s.technician.id})
    # Vendor admin cannot dispatch another vendor's technician
    assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.vendor_headers, 403,
                      json={'assignee_id': other.technician.id})


def test_schedule_must_end_after_start(client):
    s = direct_parties('tkt-sched')
    ticket = open_ticket(client, s.org_headers, maintenance_vendor_id=s.vendor.id)
    err = assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.vendor_headers, 400, json={
        'assignee_id': s.technician.id,
        'scheduled_start': '2026-03-02T11:00:00Z',
        'scheduled_end': '2026-03-02T11:00:00Z',
    })
    assert err['error']['field'] == 'scheduled_end'


def test_schedule_conflict_is_advisory(client):
    s = direct_parties('tkt-conflict')
    window = {'scheduled_start': '2026-04-01T09:00:00Z', 'scheduled_end': '2026-04-01T12:00:00Z'}
    first = open_ticket(client, s.org_headers, maintenance_vendor_id=s.vendor.id)
    assert_transition(client, f"/api/tickets/{first['id']}/accept", s.vendor_headers, 200,
                      json=dict(window, assignee_id=s.technician.id))
    second = open_ticket(client, s.org_headers, maintenance_vendor_id=s.vendor.id)
    overlap = {'assignee_id': s.technician.id, 'scheduled_start': '2026-04-01T11:00:00Z',
               'scheduled_end': '2026-04-01T13:00:00Z'}
    err = assert_transition(client, f"/api/tickets/{second['id']}/accept", s.vendor_headers, 409,
                            json=overlap, expected_code='SCHEDULE_CONFLICT')
    assert err['error']['conflicting_ticket_ids'] == [first['id']]
    # Back-to-back is not an overlap
    third = open_ticket(client, s.org_headers, maintenance_vendor_id=s.vendor.id)
    assert_transition(client, f"/api/tickets/{third['id']}/accept", s.vendor_headers, 200, json={
        'assignee_id': s.technician.id,
        'scheduled_start': '2026-04-01T12:00:00Z', 'scheduled_end': '2026-04-01T13:00:00Z',
    })
    body = assert_transition(client, f"/api/tickets/{second['id']}/accept", s.vendor_headers, 200,
                             json=dict(overlap, ignore_conflicts=True))
    assert body['assignee_id'] == s.technician.id


def test_dispatch_after_vendor_acceptance(client):
    s = direct_parties('tkt-dispatch')
    ticket = open_ticket(client, s.org_headers)
    tid = ticket['id']
    # Not yet awarded to anyone
    assert_transition(client, f'/api/tickets/{tid}/assign-technician', s.vendor_headers, 403,
                      json={'assignee_id': s.technician.id})
    assert_transition(client, f'/api/tickets/{tid}/accept', s.org_headers, 200,
                      json={'maintenance_vendor_id': s.vendor.id})
    other = direct_parties('tkt-dispatch-other')
    assert_transition(client, f'/api/tickets/{tid}/assign-technician', s.vendor_headers, 403,
                      json={'assignee_id': other.technician.id})
    body = assert_transition(client, f'/api/tickets/{tid}/assign-technician', s.vendor_headers, 200, json={
        'assignee_id': s.technician.id, 'scheduled_start': '2026-05-01T08:00:00Z', 'scheduled_end': '2026-05-01T09:00:00Z',
    })
    assert body['assignee_id'] == s.technician.id and body['status'] == 'accepted'
    assert body['estimated_duration_minutes'] == 60


def test_reject_requires_reason_and_is_terminal(client):
    s = direct_parties('tkt-reject')
    ticket = open_ticket(client, s.org_headers)
    url = f"/api/tickets/{ticket['id']}/reject"
    err = assert_transition(client, url, s.org_headers, 400, json={})
    assert err['error']['field'] == 'rejection_reason'
    body = assert_transition(client, url, s.org_headers, 200, json={'rejection_reason': 'Duplicate of another request'})
    assert body['status'] == 'rejected'
    assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.org_headers, 409,
                      json={'maintenance_vendor_id': s.vendor.id}, expected_code='INVALID_TRANSITION')


def test_marketplace_ticket_cannot_start_before_award(client):
    s = direct_parties('tkt-start-market')
    ticket = open_ticket(client, s.org_headers)
    assert_transition(client, f"/api/tickets/{ticket['id']}/accept", s.org_headers, 200, json={'is_marketplace': True})
    root = ensure_user(f"{unique('tkt-root')}@example.com", 'root')
    err = assert_transition(client, f"/api/tickets/{ticket['id']}/start", jwt_headers(root), 400)
    assert err['error']['field'] == 'assignee_id'


def test_complete_and_return_visit_flow(client):
    s = in_progress_ticket(client, 'tkt-flow')
    url = f'/api/tickets/{s.ticket_id}'
    err = assert_transition(client, url + '/complete', s.tech_headers, 400, json={'status': 'done'})
    assert err['error']['field'] == 'status'
    body = assert_transition(client, url + '/complete', s.tech_headers, 200, json={'status': 'return_needed'})
    assert body['status'] == 'return_needed'
    assert_transition(client, url + '/start', s.tech_headers, 200)
    body = assert_transition(client, url + '/complete', s.tech_headers, 200)
    assert body['status'] == 'completed'
    assert_transition(client, url + '/start', s.tech_headers, 409, expected_code='INVALID_TRANSITION')


def test_unassigned_technician_cannot_work_ticket(client):
    s = in_progress_ticket(client, 'tkt-stranger')
    stranger = ensure_user(f"{unique('tkt-stranger-tech')}@example.com", ROLE_TECHNICIAN, vendor=s.vendor)
    r = client.post(f'/api/tickets/{s.ticket_id}/complete', json={}, headers=jwt_headers(stranger))
    assert r.status_code == 403


def test_ticket_filters_and_sorting(client):
    s = direct_parties('tkt-list')
    first = open_ticket(client, s.org_headers, title='alpha')
    second = open_ticket(client, s.org_headers, title='beta', priority='low')
    assert_transition(client, f"/api/tickets/{second['id']}/accept", s.org_headers, 200,
                      json={'maintenance_vendor_id': s.vendor.id})
    r = client.get('/api/tickets?status=accepted', headers=s.org_headers).get_json()
    assert [t['id'] for t in r['data']] == [second['id']]
    r = client.get('/api/tickets?sort=-id', headers=s.org_headers).get_json()
    assert [t['id'] for t in r['data']] == [second['id'], first['id']]
    r = client.get('/api/tickets?priority=urgent', headers=s.org_headers)
    assert r.status_code == 400 and r.get_json()['error']['field'] == 'priority'
    r = client.get('/api/tickets?is_marketplace=maybe', headers=s.org_headers)
    assert r.status_code == 400
    r = client.get('/api/tickets', headers=s.vendor_headers).get_json()
    assert [t['id'] for t in r['data']] == [second['id']]
