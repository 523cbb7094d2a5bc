import pytest
from fixmarket.models.part import PartPriceHistory
from fixmarket.services.parts_catalog import selling_price_cents
from tests.test_lifecycle_helpers import create_resource_and_assert, direct_parties


def _create_part(client, s, **overrides):
    payload = {'name': 'Cartridge', 'cost_cents': 1000, 'markup_percentage': 20, 'round_to_ninety_nine': True}
    payload.update(overrides)
    return create_resource_and_assert(client, f'/api/maintenance-vendors/{s.vendor.id}/parts', payload, s.vendor_headers)


def test_selling_price_cents():
    assert selling_price_cents(1000, 20, False) == 1200
    assert selling_price_cents(1000, 20, True) == 1199
    assert selling_price_cents(1000, '23.4', True) == 1299


def test_create_part_reports_selling_price(client):
    s = direct_parties('part-create')
    part = _create_part(client, s)
    assert part['selling_price_cents'] == 1199
    assert part['maintenance_vendor_id'] == s.vendor.id
    listing = client.get(f'/api/maintenance-vendors/{s.vendor.id}/parts', headers=s.tech_headers).get_json()
    assert [p['id'] for p in listing['data']] == [part['id']]


def test_price_change_appends_history(client):
    s = direct_parties('part-history')
    part = _create_part(client, s)
    r = client.put(f"/api/parts/{part['id']}", json={'cost_cents': 2000}, headers=s.vendor_headers)
    assert r.status_code == 200 and r.get_json()['selling_price_cents'] == 2399
    r = client.put(f"/api/parts/{part['id']}", json={'round_to_ninety_nine': False}, headers=s.vendor_headers)
    assert r.get_json()['selling_price_cents'] == 2400
    # Renaming does not touch pricing
    r = client.put(f"/api/parts/{part['id']}", json={'name': 'Faucet cartridge'}, headers=s.vendor_headers)
    assert r.get_json()['name'] == 'Faucet cartridge'
    history = client.get(f"/api/parts/{part['id']}/price-history", headers=s.vendor_headers).get_json()['data']
    assert len(history) == 2
    newest, oldest = history
    assert (oldest['old_cost_cents'], oldest['new_cost_cents']) == (1000, 2000)
    assert (oldest['old_price_cents'], oldest['new_price_cents']) == (1199, 2399)
    assert (newest['old_price_cents'], newest['new_price_cents']) == (2399, 2400)
    assert newest['round_to_ninety_nine'] is False
    assert newest['changed_by'] == s.vendor_admin.id


def test_part_validation(client):
    s = direct_parties('part-validate')
    url = f'/api/maintenance-vendors/{s.vendor.id}/parts'
    r = client.post(url, json={'name': 'Valve', 'cost_cents': '12.50'}, headers=s.vendor_headers)
    assert r.status_code == 400 and r.get_json()['error']['field'] == 'cost_cents'
    r = client.post(url, json={'cost_cents': 100}, headers=s.vendor_headers)
    assert r.get_json()['error']['field'] == 'name'
    part = _create_part(client, s)
    r = client.put(f"/api/parts/{part['id']}", json={'markup_percentage': -5}, headers=s.vendor_headers)
    assert r.status_code == 400 and r.get_json()['error']['field'] == 'markup_percentage'


def test_other_vendor_cannot_manage_parts(client):
    s = direct_parties('part-owner')
    other = direct_parties('part-intruder')
    part = _create_part(client, s)
    assert client.put(f"/api/parts/{part['id']}", json={'cost_cents': 1}, headers=other.vendor_headers).status_code == 403
    assert client.get(f"/api/parts/{part['id']}/price-history", headers=other.vendor_headers).status_code == 403
    r = client.post(f'/api/maintenance-vendors/{s.vendor.id}/parts', json={'name': 'x', 'cost_cents': 1},
                    headers=other.vendor_headers)
    assert r.status_code == 403
    # Technicians read the catalog but cannot edit it
    r = client.put(f"/api/parts/{part['id']}", json={'cost_cents': 1}, headers=s.tech_headers)
    assert r.status_code == 403


def test_history_rows_are_append_only(client, db):
    s = direct_parties('part-append')
    part = _create_part(client, s)
    client.put(f"/api/parts/{part['id']}", json={'cost_cents': 1500}, headers=s.vendor_headers)
    row = db.query(PartPriceHistory).filter_by(part_id=part['id']).one()
    row.new_cost_cents = 1
    with pytest.raises(ValueError):
        db.flush()
    db.rollback()
    row = db.query(PartPriceHistory).filter_by(part_id=part['id']).one()
    db.delete(row)
    with pytest.raises(ValueError):
        db.flush()
    db.rollback()
    assert db.query(PartPriceHistory).filter_by(part_id=part['id']).count() == 1


def test_markup_rounded_to_stored_scale(client, db):
    s = direct_parties('part-markup-scale')
    part = _create_part(client, s, markup_percentage='12.345', round_to_ninety_nine=False)
    assert part['markup_percentage'] == '12.35'
    assert part['selling_price_cents'] == 1124
    r = client.put(f"/api/parts/{part['id']}", json={'markup_percentage': '7.125'}, headers=s.vendor_headers)
    assert r.get_json()['markup_percentage'] == '7.13'
    db.expire_all()
    row = db.query(PartPriceHistory).filter(PartPriceHistory.part_id == part['id']).one()
    assert row.new_price_cents == selling_price_cents(1000, row.markup_percentage, False) == 1071
