from tests.test_lifecycle_helpers import direct_parties, open_ticket


def test_pagination_meta_and_clamping(client):
    s = direct_parties('page-meta')
    ids = [open_ticket(client, s.org_headers, title=f'Ticket {i}')['id'] for i in range(3)]
    body = client.get('/api/tickets?limit=2&offset=1', headers=s.org_headers).get_json()
    assert body['pagination'] == {'total': 3, 'limit': 2, 'offset': 1, 'returned': 2}
    assert [t['id'] for t in body['data']] == ids[1:]
    body = client.get('/api/tickets?limit=100000&offset=-4', headers=s.org_headers).get_json()
    assert body['pagination']['limit'] == 200 and body['pagination']['offset'] == 0


def test_pagination_rejects_non_integer(client):
    s = direct_parties('page-bad')
    resp = client.get('/api/tickets?limit=abc', headers=s.org_headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['field'] == 'limit'


def test_multi_sort(client):
    s = direct_parties('page-sort')
    low = open_ticket(client, s.org_headers, title='b', priority='low')
    high = open_ticket(client, s.org_headers, title='a', priority='high')
    also_low = open_ticket(client, s.org_headers, title='a', priority='low')
    body = client.get('/api/tickets?sort=priority,-title', headers=s.org_headers).get_json()
    assert [t['id'] for t in body['data']] == [high['id'], low['id'], also_low['id']]
    resp = client.get('/api/tickets?sort=reporter', headers=s.org_headers)
    assert resp.status_code == 400 and resp.get_json()['error']['field'] == 'sort'
