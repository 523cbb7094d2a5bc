from tests.test_lifecycle_helpers import direct_parties, open_ticket


def test_etag_conditional_tickets(client):
    s = direct_parties('etag-list')
    open_ticket(client, s.org_headers)
    first = client.get('/api/tickets?limit=5', headers=s.org_headers)
    assert first.status_code == 200
    etag = first.headers.get('ETag')
    assert etag
    # Conditional request
    second = client.get('/api/tickets?limit=5', headers={**s.org_headers, 'If-None-Match': etag})
    assert second.status_code == 304
    assert second.headers.get('ETag') == etag
    # If-Modified-Since should also 304 when using Last-Modified from first response
    lm = first.headers.get('Last-Modified')
    assert lm
    third = client.get('/api/tickets?limit=5', headers={**s.org_headers, 'If-Modified-Since': lm})
    assert third.status_code == 304
    # A stale validator gets the full payload
    fourth = client.get('/api/tickets?limit=5', headers={**s.org_headers, 'If-None-Match': '"stale"'})
    assert fourth.status_code == 200


def test_etag_changes_when_list_changes(client):
    s = direct_parties('etag-change')
    open_ticket(client, s.org_headers)
    first = client.get('/api/tickets', headers=s.org_headers)
    open_ticket(client, s.org_headers, title='Second leak')
    second = client.get('/api/tickets', headers={**s.org_headers, 'If-None-Match': first.headers['ETag']})
    assert second.status_code == 200
    assert second.headers['ETag'] != first.headers['ETag']
    assert second.get_json()['pagination']['total'] == 2


def test_single_resource_head_and_conditional_get(client):
    s = direct_parties('etag-single')
    ticket = open_ticket(client, s.org_headers)
    url = f"/api/tickets/{ticket['id']}"
    got = client.get(url, headers=s.org_headers)
    etag = got.headers.get('ETag')
    assert etag and got.headers.get('Last-Modified')
    head = client.head(url, headers=s.org_headers)
    assert head.status_code == 200
    assert head.headers.get('ETag') == etag
    assert head.get_data() == b''
    cached = client.get(url, headers={**s.org_headers, 'If-None-Match': etag})
    assert cached.status_code == 304
