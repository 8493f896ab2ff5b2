def test_health_reports_database(client) -> None:
    resp = client.get('/health')

    assert resp.status_code == 200
    assert resp.json()['status'] == 'ok'
    assert resp.json()['database'] == 'ok'


def test_security_headers_are_set(client) -> None:
    resp = client.get('/health')

    assert resp.headers['X-Content-Type-Options'] == 'nosniff'
    assert resp.headers['X-Frame-Options'] == 'DENY'
    assert resp.headers['Cache-Control'] == 'no-store'


def test_unknown_route_uses_error_shape(client) -> None:
    resp = client.get('/no-such-route')

    assert resp.status_code == 404
    assert resp.json() == {'error': 'Not Found'}


def test_startup_wires_shared_collaborators(client) -> None:
    state = client.app.state

    assert state.suggestion_cache.ttl_seconds == 900
    assert state.ownership_cache.ttl_seconds == 300
    assert state.image_client is not None
