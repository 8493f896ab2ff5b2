import pytest

import auth
from conftest import auth_headers, make_user

STRONG_PASSWORD = 'Voyage#2024'


def test_register_creates_account_and_sets_cookie(client) -> None:
    resp = client.post('/auth/register', json={
        'email': '  New.Traveller@Example.com ',
        'password': STRONG_PASSWORD,
        'profile_description': '  Slow travel fan  ',
    })

    assert resp.status_code == 201
    user = resp.json()['user']
    assert user['email'] == 'new.traveller@example.com'
    assert user['profile_description'] == 'Slow travel fan'
    assert 'password_hash' not in user
    assert auth.COOKIE_NAME in resp.cookies


def test_register_rejects_duplicate_email(client) -> None:
    make_user('taken@example.com')

    resp = client.post('/auth/register', json={'email': 'taken@example.com', 'password': STRONG_PASSWORD})

    assert resp.status_code == 400
    assert resp.json()['code'] == 'VALIDATION_ERROR'


@pytest.mark.parametrize('password', [
    'Sh#1a',            # too short
    'lowercase#123',    # no uppercase
    'UPPERCASE#123',    # no lowercase
    'NoDigits#here',    # no digit
    'NoSpecial123',     # no special character
])
def test_register_enforces_password_rules(client, password) -> None:
    resp = client.post('/auth/register', json={'email': 'weak@example.com', 'password': password})

    assert resp.status_code == 400
    assert resp.json()['error'] == 'Invalid input data'


def test_register_rejects_malformed_email(client) -> None:
    resp = client.post('/auth/register', json={'email': 'not-an-email', 'password': STRONG_PASSWORD})

    assert resp.status_code == 400


def test_login_then_me_uses_the_cookie(client) -> None:
    make_user('login@example.com', password=STRONG_PASSWORD)

    resp = client.post('/auth/login', json={'email': 'LOGIN@example.com', 'password': STRONG_PASSWORD})
    assert resp.status_code == 200
    assert resp.json()['user']['email'] == 'login@example.com'

    me = client.get('/auth/me')
    assert me.status_code == 200
    assert me.json()['user']['email'] == 'login@example.com'


def test_login_failure_message_does_not_reveal_which_part_was_wrong(client) -> None:
    make_user('login@example.com', password=STRONG_PASSWORD)

    wrong_password = client.post('/auth/login', json={'email': 'login@example.com', 'password': 'Nope#0000'})
    unknown_email  = client.post('/auth/login', json={'email': 'ghost@example.com', 'password': STRONG_PASSWORD})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_repeated_login_failures_are_locked_out(client, monkeypatch) -> None:
    monkeypatch.setattr(auth, 'LOGIN_MAX_ATTEMPTS', 3)
    make_user('login@example.com', password=STRONG_PASSWORD)

    for _ in range(3):
        client.post('/auth/login', json={'email': 'login@example.com', 'password': 'Wrong#0000'})
    resp = client.post('/auth/login', json={'email': 'login@example.com', 'password': STRONG_PASSWORD})

    assert resp.status_code == 429
    assert 'Too many login attempts' in resp.json()['error']


def test_logout_clears_the_cookie(client) -> None:
    make_user('login@example.com', password=STRONG_PASSWORD)
    client.post('/auth/login', json={'email': 'login@example.com', 'password': STRONG_PASSWORD})

    assert client.post('/auth/logout').status_code == 200
    assert client.get('/auth/me').status_code == 401


def test_me_accepts_bearer_token(client) -> None:
    user = make_user()
    client.cookies.clear()

    resp = client.get('/auth/me', headers=auth_headers(user))

    assert resp.status_code == 200
    assert resp.json()['user']['id'] == user.id


def test_me_rejects_a_tampered_token(client) -> None:
    client.cookies.clear()

    resp = client.get('/auth/me', headers={'Authorization': 'Bearer not.a.jwt'})

    assert resp.status_code == 401
    assert 'Invalid token' in resp.json()['error']


def test_authenticated_responses_slide_the_cookie(client) -> None:
    user = make_user()
    client.cookies.clear()

    resp = client.get('/auth/me', headers=auth_headers(user))

    assert auth.COOKIE_NAME in resp.cookies
