import json

import httpx

from campus_admin.client import RATE_LIMITED_MESSAGE, UNAUTHORIZED_MESSAGE, ApiClient


def make_client(handler, token=None):
    return ApiClient('http://campus.test/api', token=token, transport=httpx.MockTransport(handler))


def test_login_stores_token_and_sends_it_afterwards():
    seen = []

    def handler(request):
        seen.append((request.url.path, request.headers.get('Authorization')))
        if request.url.path == '/api/auth/login':
            assert json.loads(request.content) == {'email': 'a@campus.test', 'password': 'pw'}
            return httpx.Response(200, json={'token': 'tok-1', 'user': {'role': 'student'}})
        return httpx.Response(200, json={'user': {'role': 'student'}})

    client = make_client(handler)
    result = client.login('a@campus.test', 'pw')

    assert result.error is None
    assert client.token == 'tok-1'
    client.me()
    assert seen == [('/api/auth/login', None), ('/api/auth/me', 'Bearer tok-1')]


def test_unauthorized_clears_token():
    client = make_client(lambda request: httpx.Response(401, json={'error': 'Token expired'}), token='stale')

    result = client.get('/complaints/')

    assert result == (None, UNAUTHORIZED_MESSAGE, 401)
    assert client.token is None


def test_rate_limit_has_friendly_message():
    client = make_client(lambda request: httpx.Response(429, json={'error': 'Rate limit exceeded'}))
    assert client.get('/holidays/upcoming').error == RATE_LIMITED_MESSAGE


def test_error_body_is_normalised():
    client = make_client(lambda request: httpx.Response(409, json={'error': 'Menu already exists for this date'}))

    result = client.post('/mess-menu/', {'date': '2024-01-01'})

    assert result.data is None
    assert result.error == 'Menu already exists for this date'
    assert result.status_code == 409


def test_non_json_error_falls_back_to_text():
    client = make_client(lambda request: httpx.Response(502, text='Bad gateway'))
    assert client.get('/health').error == 'Bad gateway'


def test_query_params_are_forwarded():
    def handler(request):
        return httpx.Response(200, json={'echo': dict(request.url.params)})

    result = make_client(handler).get('/holidays/range', startDate='2024-01-01', endDate='2024-01-31')

    assert result.data == {'echo': {'startDate': '2024-01-01', 'endDate': '2024-01-31'}}


def test_transport_failure_becomes_error():
    def handler(request):
        raise httpx.ConnectError('connection refused', request=request)

    result = make_client(handler).get('/health')

    assert result.data is None
    assert result.error == 'connection refused'
    assert result.status_code is None


def test_logout_forgets_token():
    client = make_client(lambda request: httpx.Response(200, json={'message': 'Logout successful'}), token='tok')
    client.logout()
    assert client.token is None
