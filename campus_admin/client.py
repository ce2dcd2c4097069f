"""HTTP client for the campus admin API.

Every call goes through :meth:`ApiClient.request`, which attaches the
bearer token and folds every failure into ``ApiResult.error`` so callers
never have to catch transport exceptions.
"""
import logging
import os
from collections import namedtuple

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = os.getenv('CAMPUS_API_URL', 'http://localhost:5000/api')

RATE_LIMITED_MESSAGE = 'Too many requests. Please wait a moment and try again.'
UNAUTHORIZED_MESSAGE = 'Unauthorized. Please log in again.'

ApiResult = namedtuple('ApiResult', ['data', 'error', 'status_code'])


class ApiClient:
    def __init__(self, base_url=DEFAULT_BASE_URL, token=None, timeout=10.0, transport=None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def set_token(self, token):
        self.token = token

    def request(self, method, endpoint, json=None, params=None):
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'

        try:
            response = self._http.request(method, endpoint, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"API request failed: {method} {endpoint}: {str(e)}")
            return ApiResult(None, str(e) or 'Network error', None)

        if response.status_code == 429:
            return ApiResult(None, RATE_LIMITED_MESSAGE, 429)
        if response.status_code == 401:
            # a rejected credential is never retried
            self.set_token(None)
            return ApiResult(None, UNAUTHORIZED_MESSAGE, 401)

        try:
            body = response.json()
        except ValueError:
            if response.is_error:
                return ApiResult(None, response.text or f'HTTP {response.status_code}: {response.reason_phrase}',
                                 response.status_code)
            body = {'message': response.text}

        if response.is_error:
            error = None
            if isinstance(body, dict):
                error = body.get('error') or body.get('message')
            return ApiResult(None, error or f'HTTP {response.status_code}: {response.reason_phrase}',
                             response.status_code)
        return ApiResult(body, None, response.status_code)

    def get(self, endpoint, **params):
        return self.request('GET', endpoint, params=params or None)

    def post(self, endpoint, data=None):
        return self.request('POST', endpoint, json=data if data is not None else {})

    def put(self, endpoint, data=None):
        return self.request('PUT', endpoint, json=data if data is not None else {})

    def delete(self, endpoint):
        return self.request('DELETE', endpoint)

    # Authentication

    def register(self, **user):
        result = self.post('/auth/register', user)
        if result.data and result.data.get('token'):
            self.set_token(result.data['token'])
        return result

    def login(self, email, password):
        result = self.post('/auth/login', {'email': email, 'password': password})
        if result.data and result.data.get('token'):
            self.set_token(result.data['token'])
        return result

    def me(self):
        return self.get('/auth/me')

    def logout(self):
        result = self.post('/auth/logout')
        self.set_token(None)
        return result
