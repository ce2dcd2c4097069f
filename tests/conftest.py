import itertools

import pytest

from campus_admin import create_app
from campus_admin.auth import issue_token
from campus_admin.database_models import Account, Profile
from campus_admin.extensions import db


class FakeCache:
    """In-memory stand-in for the Redis cache that records invalidations."""

    def __init__(self):
        self.store = {}
        self.invalidated = []

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl):
        self.store[key] = value

    def expire(self, key):
        self.store.pop(key, None)

    def invalidate(self, prefix):
        self.invalidated.append(prefix)
        for key in [key for key in self.store if key.startswith(f'{prefix}:')]:
            del self.store[key]

    def ping(self):
        return True


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def app(cache):
    app = create_app('testing', cache=cache)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_profile(app):
    counter = itertools.count(1)

    def factory(role='student', password='secret123', **attrs):
        n = next(counter)
        email = attrs.pop('email', f'{role}{n}@campus.test')
        account = Account(email=email, password=password)
        db.session.add(account)
        db.session.flush()
        profile = Profile(account_id=account.id, email=email, role=role,
                          name=attrs.pop('name', f'{role.title()} {n}'), **attrs)
        db.session.add(profile)
        db.session.commit()
        return profile

    return factory


@pytest.fixture
def auth_headers(app):
    def headers(profile):
        return {'Authorization': f'Bearer {issue_token(profile.account)}'}
    return headers
