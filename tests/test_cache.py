import redis

from campus_admin.cache import NullCache, RedisCache, cache_key, init_cache


class BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError('connection refused')
        return fail


class DictRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    def scan_iter(self, match):
        prefix = match.rstrip('*')
        return [key for key in list(self.data) if key.startswith(prefix)]

    def ping(self):
        return True


def test_cache_key_is_independent_of_filter_order():
    first = cache_key('attendance', 1, 20, branch='CSE', year='2')
    second = cache_key('attendance', 1, 20, year='2', branch='CSE')
    assert first == second
    assert first.startswith('attendance:')
    assert cache_key('attendance', 2, 20, branch='CSE', year='2') != first


def test_redis_cache_round_trip_and_namespace_invalidation():
    cache = RedisCache(DictRedis())
    cache.set('attendance:a', {'data': [1]}, 300)
    cache.set('attendance:stats:b', {'total': 2}, 600)
    cache.set('complaints:c', {'data': []}, 300)

    assert cache.get('attendance:a') == {'data': [1]}
    cache.invalidate('attendance')

    assert cache.get('attendance:a') is None
    assert cache.get('attendance:stats:b') is None
    assert cache.get('complaints:c') == {'data': []}


def test_redis_failures_degrade_to_misses(app):
    cache = RedisCache(BrokenRedis(), logger=app.logger)

    assert cache.get('anything') is None
    cache.set('anything', {'a': 1}, 10)
    cache.invalidate('anything')
    assert cache.ping() is False


def test_null_cache_used_without_redis(app):
    app.config['REDIS_URL'] = None
    assert isinstance(init_cache(app), NullCache)
