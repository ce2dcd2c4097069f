"""Optional response cache.

Views talk to whatever object sits in ``app.extensions['campus_cache']``.
A cache failure is logged and treated as a miss, so the database answer
is always the fallback.
"""
import json

import redis
from flask import current_app


class NullCache:
    """Used when no Redis URL is configured. Every lookup is a miss."""

    def get(self, key):
        return None

    def set(self, key, value, ttl):
        pass

    def expire(self, key):
        pass

    def invalidate(self, prefix):
        pass

    def ping(self):
        return None


class RedisCache:
    def __init__(self, client, logger=None):
        self.client = client
        self.logger = logger

    @classmethod
    def from_url(cls, url, logger=None):
        client = redis.from_url(url, decode_responses=True, socket_connect_timeout=5, socket_timeout=5)
        return cls(client, logger=logger)

    def _warn(self, action, error):
        if self.logger:
            self.logger.warning(f"Redis cache {action} error: {str(error)}")

    def get(self, key):
        try:
            raw = self.client.get(key)
            return json.loads(raw) if raw else None
        except (redis.RedisError, ValueError) as e:
            self._warn('get', e)
            return None

    def set(self, key, value, ttl):
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
        except (redis.RedisError, TypeError) as e:
            self._warn('set', e)

    def expire(self, key):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            self._warn('expire', e)

    def invalidate(self, prefix):
        """Drop every key in the ``prefix`` namespace."""
        try:
            keys = list(self.client.scan_iter(match=f'{prefix}:*'))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            self._warn('invalidate', e)

    def ping(self):
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


def cache_key(namespace, *parts, **filters):
    """Deterministic key: namespace, sorted filters, then positional parts."""
    encoded = json.dumps(filters, sort_keys=True, default=str)
    return ':'.join([namespace, encoded] + [str(part) for part in parts])


def init_cache(app, cache=None):
    if cache is None:
        url = app.config.get('REDIS_URL')
        if app.config.get('CACHE_ENABLED') and url:
            cache = RedisCache.from_url(url, logger=app.logger)
            app.logger.info('Response cache enabled on Redis')
        else:
            cache = NullCache()
    app.extensions['campus_cache'] = cache
    return cache


def get_cache():
    return current_app.extensions['campus_cache']
