import redis
from flask import current_app


class TokenBlacklist:
    """Revoked JWT ids kept in Redis until the token would have expired."""

    def __init__(self):
        redis_url = current_app.config.get("REDIS_URL", "redis://localhost:6379/0")
        self.redis = redis.Redis.from_url(redis_url, decode_responses=True)

    def add(self, jti, expires_in):
        self.redis.setex(f"propertyhub:blacklist:{jti}", expires_in, "true")

    def is_blacklisted(self, jti):
        return self.redis.get(f"propertyhub:blacklist:{jti}") is not None
