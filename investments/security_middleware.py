# security_middleware.py
import hmac
from functools import wraps

from flask import request, jsonify, current_app
from redis import Redis


def get_redis():
    """Redis client for the current app, created on first use."""
    client = current_app.extensions.get("redis")
    if client is None:
        client = Redis.from_url(current_app.config["REDIS_URL"], decode_responses=True)
        current_app.extensions["redis"] = client
    return client


def rate_limit(limit_key="WEBHOOK_RATE_LIMIT", window_key="WEBHOOK_RATE_WINDOW"):
    """Per-IP fixed-window rate limit backed by redis."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            config = current_app.config
            if not config.get("RATELIMIT_ENABLED", True):
                return f(*args, **kwargs)

            ip = request.remote_addr or "unknown"
            if ip in config.get("WEBHOOK_IP_WHITELIST", []):
                return f(*args, **kwargs)

            max_requests = int(config.get(limit_key, 500))
            window = int(config.get(window_key, 3600))
            key = f"rate_limit:{ip}:{request.endpoint}"

            redis = get_redis()
            pipeline = redis.pipeline()
            pipeline.incr(key, 1)
            pipeline.ttl(key)
            current, ttl = pipeline.execute()
            # A counter without a TTL (new, or orphaned by a crash) gets the window now
            if int(ttl) < 0:
                redis.expire(key, window)

            if int(current) > max_requests:
                current_app.logger.warning(f"Rate limit exceeded for {ip} on {request.endpoint}")
                return jsonify({
                    "error": "Rate limit exceeded",
                    "retry_after": window
                }), 429

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def cron_key_required(f):
    """Scheduler endpoints are triggered by an external timer holding CRON_KEY."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("CRON_KEY")
        if not expected:
            current_app.logger.error("CRON_KEY is not configured; refusing scheduler call")
            return jsonify({"success": False, "message": "Scheduler is not configured"}), 503

        provided = request.headers.get("X-CRON-KEY", "")
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            current_app.logger.warning(f"Invalid cron key from {request.remote_addr}")
            return jsonify({"success": False, "message": "Unauthorized"}), 401

        return f(*args, **kwargs)
    return decorated_function
