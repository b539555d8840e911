from __future__ import annotations

import os
import threading
import time
from functools import wraps

import redis
from flask import current_app, g, jsonify, request


_LOCK = threading.Lock()
_WINDOWS: dict[str, list[float]] = {}
_CLIENT = None
_CLIENT_INIT = False


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def rate_limit_enabled() -> bool:
    if current_app and bool(current_app.config.get("TESTING")):
        return _env_bool("RATE_LIMIT_IN_TESTS", False)
    return _env_bool("RATE_LIMIT_ENABLED", True)


def _redis_url() -> str:
    return (os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()


def _get_client():
    global _CLIENT, _CLIENT_INIT
    with _LOCK:
        if _CLIENT_INIT:
            return _CLIENT
        _CLIENT_INIT = True
    url = _redis_url()
    if not url:
        return None
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=0.75,
            socket_timeout=0.75,
        )
        client.ping()
    except redis.RedisError:
        current_app.logger.warning("rate_limit_redis_unavailable url_set=true")
        return None
    with _LOCK:
        _CLIENT = client
    return client


def check_limit(key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """Fixed-window counter in Redis; per-process sliding window when Redis is not configured."""
    safe_window = max(1, int(window_seconds))
    safe_limit = max(1, int(limit))
    client = _get_client()
    if client is not None:
        now_sec = int(time.time())
        counter_key = f"rl:v1:{key}:{now_sec // safe_window}"
        try:
            current = int(client.incr(counter_key))
            if current == 1:
                client.expire(counter_key, safe_window + 1)
            if current <= safe_limit:
                return True, 0
            return False, int(max(1, safe_window - (now_sec % safe_window)))
        except redis.RedisError:
            current_app.logger.warning("rate_limit_redis_error key=%s", key)
    return _check_limit_memory(key, limit=safe_limit, window_seconds=safe_window)


def _check_limit_memory(key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    now = time.time()
    start = now - window_seconds
    with _LOCK:
        bucket = [ts for ts in _WINDOWS.get(key, []) if ts >= start]
        if len(bucket) >= limit:
            _WINDOWS[key] = bucket
            return False, int(max(1, window_seconds - (now - min(bucket))))
        bucket.append(now)
        _WINDOWS[key] = bucket
    return True, 0


def _client_ip() -> str:
    xff = (request.headers.get("X-Forwarded-For") or "").strip()
    if xff and _env_bool("TRUST_PROXY_HEADERS", False):
        return xff.split(",")[0].strip() or "unknown"
    return (request.remote_addr or "").strip() or "unknown"


def rate_limit(key: str, per_seconds: int, limit: int, *, scope: str = "ip"):
    """
    Route decorator. scope="user" keys on the authenticated user when known.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapped(*args, **kwargs):
            if not rate_limit_enabled():
                return fn(*args, **kwargs)
            user_id = getattr(g, "auth_user_id", None)
            if scope == "user" and user_id is not None:
                scoped = f"{key}:u:{int(user_id)}"
            else:
                scoped = f"{key}:ip:{_client_ip()}"
            ok, retry_after = check_limit(scoped, limit=limit, window_seconds=per_seconds)
            if ok:
                return fn(*args, **kwargs)
            return (
                jsonify(
                    {
                        "ok": False,
                        "error": "Too many requests. Please retry later.",
                        "retry_after": int(retry_after or 0),
                    }
                ),
                429,
            )

        return wrapped

    return decorator
