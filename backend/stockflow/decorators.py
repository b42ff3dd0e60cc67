# Overview: Request decorators that establish the acting user for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services.authorization import ROLES, Actor


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    if not raw.isdigit():
        raise ValueError(name)
    return int(raw)


def require_actor(f):
    """
    Require an upstream-authenticated actor.

    The auth layer in front of this service forwards the caller as headers:
    - X-Actor-User-Id (required)
    - X-Actor-Role: STORE_OWNER | SUPPLIER | CUSTOMER (required)
    - X-Actor-Store-Id: owned store, for store owners
    - X-Actor-Supplier-Id: supplier record, for suppliers

    Sets g.actor. Returns 401 when the actor is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_id = _header_int("X-Actor-User-Id")
            store_id = _header_int("X-Actor-Store-Id")
            supplier_id = _header_int("X-Actor-Supplier-Id")
        except ValueError as exc:
            return jsonify({"error": f"Invalid header {exc}", "code": "UNAUTHENTICATED"}), 401

        role = (request.headers.get("X-Actor-Role") or "").strip().upper()
        if user_id is None or role not in ROLES:
            return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401

        g.actor = Actor(user_id=user_id, role=role, store_id=store_id, supplier_id=supplier_id)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Gate a route on the actor's role. Use after require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401
            if actor.role not in roles:
                return jsonify({"error": "Insufficient role", "code": "UNAUTHORIZED"}), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
