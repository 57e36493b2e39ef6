from dataclasses import replace
from functools import wraps

from flask import current_app, g, jsonify, request

from security.tokens import TokenError, bearer_token, decode_identity


def load_current_user():
    g.user = None
    g.token = None
    g.auth_error = None

    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        return
    try:
        g.user = decode_identity(
            token,
            current_app.config["JWT_SECRET"],
            current_app.config.get("JWT_ALGORITHMS", ["HS256"]),
        )
    except TokenError as exc:
        g.auth_error = str(exc)
        return
    g.token = token


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(success=False, error=getattr(g, "auth_error", None) or "Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper


def notify_target():
    """
    Identity to send booking notices to. Tokens without an email fall back
    to the user service; None means nobody can be notified.
    """
    user = g.user
    if user.email:
        return user

    client = current_app.extensions.get("user_client")
    if client is None:
        return None
    profile = client.get_user(user.user_id, g.token)
    if not profile or not profile.get("email"):
        return None
    return replace(
        user,
        email=profile["email"],
        display_name=profile.get("nombre") or profile.get("name") or user.display_name,
    )
