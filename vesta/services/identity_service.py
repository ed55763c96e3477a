"""
Identity token service: issue and verify caller identity tokens.

Algorithm: HS256
Lifetime:  24 hours (configurable via IDENTITY_TOKEN_EXPIRES)

Token payload:
{
    "sub": <email>,
    "email": <email>,
    "name": <display name>,
    "picture": <avatar url, optional>,
    "type": "identity",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from vesta.models.workspace import User

DEFAULT_EXPIRES = 86400
ALGORITHM = "HS256"
TOKEN_TYPE = "identity"


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def issue_identity_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.email.lower(),
        "email": user.email.lower(),
        "name": user.name,
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(seconds=current_app.config.get("IDENTITY_TOKEN_EXPIRES", DEFAULT_EXPIRES)),
        "jti": str(uuid.uuid4()),
    }
    if user.avatar:
        payload["picture"] = user.avatar
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_identity_token(token: str) -> User:
    """
    Verify ``token`` and return the identity it carries.

    Raises jwt.InvalidTokenError (or a subclass such as ExpiredSignatureError).
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected {TOKEN_TYPE} token, got {payload.get('type')}")
    email = payload.get("email") or payload.get("sub")
    if not email:
        raise jwt.InvalidTokenError("Token carries no email")
    return User(email=email.lower(), name=payload.get("name", ""), avatar=payload.get("picture"))
