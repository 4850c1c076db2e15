"""
JWT helpers
Access and refresh tokens signed with HS256 via PyJWT
"""

from __future__ import annotations
from datetime import datetime, timezone, timedelta
import uuid

import jwt

from config import Settings

ALGORITHM = "HS256"


def _encode(payload: dict, key: str, lifetime_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(payload)
    payload['iat'] = now
    payload['exp'] = now + timedelta(seconds=lifetime_seconds)
    return jwt.encode(payload, key, algorithm=ALGORITHM)


def create_access_token(settings: Settings, user_id: str, email: str, role: str) -> str:
    return _encode(
        {'userId': user_id, 'email': email, 'role': role, 'type': 'access'},
        settings.access_token_key,
        settings.access_token_life,
    )


def create_refresh_token(settings: Settings, user_id: str, email: str, role: str) -> str:
    """Refresh tokens carry a jti so two tokens issued in the same second differ"""
    return _encode(
        {'userId': user_id, 'email': email, 'role': role, 'type': 'refresh', 'jti': uuid.uuid4().hex},
        settings.refresh_token_key,
        settings.refresh_token_life,
    )


def decode_access_token(settings: Settings, token: str) -> dict | None:
    """Return the access payload, or None when invalid or expired"""
    try:
        payload = jwt.decode(token, settings.access_token_key, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get('type') != 'access':
        return None
    return payload


def decode_refresh_token(settings: Settings, token: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.refresh_token_key, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get('type') != 'refresh':
        return None
    return payload


def user_info_from_payload(payload: dict) -> dict:
    return {
        'userId': payload.get('userId'),
        'email': payload.get('email'),
        'role': payload.get('role'),
    }
