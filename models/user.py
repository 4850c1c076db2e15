"""
User Model
Defines the user schema, roles, shipping addresses and refresh-token bookkeeping
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional, List

from bson import ObjectId
from werkzeug.security import generate_password_hash, check_password_hash

from db import isoformat


class UserRole(str, Enum):
    USER = "user"
    SELLER = "seller"


GENDERS = ("male", "female", "other")


@dataclass
class ShippingAddress:
    """Embedded shipping address"""
    full_name: str
    phone: str
    street: str = ""
    ward: Optional[dict] = None  # {code, name}
    district: Optional[dict] = None
    province: Optional[dict] = None
    full_address: str = ""
    is_default: bool = False
    _id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            '_id': self._id or str(ObjectId()),
            'full_name': self.full_name,
            'phone': self.phone,
            'street': self.street,
            'ward': self.ward,
            'district': self.district,
            'province': self.province,
            'full_address': self.full_address or self.compose_full_address(),
            'is_default': self.is_default,
        }

    def compose_full_address(self) -> str:
        parts = [self.street]
        for unit in (self.ward, self.district, self.province):
            if unit and unit.get('name'):
                parts.append(unit['name'])
        return ", ".join(p for p in parts if p)

    @classmethod
    def from_dict(cls, data: dict) -> 'ShippingAddress':
        return cls(
            _id=str(data['_id']) if data.get('_id') else None,
            full_name=(data.get('full_name') or '').strip(),
            phone=(data.get('phone') or '').strip(),
            street=(data.get('street') or '').strip(),
            ward=data.get('ward'),
            district=data.get('district'),
            province=data.get('province'),
            full_address=(data.get('full_address') or '').strip(),
            is_default=bool(data.get('is_default', False)),
        )


@dataclass
class User:
    """User document model for MongoDB"""
    name: str
    email: str
    password_hash: str
    role: UserRole = UserRole.USER
    username: Optional[str] = None
    phone: Optional[str] = None
    avatar: Optional[str] = None
    avatar_public_id: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    gender: Optional[str] = None
    active: bool = False
    shipping_addresses: List[dict] = field(default_factory=list)
    refresh_tokens: List[dict] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_login: Optional[datetime] = None
    _id: Optional[str] = None

    @staticmethod
    def hash_password(password: str) -> str:
        return generate_password_hash(password)

    @staticmethod
    def verify_password(password: str, stored_hash: str) -> bool:
        if not stored_hash:
            return False
        try:
            return check_password_hash(stored_hash, password)
        except ValueError:
            return False

    @property
    def is_seller(self) -> bool:
        return self.role == UserRole.SELLER

    @staticmethod
    def new_refresh_entry(token: str, lifetime_seconds: int, device_info: str = "") -> dict:
        now = datetime.now(timezone.utc)
        return {
            'token': token,
            'created_at': now,
            'expires_at': now + timedelta(seconds=lifetime_seconds),
            'device_info': device_info,
        }

    @staticmethod
    def capped_refresh_tokens(tokens: List[dict], limit: int) -> List[dict]:
        """Keep only the most recent refresh tokens (one per device)"""
        if limit <= 0:
            return []
        return list(tokens)[-limit:]

    def to_dict(self, include_password: bool = False) -> dict:
        """Convert to dictionary for MongoDB storage"""
        data = {
            'name': self.name,
            'email': self.email,
            'role': self.role.value if isinstance(self.role, UserRole) else self.role,
            'username': self.username,
            'phone': self.phone,
            'avatar': self.avatar,
            'avatar_public_id': self.avatar_public_id,
            'date_of_birth': self.date_of_birth,
            'gender': self.gender,
            'active': self.active,
            'shipping_addresses': self.shipping_addresses,
            'refresh_tokens': self.refresh_tokens,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'last_login': self.last_login,
        }
        if self.username is None:
            # sparse unique index: leave the field out instead of storing null
            data.pop('username')
        if include_password:
            data['password_hash'] = self.password_hash
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        """Return public user info (no password, no refresh tokens)"""
        return {
            '_id': str(self._id) if self._id else None,
            'name': self.name,
            'email': self.email,
            'username': self.username,
            'role': self.role.value if isinstance(self.role, UserRole) else self.role,
            'phone': self.phone,
            'avatar': self.avatar,
            'date_of_birth': isoformat(self.date_of_birth),
            'gender': self.gender,
            'active': self.active,
            'shipping_addresses': self.shipping_addresses,
            'created_at': isoformat(self.created_at),
            'last_login': isoformat(self.last_login),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'User':
        """Create User instance from MongoDB document"""
        role = data.get('role', UserRole.USER)
        if isinstance(role, str):
            role = UserRole(role)

        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            name=data.get('name', ''),
            email=data.get('email', ''),
            password_hash=data.get('password_hash', ''),
            role=role,
            username=data.get('username'),
            phone=data.get('phone'),
            avatar=data.get('avatar'),
            avatar_public_id=data.get('avatar_public_id'),
            date_of_birth=data.get('date_of_birth'),
            gender=data.get('gender'),
            active=data.get('active', False),
            shipping_addresses=data.get('shipping_addresses', []),
            refresh_tokens=data.get('refresh_tokens', []),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
            last_login=data.get('last_login'),
        )
