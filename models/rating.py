"""
Rating Model
Product ratings left by customers after delivery
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from db import isoformat

RATING_STATUSES = ("visible", "hidden")


@dataclass
class Rating:
    """Rating document model"""
    product_id: str
    user_id: str
    rating: int
    content: str = ""
    status: str = "visible"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'product_id': self.product_id,
            'user_id': self.user_id,
            'rating': self.rating,
            'content': self.content,
            'status': self.status,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self, user: Optional[dict] = None, product: Optional[dict] = None) -> dict:
        data = {
            '_id': str(self._id) if self._id else None,
            'product_id': self.product_id,
            'user_id': self.user_id,
            'rating': self.rating,
            'content': self.content,
            'status': self.status,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if user:
            data['user'] = {
                '_id': str(user['_id']),
                'name': user.get('name'),
                'avatar': user.get('avatar'),
            }
        if product:
            data['product'] = {
                '_id': str(product['_id']),
                'name': product.get('name'),
                'slug': product.get('slug'),
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Rating':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            product_id=data.get('product_id', ''),
            user_id=data.get('user_id', ''),
            rating=int(data.get('rating', 0)),
            content=data.get('content', ''),
            status=data.get('status', 'visible'),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
