"""
Notification Model
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from db import isoformat

NOTIFICATION_TYPES = ("new_order", "new_rating", "new_comment", "new_product", "order_status")
REFERENCE_MODELS = ("Order", "Product", "Rating")


@dataclass
class Notification:
    """In-app notification for one recipient"""
    recipient_id: str
    type: str
    title: str
    message: str
    sender_id: Optional[str] = None
    reference_id: Optional[str] = None
    reference_model: Optional[str] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def __post_init__(self):
        if self.type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {self.type}")
        if self.reference_model and self.reference_model not in REFERENCE_MODELS:
            raise ValueError(f"Unknown reference model: {self.reference_model}")

    def to_dict(self) -> dict:
        data = {
            'recipient_id': self.recipient_id,
            'sender_id': self.sender_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'reference_id': self.reference_id,
            'reference_model': self.reference_model,
            'is_read': self.is_read,
            'created_at': self.created_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        data['_id'] = str(self._id) if self._id else None
        data['created_at'] = isoformat(self.created_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Notification':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            recipient_id=data.get('recipient_id', ''),
            sender_id=data.get('sender_id'),
            type=data.get('type', 'order_status'),
            title=data.get('title', ''),
            message=data.get('message', ''),
            reference_id=data.get('reference_id'),
            reference_model=data.get('reference_model'),
            is_read=bool(data.get('is_read', False)),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
        )
