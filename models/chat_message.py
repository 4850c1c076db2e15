"""
Chat Message Model
Stored exchanges between a logged-in customer and the shopping assistant
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from db import isoformat


@dataclass
class ChatMessage:
    userId: str
    sessionId: str
    message: str
    response: str
    metadata: dict = field(default_factory=dict)  # {relevantProducts, searchQuery, resolved}
    createdAt: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'userId': self.userId,
            'sessionId': self.sessionId,
            'message': self.message,
            'response': self.response,
            'metadata': self.metadata,
            'createdAt': self.createdAt,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        data['_id'] = str(self._id) if self._id else None
        data['createdAt'] = isoformat(self.createdAt)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'ChatMessage':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            userId=data.get('userId', ''),
            sessionId=data.get('sessionId', ''),
            message=data.get('message', ''),
            response=data.get('response', ''),
            metadata=data.get('metadata', {}),
            createdAt=data.get('createdAt', datetime.now(timezone.utc)),
        )
