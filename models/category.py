"""
Category Model
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from db import isoformat


@dataclass
class Category:
    """Product category document"""
    name: str
    slug: str
    description: str = ""
    image: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'image': self.image,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        return {
            '_id': str(self._id) if self._id else None,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'image': self.image,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Category':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            name=data.get('name', ''),
            slug=data.get('slug', ''),
            description=data.get('description', ''),
            image=data.get('image'),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
