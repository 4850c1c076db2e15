"""
Hometown Post Model
Articles about Phú Yên culture, food, tourism, history and festivals
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from db import isoformat

POST_CATEGORIES = ("culture", "food", "tourism", "history", "festival")
POST_STATUSES = ("draft", "published")


def make_excerpt(content: str, length: int = 200) -> str:
    text = ' '.join((content or '').split())
    if len(text) <= length:
        return text
    return text[:length].rsplit(' ', 1)[0] + '...'


@dataclass
class HometownPost:
    """Hometown article document"""
    title: str
    slug: str
    content: str
    author_id: str
    category: str = "culture"
    excerpt: str = ""
    featured_image: Optional[str] = None
    location: dict = field(default_factory=dict)  # {district, specific_place}
    status: str = "draft"
    views: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def __post_init__(self):
        if self.category not in POST_CATEGORIES:
            raise ValueError(f'Danh mục không hợp lệ: {self.category}')
        if self.status not in POST_STATUSES:
            raise ValueError(f'Trạng thái không hợp lệ: {self.status}')
        if not self.excerpt:
            self.excerpt = make_excerpt(self.content)

    def to_dict(self) -> dict:
        data = {
            'title': self.title,
            'slug': self.slug,
            'content': self.content,
            'excerpt': self.excerpt,
            'featured_image': self.featured_image,
            'author_id': self.author_id,
            'category': self.category,
            'location': self.location,
            'status': self.status,
            'views': self.views,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self, author: Optional[dict] = None) -> dict:
        data = self.to_dict()
        data.update({
            '_id': str(self._id) if self._id else None,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        })
        if author:
            data['author'] = {'_id': str(author['_id']), 'name': author.get('name'),
                              'avatar': author.get('avatar')}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'HometownPost':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            title=data.get('title', ''),
            slug=data.get('slug', ''),
            content=data.get('content', ''),
            excerpt=data.get('excerpt', ''),
            featured_image=data.get('featured_image'),
            author_id=data.get('author_id', ''),
            category=data.get('category', 'culture'),
            location=data.get('location') or {},
            status=data.get('status', 'draft'),
            views=int(data.get('views', 0)),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
