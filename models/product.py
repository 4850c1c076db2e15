"""
Product Model
Defines the specialty product schema for the storefront
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from db import isoformat


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


def effective_price(price: float, sale_price: Optional[float]) -> float:
    """Sale price wins only when it is a real discount"""
    if sale_price and 0 < sale_price < price:
        return sale_price
    return price


@dataclass
class Product:
    """Product document model for MongoDB"""
    name: str
    slug: str
    price: float
    category_id: str
    description: str = ""
    short_description: str = ""
    sale_price: Optional[float] = None
    stock_quantity: int = 0
    sold_quantity: int = 0
    unit: str = ""
    status: ProductStatus = ProductStatus.ACTIVE
    featured: bool = False
    hometown_origin: Optional[dict] = None  # {district, terrain}
    images: List[dict] = field(default_factory=list)  # [{image_url, is_primary}]
    favorites: List[dict] = field(default_factory=list)
    views: List[dict] = field(default_factory=list)
    view_count: int = 0
    unique_view_count: int = 0
    purchase_count: int = 0
    purchase_users: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = ProductStatus(self.status)
        if self.stock_quantity <= 0 and self.status == ProductStatus.ACTIVE:
            self.status = ProductStatus.OUT_OF_STOCK

    @property
    def final_price(self) -> float:
        return effective_price(self.price, self.sale_price)

    @property
    def primary_image(self) -> str:
        for image in self.images:
            if image.get('is_primary'):
                return image.get('image_url', '')
        return self.images[0].get('image_url', '') if self.images else ''

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage"""
        data = {
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'short_description': self.short_description,
            'price': self.price,
            'sale_price': self.sale_price,
            'stock_quantity': self.stock_quantity,
            'sold_quantity': self.sold_quantity,
            'unit': self.unit,
            'category_id': self.category_id,
            'status': self.status.value,
            'featured': self.featured,
            'hometown_origin': self.hometown_origin,
            'images': self.images,
            'favorites': self.favorites,
            'views': self.views,
            'view_count': self.view_count,
            'unique_view_count': self.unique_view_count,
            'purchase_count': self.purchase_count,
            'purchase_users': self.purchase_users,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self, user_id: Optional[str] = None) -> dict:
        """Return public product info; per-user view/favorite lists stay private"""
        data = {
            '_id': str(self._id) if self._id else None,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'short_description': self.short_description,
            'price': self.price,
            'sale_price': self.sale_price,
            'final_price': self.final_price,
            'stock_quantity': self.stock_quantity,
            'sold_quantity': self.sold_quantity,
            'unit': self.unit,
            'category_id': self.category_id,
            'status': self.status.value,
            'featured': self.featured,
            'hometown_origin': self.hometown_origin,
            'images': self.images,
            'favorite_count': len(self.favorites),
            'view_count': self.view_count,
            'unique_view_count': self.unique_view_count,
            'purchase_count': self.purchase_count,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        }
        if user_id:
            data['is_favorited'] = any(f.get('user_id') == user_id for f in self.favorites)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Product':
        """Create Product instance from MongoDB document"""
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            name=data.get('name', ''),
            slug=data.get('slug', ''),
            description=data.get('description', ''),
            short_description=data.get('short_description', ''),
            price=float(data.get('price', 0)),
            sale_price=data.get('sale_price'),
            stock_quantity=int(data.get('stock_quantity', 0)),
            sold_quantity=int(data.get('sold_quantity', 0)),
            unit=data.get('unit', ''),
            category_id=data.get('category_id', ''),
            status=data.get('status', ProductStatus.ACTIVE.value),
            featured=bool(data.get('featured', False)),
            hometown_origin=data.get('hometown_origin'),
            images=data.get('images', []),
            favorites=data.get('favorites', []),
            views=data.get('views', []),
            view_count=int(data.get('view_count', 0)),
            unique_view_count=int(data.get('unique_view_count', 0)),
            purchase_count=int(data.get('purchase_count', 0)),
            purchase_users=data.get('purchase_users', []),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
