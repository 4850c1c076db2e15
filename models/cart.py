"""
Cart Item Model
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from db import isoformat
from models.product import effective_price


@dataclass
class CartItem:
    """One product line in a user's cart"""
    user_id: str
    product_id: str
    quantity: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'user_id': self.user_id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self, product: Optional[dict] = None) -> dict:
        """Cart line with a product snapshot and line total"""
        data = {
            '_id': str(self._id) if self._id else None,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
            'product': None,
            'line_total': 0,
        }
        if product:
            price = float(product.get('price', 0))
            unit_price = effective_price(price, product.get('sale_price'))
            data['product'] = {
                '_id': str(product['_id']),
                'name': product.get('name'),
                'slug': product.get('slug'),
                'price': price,
                'sale_price': product.get('sale_price'),
                'images': product.get('images', []),
                'stock_quantity': product.get('stock_quantity', 0),
                'status': product.get('status'),
                'unit': product.get('unit', ''),
            }
            data['line_total'] = unit_price * self.quantity
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'CartItem':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            user_id=data.get('user_id', ''),
            product_id=data.get('product_id', ''),
            quantity=int(data.get('quantity', 1)),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
