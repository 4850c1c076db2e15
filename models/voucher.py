"""
Voucher Model
Discount and free-shipping codes, with the saving calculations used at checkout
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from db import ensure_utc, isoformat


class VoucherType(str, Enum):
    DISCOUNT = "DISCOUNT"
    FREESHIP = "FREESHIP"


@dataclass
class Voucher:
    """Voucher document model for MongoDB"""
    code: str
    type: VoucherType
    discountValue: float
    startDate: datetime
    endDate: datetime
    isPercent: bool = False
    maxDiscount: Optional[float] = None
    minOrderValue: float = 0
    usageLimit: int = 0  # 0 means unlimited
    usedCount: int = 0
    active: bool = True
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    def __post_init__(self):
        self.code = (self.code or '').strip().upper()
        if isinstance(self.type, str):
            self.type = VoucherType(self.type.upper())

    @property
    def is_exhausted(self) -> bool:
        return self.usageLimit > 0 and self.usedCount >= self.usageLimit

    def usability_error(self, order_value: float, now: Optional[datetime] = None) -> Optional[str]:
        """Return why the voucher cannot be used for this order, or None"""
        now = now or datetime.now(timezone.utc)
        if not self.active:
            return 'Voucher đã bị vô hiệu hóa'
        if now < ensure_utc(self.startDate):
            return 'Voucher chưa đến thời gian sử dụng'
        if now > ensure_utc(self.endDate):
            return 'Voucher đã hết hạn'
        if self.is_exhausted:
            return 'Voucher đã hết lượt sử dụng'
        if order_value < (self.minOrderValue or 0):
            return f'Đơn hàng tối thiểu {int(self.minOrderValue):,}đ để sử dụng voucher này'
        return None

    def compute_discount(self, order_value: float) -> float:
        """Discount on goods: percent or flat, capped by maxDiscount and the order value"""
        if self.isPercent:
            amount = order_value * self.discountValue / 100
        else:
            amount = self.discountValue
        if self.maxDiscount:
            amount = min(amount, self.maxDiscount)
        return max(min(amount, order_value), 0)

    def compute_freeship(self, shipping_fee: float) -> float:
        """Shipping saving, never more than the fee itself"""
        if self.isPercent:
            amount = shipping_fee * self.discountValue / 100
        else:
            amount = self.discountValue
        if self.maxDiscount:
            amount = min(amount, self.maxDiscount)
        return max(min(amount, shipping_fee), 0)

    def to_dict(self) -> dict:
        data = {
            'code': self.code,
            'type': self.type.value,
            'description': self.description,
            'discountValue': self.discountValue,
            'isPercent': self.isPercent,
            'maxDiscount': self.maxDiscount,
            'minOrderValue': self.minOrderValue,
            'startDate': self.startDate,
            'endDate': self.endDate,
            'usageLimit': self.usageLimit,
            'usedCount': self.usedCount,
            'active': self.active,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self._id:
            data['_id'] = self._id
        return data

    def to_public_dict(self) -> dict:
        data = self.to_dict()
        data.update({
            '_id': str(self._id) if self._id else None,
            'startDate': isoformat(self.startDate),
            'endDate': isoformat(self.endDate),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
            'remaining': (self.usageLimit - self.usedCount) if self.usageLimit > 0 else None,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Voucher':
        return cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            code=data.get('code', ''),
            type=data.get('type', VoucherType.DISCOUNT.value),
            description=data.get('description', ''),
            discountValue=float(data.get('discountValue', 0)),
            isPercent=bool(data.get('isPercent', False)),
            maxDiscount=data.get('maxDiscount'),
            minOrderValue=float(data.get('minOrderValue', 0) or 0),
            startDate=data.get('startDate'),
            endDate=data.get('endDate'),
            usageLimit=int(data.get('usageLimit', 0) or 0),
            usedCount=int(data.get('usedCount', 0) or 0),
            active=bool(data.get('active', True)),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
