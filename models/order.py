"""
Order Model
Defines the order schema, its status lifecycle and the denormalized line items
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List
from enum import Enum
import secrets
import string

from db import isoformat


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    CANCEL_REQUEST = "cancel_request"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


PAYMENT_METHODS = ("cod", "bank_transfer", "vnpay", "momo", "zalopay")

# Forward-only fulfilment path
STATUS_FLOW = [
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
]

# Field stamped when an order enters a status
STATUS_TIMESTAMPS = {
    OrderStatus.CONFIRMED.value: 'confirmed_at',
    OrderStatus.PROCESSING.value: 'processing_at',
    OrderStatus.SHIPPED.value: 'shipped_at',
    OrderStatus.DELIVERED.value: 'delivered_at',
    OrderStatus.CANCELLED.value: 'cancelled_at',
    OrderStatus.CANCEL_REQUEST.value: 'cancel_requested_at',
}

STATUS_LABELS = {
    'pending': 'Chờ xác nhận',
    'confirmed': 'Đã xác nhận',
    'processing': 'Đang xử lý',
    'shipped': 'Đang giao hàng',
    'delivered': 'Đã giao hàng',
    'cancelled': 'Đã hủy',
    'cancel_request': 'Yêu cầu hủy',
}

CANCEL_WINDOW_MINUTES = 30


def generate_order_number() -> str:
    """ORD + epoch milliseconds + 4 random upper-case alphanumerics"""
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    alphabet = string.ascii_uppercase + string.digits
    suffix = ''.join(secrets.choice(alphabet) for _ in range(4))
    return f"ORD{millis}{suffix}"


def check_transition(current: str, target: str) -> Optional[str]:
    """Return an error message when current -> target is not allowed"""
    if current == OrderStatus.CANCELLED.value:
        return 'Đơn hàng đã bị hủy, không thể cập nhật trạng thái'
    if current == OrderStatus.CANCEL_REQUEST.value:
        if target != OrderStatus.CANCELLED.value:
            return 'Đơn hàng đang chờ hủy, chỉ có thể chuyển sang trạng thái đã hủy'
        return None
    if current not in STATUS_FLOW or target not in STATUS_FLOW:
        return f'Trạng thái không hợp lệ: {target}'

    current_idx = STATUS_FLOW.index(current)
    target_idx = STATUS_FLOW.index(target)
    if target_idx < current_idx:
        return 'Không thể chuyển về trạng thái trước đó'
    if target_idx > current_idx + 1:
        return f'Không thể bỏ qua bước, trạng thái tiếp theo phải là {STATUS_FLOW[current_idx + 1]}'
    return None


@dataclass
class OrderItem:
    """Denormalized snapshot of a product at order time"""
    product_id: str
    product_name: str
    quantity: int
    price: float
    sale_price: Optional[float] = None
    product_slug: str = ""
    product_image: str = ""
    category_id: str = ""
    category_name: str = ""
    unit: str = ""
    hometown_origin: Optional[dict] = None

    @property
    def unit_price(self) -> float:
        if self.sale_price and 0 < self.sale_price < self.price:
            return self.sale_price
        return self.price

    @property
    def was_on_sale(self) -> bool:
        return self.unit_price < self.price

    @property
    def total(self) -> float:
        return self.unit_price * self.quantity

    @property
    def discount_percent(self) -> int:
        if not self.was_on_sale or not self.price:
            return 0
        return round((self.price - self.unit_price) / self.price * 100)

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'product_slug': self.product_slug,
            'product_image': self.product_image,
            'category_id': self.category_id,
            'category_name': self.category_name,
            'quantity': self.quantity,
            'price': self.unit_price,
            'sale_price': self.sale_price,
            'original_price': self.price,
            'total': self.total,
            'discount_percent': self.discount_percent,
            'was_on_sale': self.was_on_sale,
            'unit': self.unit,
            'hometown_origin': self.hometown_origin,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'OrderItem':
        return cls(
            product_id=data.get('product_id', ''),
            product_name=data.get('product_name', ''),
            quantity=int(data.get('quantity', 0)),
            price=float(data.get('original_price', data.get('price', 0))),
            sale_price=data.get('sale_price'),
            product_slug=data.get('product_slug', ''),
            product_image=data.get('product_image', ''),
            category_id=data.get('category_id', ''),
            category_name=data.get('category_name', ''),
            unit=data.get('unit', ''),
            hometown_origin=data.get('hometown_origin'),
        )


@dataclass
class Order:
    """Order document model for MongoDB"""
    user_id: str
    items: List[OrderItem]
    shipping_info: dict
    payment_method: str = "cod"
    order_number: str = field(default_factory=generate_order_number)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    shipping_fee: float = 0
    discount_value: float = 0
    freeship_value: float = 0
    voucher_codes: dict = field(default_factory=dict)
    notes: str = ""
    carrier: str = ""
    tracking_number: str = ""
    cancel_reason: str = ""
    app_trans_id: Optional[str] = None
    history: List[dict] = field(default_factory=list)
    timestamps: dict = field(default_factory=dict)
    payment_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _id: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return sum(item.total for item in self.items)

    @property
    def total_amount(self) -> float:
        total = self.subtotal + self.shipping_fee - self.discount_value - self.freeship_value
        return max(total, 0)

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage"""
        data = {
            'order_number': self.order_number,
            'user_id': self.user_id,
            'status': self.status.value if isinstance(self.status, OrderStatus) else self.status,
            'items': [item.to_dict() for item in self.items],
            'subtotal': self.subtotal,
            'shipping_fee': self.shipping_fee,
            'discount_value': self.discount_value,
            'freeship_value': self.freeship_value,
            'total_amount': self.total_amount,
            'voucher_codes': self.voucher_codes,
            'payment_method': self.payment_method,
            'payment_status': (self.payment_status.value
                               if isinstance(self.payment_status, PaymentStatus) else self.payment_status),
            'shipping_info': self.shipping_info,
            'notes': self.notes,
            'carrier': self.carrier,
            'tracking_number': self.tracking_number,
            'cancel_reason': self.cancel_reason,
            'app_trans_id': self.app_trans_id,
            'history': self.history,
            'payment_date': self.payment_date,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        for name in STATUS_TIMESTAMPS.values():
            data[name] = self.timestamps.get(name)
        if self._id:
            data['_id'] = self._id
        return data

    def timeline(self) -> List[dict]:
        return [
            {
                'status': entry.get('status'),
                'label': STATUS_LABELS.get(entry.get('status'), entry.get('status')),
                'date': isoformat(entry.get('date')),
                'note': entry.get('note', ''),
                'updated_by': entry.get('updated_by'),
            }
            for entry in self.history
        ]

    def to_public_dict(self) -> dict:
        """Return public order info"""
        status = self.status.value if isinstance(self.status, OrderStatus) else self.status
        data = self.to_dict()
        data.update({
            '_id': str(self._id) if self._id else None,
            'status': status,
            'status_label': STATUS_LABELS.get(status, status),
            'item_count': sum(item.quantity for item in self.items),
            'history': self.timeline(),
            'payment_date': isoformat(self.payment_date),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at),
        })
        for name in STATUS_TIMESTAMPS.values():
            data[name] = isoformat(self.timestamps.get(name))
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Order':
        """Create Order instance from MongoDB document"""
        status = data.get('status', OrderStatus.PENDING.value)
        payment_status = data.get('payment_status', PaymentStatus.PENDING.value)
        order = cls(
            _id=str(data.get('_id')) if data.get('_id') else None,
            order_number=data.get('order_number', ''),
            user_id=data.get('user_id', ''),
            items=[OrderItem.from_dict(item) for item in data.get('items', [])],
            shipping_info=data.get('shipping_info', {}),
            payment_method=data.get('payment_method', 'cod'),
            status=OrderStatus(status) if status in OrderStatus._value2member_map_ else status,
            payment_status=(PaymentStatus(payment_status)
                            if payment_status in PaymentStatus._value2member_map_ else payment_status),
            shipping_fee=data.get('shipping_fee', 0),
            discount_value=data.get('discount_value', 0),
            freeship_value=data.get('freeship_value', 0),
            voucher_codes=data.get('voucher_codes', {}),
            notes=data.get('notes', ''),
            carrier=data.get('carrier', ''),
            tracking_number=data.get('tracking_number', ''),
            cancel_reason=data.get('cancel_reason', ''),
            app_trans_id=data.get('app_trans_id'),
            history=data.get('history', []),
            timestamps={name: data.get(name) for name in STATUS_TIMESTAMPS.values()},
            payment_date=data.get('payment_date'),
            created_at=data.get('created_at', datetime.now(timezone.utc)),
            updated_at=data.get('updated_at', datetime.now(timezone.utc)),
        )
        return order
