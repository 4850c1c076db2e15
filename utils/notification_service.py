"""
Notification Service
Persists in-app notifications and pushes them over Socket.IO
"""

from __future__ import annotations
import logging
from typing import List, Optional

from db import get_collection, serialize, utcnow
from extensions import emit_safely
from models.notification import Notification

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    'confirmed': ('Đơn hàng đã xác nhận',
                  'Đơn hàng #{number} của bạn đã được xác nhận và đang chờ xử lý'),
    'processing': ('Đơn hàng đang xử lý', 'Đơn hàng #{number} của bạn đang được chuẩn bị'),
    'shipped': ('Đơn hàng đang giao', 'Đơn hàng #{number} của bạn đang được giao'),
    'delivered': ('Đơn hàng đã giao thành công',
                  'Đơn hàng #{number} của bạn đã được giao thành công. Cảm ơn bạn đã mua sắm!'),
    'cancelled': ('Đơn hàng đã hủy', 'Đơn hàng #{number} của bạn đã bị hủy'),
}


def unread_count(recipient_id: str) -> int:
    return get_collection('notifications').count_documents({'recipient_id': recipient_id, 'is_read': False})


def create_notification(recipient_id: str, type: str, title: str, message: str,
                        reference_id: Optional[str] = None, reference_model: Optional[str] = None,
                        sender_id: Optional[str] = None) -> dict:
    """Store the notification, then emit it and the new unread count to the recipient's room"""
    notification = Notification(
        recipient_id=str(recipient_id),
        sender_id=str(sender_id) if sender_id else None,
        type=type,
        title=title,
        message=message,
        reference_id=str(reference_id) if reference_id else None,
        reference_model=reference_model,
    )
    result = get_collection('notifications').insert_one(notification.to_dict())
    notification._id = str(result.inserted_id)
    public = notification.to_public_dict()

    room = f"user:{recipient_id}"
    emit_safely('new_notification', public, room)
    emit_safely('notification_count', {'count': unread_count(str(recipient_id))}, room)
    return public


def notify_sellers(type: str, title: str, message: str, reference_id: Optional[str] = None,
                   reference_model: Optional[str] = None, sender_id: Optional[str] = None) -> List[dict]:
    sellers = get_collection('users').find({'role': 'seller'}, {'_id': 1})
    notifications = [
        create_notification(str(seller['_id']), type, title, message, reference_id, reference_model, sender_id)
        for seller in sellers
    ]
    emit_safely('seller_notification', serialize({
        'type': type,
        'title': title,
        'message': message,
        'reference_id': reference_id,
        'reference_model': reference_model,
        'created_at': utcnow(),
    }), 'seller')
    return notifications


def notify_new_order(order: dict) -> List[dict]:
    return notify_sellers(
        'new_order',
        'Đơn hàng mới',
        f"Có đơn hàng mới #{order['order_number']} với giá trị {int(order.get('total_amount', 0)):,}đ".replace(',', '.'),
        reference_id=str(order['_id']),
        reference_model='Order',
        sender_id=order.get('user_id'),
    )


def notify_new_rating(rating: dict) -> List[dict]:
    return notify_sellers(
        'new_rating',
        'Đánh giá mới',
        f"Có đánh giá mới {rating['rating']} sao cho sản phẩm",
        reference_id=str(rating['_id']),
        reference_model='Rating',
        sender_id=rating.get('user_id'),
    )


def notify_new_product(product: dict) -> List[dict]:
    """Tell every customer (non-seller) about a new product"""
    customers = get_collection('users').find({'role': {'$ne': 'seller'}}, {'_id': 1})
    return [
        create_notification(
            str(user['_id']),
            'new_product',
            'Sản phẩm mới',
            f"Sản phẩm mới \"{product['name']}\" đã được thêm vào cửa hàng",
            reference_id=str(product['_id']),
            reference_model='Product',
        )
        for user in customers
    ]


def notify_order_status_update(order: dict, previous_status: str) -> dict:
    status = order.get('status')
    number = order.get('order_number')
    title, template = STATUS_MESSAGES.get(
        status, ('Cập nhật đơn hàng', 'Đơn hàng #{number} của bạn đã được cập nhật từ {previous} sang {status}'))
    message = template.format(number=number, previous=previous_status, status=status)
    if status == 'shipped' and order.get('tracking_number'):
        message += f". Mã vận đơn: {order['tracking_number']}"
    if status == 'cancelled' and order.get('cancel_reason'):
        message += f" với lý do: {order['cancel_reason']}"

    notification = create_notification(
        order['user_id'], 'order_status', title, message,
        reference_id=str(order['_id']), reference_model='Order',
    )
    emit_safely('order_status_update', serialize({
        'order_id': str(order['_id']),
        'order_number': number,
        'previous_status': previous_status,
        'new_status': status,
        'updated_at': utcnow(),
        'tracking_number': order.get('tracking_number') or None,
        'carrier': order.get('carrier') or None,
    }), f"user:{order['user_id']}")
    return notification
