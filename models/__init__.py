# Models package initialization
# Contains MongoDB document schemas and validation

from .user import User, UserRole, ShippingAddress
from .category import Category
from .product import Product, ProductStatus
from .order import Order, OrderItem, OrderStatus, PaymentStatus
from .cart import CartItem
from .voucher import Voucher, VoucherType
from .rating import Rating
from .notification import Notification
from .support_chat import SupportConversation, SupportMessage
from .hometown_post import HometownPost
from .chat_message import ChatMessage

__all__ = [
    'User', 'UserRole', 'ShippingAddress', 'Category', 'Product', 'ProductStatus',
    'Order', 'OrderItem', 'OrderStatus', 'PaymentStatus', 'CartItem', 'Voucher', 'VoucherType',
    'Rating', 'Notification', 'SupportConversation', 'SupportMessage', 'HometownPost', 'ChatMessage',
]
