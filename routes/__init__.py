# Routes package initialization
# This package contains all API routes organized by functionality

# Import all route blueprints
from .auth import auth_bp
from .users import users_bp
from .addresses import addresses_bp
from .categories import categories_bp
from .products import products_bp
from .cart import cart_bp
from .vouchers import vouchers_bp
from .orders import orders_bp
from .ratings import ratings_bp
from .revenue import revenue_bp
from .notifications import notifications_bp
from .support_chat import support_chat_bp
from .chatbot import chatbot_bp
from .hometown_posts import hometown_posts_bp
from .payments import vnpay_bp, zalopay_bp
from .uploads import uploads_bp

ALL_BLUEPRINTS = (
    auth_bp,
    users_bp,
    addresses_bp,
    categories_bp,
    products_bp,
    cart_bp,
    vouchers_bp,
    orders_bp,
    ratings_bp,
    revenue_bp,
    notifications_bp,
    support_chat_bp,
    chatbot_bp,
    hometown_posts_bp,
    vnpay_bp,
    zalopay_bp,
    uploads_bp,
)

__all__ = [
    'auth_bp', 'users_bp', 'addresses_bp', 'categories_bp', 'products_bp', 'cart_bp',
    'vouchers_bp', 'orders_bp', 'ratings_bp', 'revenue_bp', 'notifications_bp',
    'support_chat_bp', 'chatbot_bp', 'hometown_posts_bp', 'vnpay_bp', 'zalopay_bp',
    'uploads_bp', 'ALL_BLUEPRINTS',
]
