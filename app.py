from __future__ import annotations

import logging
from datetime import datetime, timezone

import click
from flask import Flask, jsonify
from flask_cors import CORS

from config import get_settings, Settings
from db import COLLECTIONS, connect, create_indexes, mongo_status, redis_status
from extensions import connect_redis, socketio
from utils.cloudinary_helper import MAX_FILE_SIZE, MAX_FILES, is_cloudinary_configured
from utils.email_service import EmailService

# Import route blueprints
from routes import ALL_BLUEPRINTS
from routes.orders import auto_confirm_orders
import sockets  # noqa: F401  registers the Socket.IO handlers before init_app

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def init_database(app: Flask, db=None) -> None:
    """Register MongoDB collections in app config for routes to access"""
    settings: Settings = app.config['settings']
    if db is None and settings.mongodb_uri:
        try:
            db = connect(settings.mongodb_uri, settings.mongodb_db)
            create_indexes(db)
            logger.info("MongoDB collections initialized (%s)", settings.mongodb_db)
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Failed to initialize MongoDB: %s", e)
            db = None
    elif db is None:
        logger.warning("MongoDB URI not configured - store features will be disabled")

    app.config['db'] = db
    for name in COLLECTIONS:
        app.config[f'db_{name}'] = db[name] if db is not None else None


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({'success': False, 'message': 'Không tìm thấy tài nguyên'}), 404

    @app.errorhandler(405)
    def method_not_allowed(_error):
        return jsonify({'success': False, 'message': 'Phương thức không được hỗ trợ'}), 405

    @app.errorhandler(413)
    def too_large(_error):
        return jsonify({'success': False, 'message': 'Dữ liệu tải lên quá lớn'}), 413

    @app.errorhandler(500)
    def internal_error(error):
        logger.error("Unhandled error: %s", error)
        return jsonify({'success': False, 'message': 'Lỗi máy chủ'}), 500


def register_commands(app: Flask) -> None:
    @app.cli.command('auto-confirm-orders')
    def auto_confirm_orders_command():
        """Confirm pending orders older than 30 minutes."""
        count = auto_confirm_orders()
        click.echo(f"Auto-confirmed {count} order(s)")


def create_app(settings: Settings | None = None, db=None, redis_client=None) -> Flask:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    # '/api/cart' and '/api/cart/' are the same endpoint
    app.url_map.strict_slashes = False
    app.config['settings'] = settings
    app.config['SECRET_KEY'] = settings.access_token_key
    app.config['MAX_CONTENT_LENGTH'] = MAX_FILES * MAX_FILE_SIZE + 1024 * 1024
    app.config['JSON_AS_ASCII'] = False
    app.json.ensure_ascii = False

    CORS(app, resources={
        r"/*": {
            "origins": [settings.client_url],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
            "allow_headers": ["Content-Type", "Authorization", "Accept", "X-Requested-With"],
            "expose_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True,
            "max_age": 3600
        }
    })

    init_database(app, db)
    app.config['redis_client'] = redis_client if redis_client is not None else connect_redis(settings.redis_url)
    app.config['email_service'] = EmailService(settings)

    # Register route blueprints
    for blueprint in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint)

    register_error_handlers(app)
    register_commands(app)

    @app.get("/api-info")
    def api_info():
        return jsonify(
            {
                "success": True,
                "message": "Phú Yên specialty store backend is running.",
                "routes": {
                    "health": "/health",
                    "auth": "/api/auth",
                    "users": "/api/users",
                    "addresses": "/api/address",
                    "categories": "/api/categories",
                    "products": "/api/products",
                    "cart": "/api/cart",
                    "vouchers": "/api/vouchers",
                    "orders": "/api/orders",
                    "ratings": "/api/ratings",
                    "revenue": "/api/revenue",
                    "notifications": "/api/notifications",
                    "support_chat": "/api/support-chat",
                    "chatbot": "/api/chatbot",
                    "hometown_posts": "/api/hometown-posts",
                    "vnpay": "/api/vnpay",
                    "zalopay": "/api/zalopay",
                    "upload": "/api/upload",
                },
            }
        )

    @app.get("/health")
    def health():
        db_status = mongo_status(app.config['db'])
        cache_status = redis_status(app.config['redis_client'])
        return jsonify(
            {
                "success": True,
                "time": datetime.now(timezone.utc).isoformat(),
                "db": {"enabled": db_status.enabled, "ok": db_status.ok, "message": db_status.message},
                "redis": {"enabled": cache_status.enabled, "ok": cache_status.ok, "message": cache_status.message},
                "cloudinary": {"configured": is_cloudinary_configured()},
                "email": {"configured": app.config['email_service'].enabled},
            }
        )

    socketio.init_app(app, cors_allowed_origins=[settings.client_url], async_mode="threading")

    return app


if __name__ == "__main__":
    settings = get_settings()
    app = create_app(settings)

    logger.info("Server starting on http://%s:%s (debug=%s)", settings.host, settings.port, settings.debug)
    socketio.run(app, host=settings.host, port=settings.port, debug=settings.debug, allow_unsafe_werkzeug=True)
