"""
Cart Routes
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging

from flask import Blueprint, jsonify, request
from pymongo.errors import DuplicateKeyError

from db import get_collection, parse_object_id
from models.cart import CartItem
from models.product import ProductStatus
from routes.auth import require_auth

logger = logging.getLogger(__name__)

cart_bp = Blueprint('cart', __name__, url_prefix='/api/cart')


def _cart_payload(user_id: str) -> dict:
    """Items (most recently updated first) with product snapshots and the subtotal"""
    cart_items = get_collection('cart_items')
    docs = list(cart_items.find({'user_id': user_id}).sort('updated_at', -1))

    product_ids = [parse_object_id(doc['product_id']) for doc in docs]
    products = {
        str(p['_id']): p
        for p in get_collection('products').find({'_id': {'$in': [oid for oid in product_ids if oid]}})
    }

    items = [CartItem.from_dict(doc).to_public_dict(products.get(doc['product_id'])) for doc in docs]
    return {
        'items': items,
        'total_items': sum(item['quantity'] for item in items),
        'subtotal': sum(item['line_total'] for item in items),
    }


def _owned_item(item_id: str):
    oid = parse_object_id(item_id)
    if oid is None:
        return None
    return get_collection('cart_items').find_one({'_id': oid, 'user_id': request.user_info['userId']})


def _parse_quantity(value, default=None):
    try:
        return int(value if value is not None else default)
    except (TypeError, ValueError):
        return None


@cart_bp.route('/', methods=['GET'])
@require_auth
def get_cart():
    try:
        return jsonify({'success': True, 'message': 'OK', 'data': _cart_payload(request.user_info['userId'])})

    except Exception as e:
        logger.exception("Get cart failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@cart_bp.route('/', methods=['POST'])
@require_auth
def add_to_cart():
    """Add a product or merge into the existing line"""
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get('product_id') or data.get('productId')
        quantity = _parse_quantity(data.get('quantity'), 1)
        if not product_id:
            return jsonify({'success': False, 'message': 'product_id là bắt buộc'}), 400
        if quantity is None or quantity < 1:
            return jsonify({'success': False, 'message': 'Số lượng phải lớn hơn 0'}), 400

        oid = parse_object_id(product_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID sản phẩm không hợp lệ'}), 400

        product = get_collection('products').find_one({'_id': oid})
        if not product:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm'}), 404
        if product.get('status') != ProductStatus.ACTIVE.value:
            return jsonify({'success': False, 'message': 'Sản phẩm hiện không được bán'}), 400

        user_id = request.user_info['userId']
        cart_items = get_collection('cart_items')
        existing = cart_items.find_one({'user_id': user_id, 'product_id': product_id})
        new_quantity = quantity + (existing.get('quantity', 0) if existing else 0)
        stock = product.get('stock_quantity', 0)
        if new_quantity > stock:
            return jsonify({'success': False, 'message': f'Chỉ còn {stock} sản phẩm trong kho'}), 400

        now = datetime.now(timezone.utc)
        if existing:
            cart_items.update_one({'_id': existing['_id']},
                                  {'$set': {'quantity': new_quantity, 'updated_at': now}})
        else:
            try:
                cart_items.insert_one(CartItem(user_id=user_id, product_id=product_id, quantity=quantity).to_dict())
            except DuplicateKeyError:
                # concurrent add of the same product: fall back to merging
                cart_items.update_one({'user_id': user_id, 'product_id': product_id},
                                      {'$inc': {'quantity': quantity}, '$set': {'updated_at': now}})

        return jsonify({'success': True, 'message': 'Đã thêm vào giỏ hàng', 'data': _cart_payload(user_id)}), 201

    except Exception as e:
        logger.exception("Add to cart failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@cart_bp.route('/<item_id>', methods=['PUT'])
@require_auth
def update_cart_item(item_id: str):
    """Set a line's quantity; zero or less removes it"""
    try:
        data = request.get_json(silent=True) or {}
        quantity = _parse_quantity(data.get('quantity'))
        if quantity is None:
            return jsonify({'success': False, 'message': 'Số lượng không hợp lệ'}), 400

        item = _owned_item(item_id)
        if not item:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm trong giỏ hàng'}), 404

        cart_items = get_collection('cart_items')
        if quantity <= 0:
            cart_items.delete_one({'_id': item['_id']})
        else:
            product = get_collection('products').find_one({'_id': parse_object_id(item['product_id'])})
            if not product:
                return jsonify({'success': False, 'message': 'Sản phẩm không còn tồn tại'}), 404
            stock = product.get('stock_quantity', 0)
            if quantity > stock:
                return jsonify({'success': False, 'message': f'Chỉ còn {stock} sản phẩm trong kho'}), 400
            cart_items.update_one({'_id': item['_id']},
                                  {'$set': {'quantity': quantity, 'updated_at': datetime.now(timezone.utc)}})

        return jsonify({'success': True, 'message': 'Đã cập nhật giỏ hàng',
                        'data': _cart_payload(request.user_info['userId'])})

    except Exception as e:
        logger.exception("Update cart item failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@cart_bp.route('/items/batch', methods=['DELETE'])
@require_auth
def delete_cart_items():
    try:
        data = request.get_json(silent=True) or {}
        item_ids = data.get('itemIds')
        if not isinstance(item_ids, list) or not item_ids:
            return jsonify({'success': False, 'message': 'itemIds phải là mảng không rỗng'}), 400

        oids = [parse_object_id(item_id) for item_id in item_ids]
        if any(oid is None for oid in oids):
            return jsonify({'success': False, 'message': 'ID không hợp lệ'}), 400

        result = get_collection('cart_items').delete_many(
            {'_id': {'$in': oids}, 'user_id': request.user_info['userId']})
        return jsonify({
            'success': True,
            'message': f'Đã xóa {result.deleted_count} sản phẩm khỏi giỏ hàng',
            'deletedCount': result.deleted_count,
            'data': _cart_payload(request.user_info['userId'])
        })

    except Exception as e:
        logger.exception("Batch delete cart items failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@cart_bp.route('/<item_id>', methods=['DELETE'])
@require_auth
def delete_cart_item(item_id: str):
    try:
        item = _owned_item(item_id)
        if not item:
            return jsonify({'success': False, 'message': 'Không tìm thấy sản phẩm trong giỏ hàng'}), 404

        get_collection('cart_items').delete_one({'_id': item['_id']})
        return jsonify({'success': True, 'message': 'Đã xóa sản phẩm khỏi giỏ hàng',
                        'data': _cart_payload(request.user_info['userId'])})

    except Exception as e:
        logger.exception("Delete cart item failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@cart_bp.route('/', methods=['DELETE'])
@require_auth
def clear_cart():
    try:
        get_collection('cart_items').delete_many({'user_id': request.user_info['userId']})
        return jsonify({'success': True, 'message': 'Đã xóa toàn bộ giỏ hàng',
                        'data': {'items': [], 'total_items': 0, 'subtotal': 0}})

    except Exception as e:
        logger.exception("Clear cart failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
