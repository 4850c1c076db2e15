"""
Orders Routes
Handles checkout, order tracking, cancellation and seller fulfilment
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
import logging
import re

from flask import Blueprint, current_app, jsonify, request
from pymongo import ReturnDocument

from db import ensure_utc, get_collection, parse_datetime, parse_object_id
from models.cart import CartItem
from models.order import (
    CANCEL_WINDOW_MINUTES,
    PAYMENT_METHODS,
    STATUS_LABELS,
    STATUS_TIMESTAMPS,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    check_transition,
)
from models.product import Product, ProductStatus
from models.user import UserRole
from routes.auth import require_auth, require_seller
from routes.vouchers import resolve_discount_voucher, resolve_freeship_voucher
from utils.email_service import get_email_service
from utils.notification_service import notify_new_order, notify_order_status_update, notify_sellers
from utils.pagination import get_page_params, pagination_dict
from utils.validators import validate_phone

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')

ORDER_CHANGED_MESSAGE = 'Đơn hàng vừa được cập nhật, vui lòng tải lại và thử lại'

SORT_OPTIONS = {
    'newest': ('created_at', -1),
    'oldest': ('created_at', 1),
    'amount_desc': ('total_amount', -1),
    'amount_asc': ('total_amount', 1),
}


def _get_orders_collection():
    """Get MongoDB orders collection"""
    return get_collection('orders')


def _get_products_collection():
    """Get MongoDB products collection"""
    return get_collection('products')


def _is_seller() -> bool:
    return request.user_info.get('role') == UserRole.SELLER.value


def _history_entry(status: str, note: str = '', updated_by: str | None = None, at: datetime | None = None) -> dict:
    return {
        'status': status,
        'date': at or datetime.now(timezone.utc),
        'note': note,
        'updated_by': updated_by,
    }


def _public(doc: dict) -> dict:
    return Order.from_dict(doc).to_public_dict()


def find_order(order_id: str):
    """Look up by ObjectId, falling back to the order number"""
    oid = parse_object_id(order_id)
    orders = _get_orders_collection()
    if oid is not None:
        doc = orders.find_one({'_id': oid})
        if doc:
            return doc
    return orders.find_one({'order_number': order_id})


def _restore_stock(order_doc: dict) -> None:
    products = _get_products_collection()
    for item in order_doc.get('items', []):
        oid = parse_object_id(item.get('product_id'))
        if oid is None:
            continue
        product = products.find_one_and_update(
            {'_id': oid},
            {'$inc': {'stock_quantity': int(item.get('quantity', 0))}},
            return_document=ReturnDocument.AFTER,
        )
        if product and product.get('status') == ProductStatus.OUT_OF_STOCK.value and product['stock_quantity'] > 0:
            products.update_one({'_id': oid}, {'$set': {'status': ProductStatus.ACTIVE.value}})


def _record_purchase(order_doc: dict) -> None:
    """Delivered orders count towards each product's sales"""
    products = _get_products_collection()
    for item in order_doc.get('items', []):
        oid = parse_object_id(item.get('product_id'))
        if oid is None:
            continue
        quantity = int(item.get('quantity', 0))
        products.update_one(
            {'_id': oid},
            {
                '$inc': {'purchase_count': quantity, 'sold_quantity': quantity},
                '$addToSet': {'purchase_users': order_doc['user_id']},
            }
        )


def _status_stats(query: dict) -> dict:
    """Per-status counts and the total amount of non-cancelled orders"""
    stats = {status.value: 0 for status in OrderStatus}
    total_amount = 0
    for doc in _get_orders_collection().find(query, {'status': 1, 'total_amount': 1}):
        status = doc.get('status')
        stats[status] = stats.get(status, 0) + 1
        if status != OrderStatus.CANCELLED.value:
            total_amount += doc.get('total_amount', 0)
    stats['total'] = sum(stats[s.value] for s in OrderStatus)
    stats['total_amount'] = total_amount
    return stats


def _search_query(args, base: dict | None = None) -> dict:
    """Build a Mongo filter from the shared search/list query params"""
    query = dict(base or {})

    q = (args.get('q') or args.get('search') or '').strip()
    if q:
        pattern = {'$regex': re.escape(q), '$options': 'i'}
        query['$or'] = [
            {'order_number': pattern},
            {'items.product_name': pattern},
            {'shipping_info.name': pattern},
            {'shipping_info.phone': pattern},
        ]
    for name in ('status', 'payment_status', 'payment_method'):
        value = (args.get(name) or '').strip()
        if value and value != 'all':
            query[name] = value

    start = parse_datetime(args.get('startDate'))
    end = parse_datetime(args.get('endDate'))
    if start or end:
        query['created_at'] = {}
        if start:
            query['created_at']['$gte'] = start
        if end:
            query['created_at']['$lte'] = end

    amount = {}
    for name, op in (('minAmount', '$gte'), ('maxAmount', '$lte')):
        try:
            if args.get(name) not in (None, ''):
                amount[op] = float(args.get(name))
        except ValueError:
            continue
    if amount:
        query['total_amount'] = amount
    return query


def _paginated_orders(query: dict, stats_query: dict | None = None):
    page, limit, skip = get_page_params(request.args)
    field, direction = SORT_OPTIONS.get(request.args.get('sort', 'newest'), SORT_OPTIONS['newest'])
    orders = _get_orders_collection()
    total = orders.count_documents(query)
    docs = orders.find(query).sort(field, direction).skip(skip).limit(limit)
    return jsonify({
        'success': True,
        'message': 'OK',
        'orders': [_public(doc) for doc in docs],
        'stats': _status_stats(stats_query if stats_query is not None else query),
        'pagination': pagination_dict(page, limit, total),
    })


def _validate_shipping_info(info) -> str | None:
    if not isinstance(info, dict):
        return 'Thông tin giao hàng là bắt buộc'
    for name in ('name', 'phone', 'address'):
        if not str(info.get(name) or '').strip():
            return f'Thiếu thông tin giao hàng: {name}'
    is_valid, error = validate_phone(str(info['phone']).strip())
    if not is_valid:
        return error
    return None


# Customer routes

@orders_bp.route('/', methods=['POST'])
@require_auth
def create_order():
    """
    Create a new order
    Expects: items [{product_id, quantity}], shipping_info, payment_method,
    optional notes and voucherCodes {discount, freeship}
    """
    try:
        data = request.get_json(silent=True) or {}
        user_id = request.user_info['userId']

        items_data = data.get('items')
        if not isinstance(items_data, list) or not items_data:
            return jsonify({'success': False, 'message': 'Đơn hàng phải có ít nhất một sản phẩm'}), 400

        shipping_info = data.get('shipping_info') or data.get('shippingInfo')
        error = _validate_shipping_info(shipping_info)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        payment_method = data.get('payment_method') or data.get('paymentMethod') or 'cod'
        if payment_method not in PAYMENT_METHODS:
            return jsonify({'success': False, 'message': 'Phương thức thanh toán không hợp lệ'}), 400

        products = _get_products_collection()
        categories = get_collection('categories')

        # Validate items and build the snapshots
        order_items = []
        for item in items_data:
            product_id = str(item.get('product_id') or item.get('productId') or '')
            try:
                quantity = int(item.get('quantity', 1))
            except (TypeError, ValueError):
                quantity = 0
            if quantity < 1:
                return jsonify({'success': False, 'message': 'Số lượng phải lớn hơn 0'}), 400

            oid = parse_object_id(product_id)
            product = products.find_one({'_id': oid}) if oid else None
            if not product:
                return jsonify({'success': False, 'message': f'Không tìm thấy sản phẩm: {product_id}'}), 404
            if product.get('status') == ProductStatus.INACTIVE.value:
                return jsonify({'success': False, 'message': f"Sản phẩm {product['name']} hiện không được bán"}), 400
            if product.get('stock_quantity', 0) < quantity:
                return jsonify({
                    'success': False,
                    'message': f"Sản phẩm {product['name']} chỉ còn {product.get('stock_quantity', 0)} trong kho"
                }), 400

            category = categories.find_one({'_id': parse_object_id(product.get('category_id'))}) \
                if product.get('category_id') else None
            order_items.append(OrderItem(
                product_id=product_id,
                product_name=product.get('name', ''),
                product_slug=product.get('slug', ''),
                product_image=Product.from_dict(product).primary_image,
                category_id=product.get('category_id', ''),
                category_name=category.get('name', '') if category else '',
                quantity=quantity,
                price=float(product.get('price', 0)),
                sale_price=product.get('sale_price'),
                unit=product.get('unit', ''),
                hometown_origin=product.get('hometown_origin'),
            ))

        order = Order(
            user_id=user_id,
            items=order_items,
            shipping_info={k: str(shipping_info.get(k) or '').strip()
                           for k in ('name', 'phone', 'address', 'province', 'district', 'ward')},
            payment_method=payment_method,
            shipping_fee=current_app.config['settings'].shipping_fee,
            notes=(data.get('notes') or '').strip(),
        )

        # Vouchers are re-validated and priced here, never trusted from the client
        voucher_codes = data.get('voucherCodes') or {}
        used_vouchers = []
        if voucher_codes.get('discount'):
            voucher, error, status = resolve_discount_voucher(voucher_codes['discount'], order.subtotal)
            if error:
                return jsonify({'success': False, 'message': error}), status
            order.discount_value = voucher.compute_discount(order.subtotal)
            order.voucher_codes['discount'] = voucher.code
            used_vouchers.append(voucher.code)
        if voucher_codes.get('freeship'):
            voucher, error, status = resolve_freeship_voucher(voucher_codes['freeship'], order.subtotal)
            if error:
                return jsonify({'success': False, 'message': error}), status
            order.freeship_value = voucher.compute_freeship(order.shipping_fee)
            order.voucher_codes['freeship'] = voucher.code
            used_vouchers.append(voucher.code)

        # Decrement stock; undo earlier lines if a later one lost a race
        decremented = []
        for item in order_items:
            updated = products.find_one_and_update(
                {'_id': parse_object_id(item.product_id), 'stock_quantity': {'$gte': item.quantity}},
                {'$inc': {'stock_quantity': -item.quantity}},
                return_document=ReturnDocument.AFTER,
            )
            if not updated:
                _restore_stock({'items': [i.to_dict() for i in decremented]})
                return jsonify({'success': False,
                                'message': f'Sản phẩm {item.product_name} không đủ hàng'}), 400
            if updated.get('stock_quantity', 0) <= 0:
                products.update_one({'_id': updated['_id']}, {'$set': {'status': ProductStatus.OUT_OF_STOCK.value}})
            decremented.append(item)

        order.history.append(_history_entry(OrderStatus.PENDING.value, 'Đơn hàng được tạo', user_id,
                                            at=order.created_at))
        orders = _get_orders_collection()
        result = orders.insert_one(order.to_dict())
        order._id = str(result.inserted_id)

        if used_vouchers:
            get_collection('vouchers').update_many({'code': {'$in': used_vouchers}}, {'$inc': {'usedCount': 1}})

        get_collection('cart_items').delete_many({
            'user_id': user_id,
            'product_id': {'$in': [item.product_id for item in order_items]},
        })

        order_doc = orders.find_one({'_id': result.inserted_id})
        notify_new_order(order_doc)
        logger.info("Order %s created by %s (%s)", order.order_number, user_id, order.total_amount)

        return jsonify({'success': True, 'message': 'Đặt hàng thành công', 'order': _public(order_doc)}), 201

    except Exception as e:
        logger.exception("Create order failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/user', methods=['GET'])
@require_auth
def get_my_orders():
    """Own orders with status filter, sort, pagination and per-status stats"""
    try:
        user_id = request.user_info['userId']
        query = {'user_id': user_id}
        status = request.args.get('status')
        if status and status != 'all':
            query['status'] = status
        return _paginated_orders(query, stats_query={'user_id': user_id})

    except Exception as e:
        logger.exception("Get user orders failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/stats', methods=['GET'])
@require_auth
def get_my_order_stats():
    try:
        return jsonify({'success': True, 'message': 'OK',
                        'stats': _status_stats({'user_id': request.user_info['userId']})})

    except Exception as e:
        logger.exception("Get order stats failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/my-orders/search', methods=['GET'])
@require_auth
def search_my_orders():
    try:
        user_id = request.user_info['userId']
        return _paginated_orders(_search_query(request.args, {'user_id': user_id}))

    except Exception as e:
        logger.exception("Search user orders failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/<order_id>', methods=['GET'])
@require_auth
def get_order(order_id: str):
    """Get a single order with its timeline; sellers may read any order"""
    try:
        doc = find_order(order_id)
        if not doc or (doc.get('user_id') != request.user_info['userId'] and not _is_seller()):
            return jsonify({'success': False, 'message': 'Không tìm thấy đơn hàng'}), 404

        order = _public(doc)
        return jsonify({'success': True, 'message': 'OK', 'order': order, 'timeline': order['history']})

    except Exception as e:
        logger.exception("Get order failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/<order_id>/cancel', methods=['PUT'])
@require_auth
def cancel_order(order_id: str):
    """
    Cancel an order
    pending/confirmed within the cancel window: cancelled outright
    processing: becomes a cancel request for the seller to approve
    """
    try:
        data = request.get_json(silent=True) or {}
        reason = (data.get('reason') or data.get('cancel_reason') or '').strip()
        user_id = request.user_info['userId']

        doc = find_order(order_id)
        if not doc or doc.get('user_id') != user_id:
            return jsonify({'success': False, 'message': 'Không tìm thấy đơn hàng'}), 404

        now = datetime.now(timezone.utc)
        status = doc.get('status')
        orders = _get_orders_collection()

        if status in (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value):
            age = now - ensure_utc(doc['created_at'])
            if age > timedelta(minutes=CANCEL_WINDOW_MINUTES):
                return jsonify({
                    'success': False,
                    'message': f'Chỉ có thể hủy đơn hàng trong vòng {CANCEL_WINDOW_MINUTES} phút sau khi đặt'
                }), 400
            new_status = OrderStatus.CANCELLED.value
            message = 'Đã hủy đơn hàng'
        elif status == OrderStatus.PROCESSING.value:
            new_status = OrderStatus.CANCEL_REQUEST.value
            message = 'Đã gửi yêu cầu hủy đơn hàng'
        else:
            return jsonify({'success': False,
                            'message': f"Không thể hủy đơn hàng ở trạng thái {STATUS_LABELS.get(status, status)}"}), 400

        # conditional on the status read above
        updated = orders.find_one_and_update({'_id': doc['_id'], 'status': status}, {
            '$set': {
                'status': new_status,
                'cancel_reason': reason,
                STATUS_TIMESTAMPS[new_status]: now,
                'updated_at': now,
            },
            '$push': {'history': _history_entry(new_status, reason or message, user_id, at=now)},
        }, return_document=ReturnDocument.AFTER)
        if updated is None:
            return jsonify({'success': False, 'message': ORDER_CHANGED_MESSAGE}), 409
        if new_status == OrderStatus.CANCELLED.value:
            _restore_stock(doc)
        if new_status == OrderStatus.CANCEL_REQUEST.value:
            notify_sellers('order_status', 'Yêu cầu hủy đơn hàng',
                           f"Khách hàng yêu cầu hủy đơn hàng #{doc['order_number']}",
                           reference_id=str(doc['_id']), reference_model='Order', sender_id=user_id)

        return jsonify({'success': True, 'message': message, 'order': _public(updated)})

    except Exception as e:
        logger.exception("Cancel order failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/<order_id>/reorder', methods=['POST'])
@require_auth
def reorder(order_id: str):
    """Put a finished order's items back into the cart"""
    try:
        user_id = request.user_info['userId']
        doc = find_order(order_id)
        if not doc or doc.get('user_id') != user_id:
            return jsonify({'success': False, 'message': 'Không tìm thấy đơn hàng'}), 404
        if doc.get('status') not in (OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value):
            return jsonify({'success': False,
                            'message': 'Chỉ có thể mua lại đơn hàng đã giao hoặc đã hủy'}), 400

        products = _get_products_collection()
        cart_items = get_collection('cart_items')
        added, unavailable = [], []
        now = datetime.now(timezone.utc)

        for item in doc.get('items', []):
            oid = parse_object_id(item.get('product_id'))
            product = products.find_one({'_id': oid}) if oid else None
            if not product or product.get('status') != ProductStatus.ACTIVE.value:
                unavailable.append({'product_id': item.get('product_id'), 'product_name': item.get('product_name'),
                                    'reason': 'Sản phẩm không còn được bán'})
                continue

            existing = cart_items.find_one({'user_id': user_id, 'product_id': item['product_id']})
            in_cart = existing.get('quantity', 0) if existing else 0
            quantity = min(int(item.get('quantity', 1)), product.get('stock_quantity', 0) - in_cart)
            if quantity <= 0:
                unavailable.append({'product_id': item['product_id'], 'product_name': item.get('product_name'),
                                    'reason': 'Không đủ hàng trong kho'})
                continue

            if existing:
                cart_items.update_one({'_id': existing['_id']},
                                      {'$inc': {'quantity': quantity}, '$set': {'updated_at': now}})
            else:
                cart_items.insert_one(CartItem(user_id=user_id, product_id=item['product_id'],
                                               quantity=quantity).to_dict())
            added.append({'product_id': item['product_id'], 'product_name': item.get('product_name'),
                          'quantity': quantity})

        if not added:
            return jsonify({'success': False, 'message': 'Không có sản phẩm nào có thể mua lại',
                            'unavailable': unavailable}), 400

        return jsonify({
            'success': True,
            'message': f'Đã thêm {len(added)} sản phẩm vào giỏ hàng',
            'added': added,
            'unavailable': unavailable,
        })

    except Exception as e:
        logger.exception("Reorder failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


# Seller routes

@orders_bp.route('/all', methods=['GET'])
@require_seller
def list_all_orders():
    try:
        return _paginated_orders(_search_query(request.args), stats_query={})

    except Exception as e:
        logger.exception("List all orders failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/search', methods=['GET'])
@require_seller
def search_orders():
    try:
        return _paginated_orders(_search_query(request.args))

    except Exception as e:
        logger.exception("Search orders failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/user/<user_id>', methods=['GET'])
@require_seller
def get_orders_of_user(user_id: str):
    try:
        query = {'user_id': user_id}
        status = request.args.get('status')
        if status and status != 'all':
            query['status'] = status
        return _paginated_orders(query, stats_query={'user_id': user_id})

    except Exception as e:
        logger.exception("Get orders of user failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@orders_bp.route('/<order_id>/shipping', methods=['PUT'])
@require_seller
def update_shipping(order_id: str):
    """
    Update shipping status, carrier and tracking number
    Status only advances one step at a time; cancel requests may only be approved
    """
    try:
        data = request.get_json(silent=True) or {}
        target = (data.get('shipping_status') or data.get('status') or '').strip()
        carrier = data.get('carrier')
        tracking_number = data.get('tracking_number')
        note = (data.get('note') or '').strip()

        doc = find_order(order_id)
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy đơn hàng'}), 404

        current = doc.get('status')
        if current == OrderStatus.CANCELLED.value:
            return jsonify({'success': False, 'message': 'Đơn hàng đã bị hủy, không thể cập nhật'}), 400

        now = datetime.now(timezone.utc)
        seller_id = request.user_info['userId']
        update = {'updated_at': now}
        push = None
        status_changed = bool(target) and target != current

        if current == OrderStatus.CANCEL_REQUEST.value and target != OrderStatus.CANCELLED.value:
            return jsonify({'success': False, 'message': 'Đơn đang yêu cầu hủy, chỉ có thể xác nhận hủy'}), 400

        if status_changed:
            if target not in STATUS_LABELS:
                return jsonify({'success': False, 'message': f'Trạng thái không hợp lệ: {target}'}), 400
            error = check_transition(current, target)
            if error:
                return jsonify({'success': False, 'message': error}), 400
            update['status'] = target
            update[STATUS_TIMESTAMPS[target]] = now
            push = _history_entry(target, note or STATUS_LABELS[target], seller_id, at=now)
            if target == OrderStatus.DELIVERED.value and doc.get('payment_method') == 'cod':
                update['payment_status'] = PaymentStatus.PAID.value
                update['payment_date'] = now
            if target == OrderStatus.CANCELLED.value and note:
                update['cancel_reason'] = note

        tracking_changed = False
        if carrier is not None and carrier != doc.get('carrier', ''):
            update['carrier'] = str(carrier).strip()
            tracking_changed = True
        if tracking_number is not None and tracking_number != doc.get('tracking_number', ''):
            update['tracking_number'] = str(tracking_number).strip()
            tracking_changed = True

        if not status_changed and not tracking_changed:
            return jsonify({'success': False, 'message': 'Không có thay đổi nào để cập nhật'}), 400

        changes = {'$set': update}
        if push:
            changes['$push'] = {'history': push}
        updated = _get_orders_collection().find_one_and_update(
            {'_id': doc['_id'], 'status': current}, changes, return_document=ReturnDocument.AFTER)
        if updated is None:
            return jsonify({'success': False, 'message': ORDER_CHANGED_MESSAGE}), 409

        if status_changed and target == OrderStatus.CANCELLED.value:
            _restore_stock(doc)
        if status_changed and target == OrderStatus.DELIVERED.value:
            _record_purchase(doc)

        effective_status = updated.get('status')
        if status_changed or (tracking_changed and effective_status == OrderStatus.SHIPPED.value):
            notify_order_status_update(updated, current)
            _email_status_change(updated)

        logger.info("Order %s: %s -> %s by %s", doc['order_number'], current, effective_status, seller_id)
        return jsonify({'success': True, 'message': 'Cập nhật đơn hàng thành công', 'order': _public(updated)})

    except Exception as e:
        logger.exception("Update shipping failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


def _email_status_change(order_doc: dict) -> None:
    user = get_collection('users').find_one({'_id': parse_object_id(order_doc['user_id'])}, {'email': 1})
    if not user or not user.get('email'):
        return
    try:
        get_email_service().send_order_status(user['email'], _public(order_doc))
    except Exception as e:  # pylint: disable=broad-except
        logger.warning("Order status email for %s failed: %s", order_doc.get('order_number'), e)


def auto_confirm_orders(now: datetime | None = None) -> int:
    """Confirm pending orders older than the cancel window; returns how many changed"""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=CANCEL_WINDOW_MINUTES)
    orders = _get_orders_collection()
    confirmed = 0
    for doc in orders.find({'status': OrderStatus.PENDING.value}):
        if ensure_utc(doc['created_at']) > cutoff:
            continue
        result = orders.update_one(
            {'_id': doc['_id'], 'status': OrderStatus.PENDING.value},
            {
                '$set': {'status': OrderStatus.CONFIRMED.value, 'confirmed_at': now, 'updated_at': now},
                '$push': {'history': _history_entry(OrderStatus.CONFIRMED.value,
                                                    'Tự động xác nhận sau 30 phút', None, at=now)},
            }
        )
        if result.modified_count:
            confirmed += 1
            notify_order_status_update(orders.find_one({'_id': doc['_id']}), OrderStatus.PENDING.value)
    if confirmed:
        logger.info("Auto-confirmed %d pending orders", confirmed)
    return confirmed
