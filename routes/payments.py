"""
Payments Routes
VNPay redirect payments and ZaloPay orders with their callbacks
"""

from __future__ import annotations
from datetime import datetime, timezone
import json
import logging
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request

from db import get_collection
from models.order import PaymentStatus
from routes.auth import require_auth
from routes.orders import find_order
from utils.vnpay_helper import VNPayHelper
from utils.zalopay_helper import ZaloPayHelper

logger = logging.getLogger(__name__)

vnpay_bp = Blueprint('vnpay', __name__, url_prefix='/api/vnpay')
zalopay_bp = Blueprint('zalopay', __name__, url_prefix='/api/zalopay')

AMOUNT_MISMATCH_MESSAGE = 'Số tiền thanh toán không khớp với đơn hàng'


def _settings():
    return current_app.config['settings']


def _set_payment_status(order: dict, status: PaymentStatus, extra: dict | None = None) -> None:
    now = datetime.now(timezone.utc)
    update = {'payment_status': status.value, 'updated_at': now, **(extra or {})}
    if status == PaymentStatus.PAID:
        update['payment_date'] = now
    get_collection('orders').update_one({'_id': order['_id']}, {'$set': update})


def _amount_matches(order: dict, paid) -> bool:
    try:
        return round(float(paid)) == round(float(order.get('total_amount') or 0))
    except (TypeError, ValueError):
        return False


def _owned_order(data: dict):
    """Resolve the order a payment is being created for; returns (order, error response)"""
    order_ref = str(data.get('orderId') or '').strip()
    if not order_ref:
        return None, (jsonify({'success': False, 'message': 'orderId là bắt buộc'}), 400)
    order = find_order(order_ref)
    if not order or order.get('user_id') != request.user_info['userId']:
        return None, (jsonify({'success': False, 'message': 'Không tìm thấy đơn hàng'}), 404)
    if order.get('payment_status') == PaymentStatus.PAID.value:
        return None, (jsonify({'success': False, 'message': 'Đơn hàng đã được thanh toán'}), 400)
    return order, None


# ============================================
# VNPAY
# ============================================

@vnpay_bp.route('/payment', methods=['POST'])
@require_auth
def create_vnpay_payment():
    """
    Create a VNPay payment URL for one of the caller's orders
    Expects: orderId, optional bankCode and language. The amount is the order total.
    """
    try:
        data = request.get_json(silent=True) or {}
        order, error = _owned_order(data)
        if error:
            return error

        ip_addr = (request.headers.get('X-Forwarded-For') or request.remote_addr or '127.0.0.1').split(',')[0].strip()
        payment_url = VNPayHelper(_settings()).build_payment_url(
            order_ref=order['order_number'],
            amount=float(order['total_amount']),
            ip_addr=ip_addr,
            bank_code=data.get('bankCode'),
            language=data.get('language'),
        )
        return jsonify({'success': True, 'message': 'OK', 'paymentUrl': payment_url}), 201

    except ValueError as e:
        logger.error("VNPay not configured: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 503
    except Exception as e:
        logger.exception("Create VNPay payment failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@vnpay_bp.route('/return', methods=['GET'])
def vnpay_return():
    """Browser returns here from VNPay; always redirect back to the checkout page"""
    query = request.args.to_dict()
    order_ref = query.get('vnp_TxnRef', '')
    try:
        order = find_order(order_ref) if order_ref else None
        if not VNPayHelper(_settings()).verify_return(query):
            success, message = False, 'Chữ ký không hợp lệ'
        elif order is None:
            logger.warning("VNPay return for unknown order %s", order_ref)
            success, message = False, 'Không tìm thấy đơn hàng'
        elif not _amount_matches(order, int(query.get('vnp_Amount') or 0) / 100):
            logger.warning("VNPay amount %s does not match order %s", query.get('vnp_Amount'), order_ref)
            _set_payment_status(order, PaymentStatus.FAILED)
            success, message = False, AMOUNT_MISMATCH_MESSAGE
        elif query.get('vnp_ResponseCode') == '00':
            _set_payment_status(order, PaymentStatus.PAID, {'vnp_transaction_no': query.get('vnp_TransactionNo')})
            success, message = True, 'Thanh toán thành công'
        else:
            _set_payment_status(order, PaymentStatus.FAILED)
            success, message = False, f"Thanh toán thất bại (mã lỗi {query.get('vnp_ResponseCode')})"
    except Exception as e:
        logger.exception("VNPay return handling failed: %s", e)
        success, message = False, 'Có lỗi xảy ra khi xử lý thanh toán'

    params = urlencode({'success': 'true' if success else 'false', 'message': message, 'orderId': order_ref})
    return redirect(f"{_settings().client_url}/checkout?{params}")


# ============================================
# ZALOPAY
# ============================================

@zalopay_bp.route('/payment', methods=['POST'])
@require_auth
def create_zalopay_payment():
    """
    Create a ZaloPay order for one of the caller's orders
    Expects: orderId, optional description. The amount is the order total.
    """
    try:
        data = request.get_json(silent=True) or {}
        order, error = _owned_order(data)
        if error:
            return error

        result = ZaloPayHelper(_settings()).create_order(str(order['_id']), float(order['total_amount']),
                                                         data.get('description'))
        if not result['success']:
            return jsonify({'success': False, 'message': result['error'], 'data': result.get('data')}), 400

        get_collection('orders').update_one({'_id': order['_id']},
                                            {'$set': {'app_trans_id': result['app_trans_id']}})

        return jsonify({
            'success': True,
            'message': 'OK',
            'data': {**result['data'], 'app_trans_id': result['app_trans_id']},
        })

    except Exception as e:
        logger.exception("Create ZaloPay payment failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@zalopay_bp.route('/callback', methods=['POST'])
def zalopay_callback():
    """Server-to-server notification; ZaloPay expects {return_code, return_message}"""
    try:
        body = request.get_json(silent=True) or request.form.to_dict()
        data_str = body.get('data', '')
        if not ZaloPayHelper(_settings()).verify_callback(data_str, body.get('mac', '')):
            logger.warning("ZaloPay callback with invalid MAC")
            return jsonify({'return_code': -1, 'return_message': 'mac not equal'})

        data = json.loads(data_str)
        embed_data = json.loads(data.get('embed_data') or '{}')
        app_trans_id = data.get('app_trans_id')
        order = find_order(str(embed_data['orderId'])) if embed_data.get('orderId') else None
        if order is None:
            # Fall back to the transaction id stored when the payment was created
            order = get_collection('orders').find_one({'app_trans_id': app_trans_id})
        if order is None:
            logger.warning("ZaloPay callback for unknown order %s", app_trans_id)
            return jsonify({'return_code': -1, 'return_message': 'order not found'})

        if not _amount_matches(order, data.get('amount')):
            logger.warning("ZaloPay amount %s does not match order %s", data.get('amount'), order['_id'])
            _set_payment_status(order, PaymentStatus.FAILED, {'app_trans_id': app_trans_id})
            return jsonify({'return_code': -1, 'return_message': 'amount mismatch'})

        _set_payment_status(order, PaymentStatus.PAID, {'app_trans_id': app_trans_id})
        logger.info("ZaloPay payment confirmed: %s", app_trans_id)
        return jsonify({'return_code': 1, 'return_message': 'success'})

    except Exception as e:
        logger.exception("ZaloPay callback failed: %s", e)
        return jsonify({'return_code': 0, 'return_message': str(e)})


@zalopay_bp.route('/query', methods=['GET'])
@require_auth
def query_zalopay_order():
    try:
        app_trans_id = (request.args.get('appTransId') or '').strip()
        if not app_trans_id:
            return jsonify({'success': False, 'message': 'appTransId là bắt buộc'}), 400

        data = ZaloPayHelper(_settings()).query_order(app_trans_id)
        return jsonify({'success': data.get('return_code') == 1, 'message': data.get('return_message', ''),
                        'data': data})

    except Exception as e:
        logger.exception("Query ZaloPay order failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
