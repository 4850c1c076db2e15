"""
Voucher Routes
Seller voucher management and checkout-time voucher application
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging
import re

from flask import Blueprint, jsonify, request
from pymongo.errors import DuplicateKeyError

from db import get_collection, parse_object_id, parse_datetime
from models.voucher import Voucher, VoucherType
from routes.auth import require_auth, require_seller
from utils.pagination import get_page_params, pagination_dict
from utils.validators import validate_positive_number

logger = logging.getLogger(__name__)

vouchers_bp = Blueprint('vouchers', __name__, url_prefix='/api/vouchers')


def _get_vouchers_collection():
    return get_collection('vouchers')


def resolve_discount_voucher(code: str, order_value: float) -> tuple[Voucher | None, str | None, int]:
    """Look up a DISCOUNT code usable for this order; returns (voucher, error, http_status)"""
    doc = _get_vouchers_collection().find_one({'code': (code or '').strip().upper()})
    if not doc:
        return None, 'Mã giảm giá không tồn tại', 404
    voucher = Voucher.from_dict(doc)
    if voucher.type == VoucherType.FREESHIP:
        return None, 'Mã miễn phí vận chuyển được áp dụng tự động, không nhập thủ công', 400
    error = voucher.usability_error(order_value)
    if error:
        return None, error, 400
    return voucher, None, 200


def resolve_freeship_voucher(code: str, order_value: float) -> tuple[Voucher | None, str | None, int]:
    doc = _get_vouchers_collection().find_one({'code': (code or '').strip().upper(), 'type': 'FREESHIP'})
    if not doc:
        return None, 'Mã miễn phí vận chuyển không tồn tại', 404
    voucher = Voucher.from_dict(doc)
    error = voucher.usability_error(order_value)
    if error:
        return None, error, 400
    return voucher, None, 200


def best_freeship_voucher(order_value: float, shipping_fee: float) -> tuple[Voucher | None, float]:
    """The usable FREESHIP voucher with the largest saving"""
    best, best_saving = None, 0
    for doc in _get_vouchers_collection().find({'type': 'FREESHIP', 'active': True}):
        voucher = Voucher.from_dict(doc)
        if voucher.usability_error(order_value):
            continue
        saving = voucher.compute_freeship(shipping_fee)
        if saving > best_saving:
            best, best_saving = voucher, saving
    return best, best_saving


def _parse_voucher_payload(data: dict, partial: bool = False) -> tuple[dict | None, str | None]:
    """Validate and coerce voucher fields from a request body"""
    fields = {}
    if not partial:
        for name in ('code', 'type', 'discountValue', 'startDate', 'endDate'):
            if data.get(name) in (None, ''):
                return None, f'Thiếu trường bắt buộc: {name}'

    if 'code' in data:
        code = (data.get('code') or '').strip().upper()
        if not re.match(r'^[A-Z0-9_-]{3,30}$', code):
            return None, 'Mã voucher chỉ gồm 3-30 ký tự chữ, số, gạch ngang hoặc gạch dưới'
        fields['code'] = code
    if 'type' in data:
        voucher_type = str(data.get('type') or '').upper()
        if voucher_type not in VoucherType._value2member_map_:
            return None, 'Loại voucher không hợp lệ (DISCOUNT hoặc FREESHIP)'
        fields['type'] = voucher_type
    for name in ('discountValue', 'maxDiscount', 'minOrderValue'):
        if name in data and data[name] not in (None, ''):
            is_valid, error = validate_positive_number(data[name], name, min_val=0)
            if not is_valid:
                return None, error
            fields[name] = float(data[name])
        elif name in data and name == 'maxDiscount':
            fields[name] = None
    if 'usageLimit' in data:
        is_valid, error = validate_positive_number(data['usageLimit'], 'usageLimit', min_val=0)
        if not is_valid:
            return None, error
        fields['usageLimit'] = int(data['usageLimit'])
    if 'isPercent' in data:
        fields['isPercent'] = bool(data['isPercent'])
    if 'active' in data:
        fields['active'] = bool(data['active'])
    if 'description' in data:
        fields['description'] = (data.get('description') or '').strip()
    for name in ('startDate', 'endDate'):
        if name in data:
            value = parse_datetime(data[name])
            if value is None:
                return None, f'{name} không hợp lệ'
            fields[name] = value

    if fields.get('isPercent') and fields.get('discountValue', 0) > 100:
        return None, 'Phần trăm giảm giá không được vượt quá 100'
    return fields, None


# Seller routes

@vouchers_bp.route('/', methods=['POST'])
@require_seller
def create_voucher():
    try:
        data = request.get_json(silent=True) or {}
        fields, error = _parse_voucher_payload(data)
        if error:
            return jsonify({'success': False, 'message': error}), 400
        if fields['endDate'] <= fields['startDate']:
            return jsonify({'success': False, 'message': 'Ngày kết thúc phải sau ngày bắt đầu'}), 400

        voucher = Voucher(**fields)
        try:
            result = _get_vouchers_collection().insert_one(voucher.to_dict())
        except DuplicateKeyError:
            return jsonify({'success': False, 'message': 'Mã voucher đã tồn tại'}), 409
        voucher._id = str(result.inserted_id)

        return jsonify({'success': True, 'message': 'Tạo voucher thành công', 'data': voucher.to_public_dict()}), 201

    except Exception as e:
        logger.exception("Create voucher failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@vouchers_bp.route('/', methods=['GET'])
@require_seller
def list_vouchers():
    """Filters: active, type, code, start/end date range"""
    try:
        page, limit, skip = get_page_params(request.args)
        query = {}
        active = request.args.get('active')
        if active in ('true', 'false'):
            query['active'] = active == 'true'
        voucher_type = request.args.get('type')
        if voucher_type:
            query['type'] = voucher_type.upper()
        code = (request.args.get('code') or '').strip()
        if code:
            query['code'] = {'$regex': re.escape(code.upper())}
        start = parse_datetime(request.args.get('startDate'))
        end = parse_datetime(request.args.get('endDate'))
        if start:
            query['endDate'] = {'$gte': start}
        if end:
            query['startDate'] = {'$lte': end}

        vouchers = _get_vouchers_collection()
        total = vouchers.count_documents(query)
        docs = vouchers.find(query).sort('created_at', -1).skip(skip).limit(limit)
        return jsonify({
            'success': True,
            'message': 'OK',
            'data': [Voucher.from_dict(doc).to_public_dict() for doc in docs],
            'pagination': pagination_dict(page, limit, total)
        })

    except Exception as e:
        logger.exception("List vouchers failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@vouchers_bp.route('/<voucher_id>', methods=['PUT'])
@require_seller
def update_voucher(voucher_id: str):
    try:
        oid = parse_object_id(voucher_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID voucher không hợp lệ'}), 400

        vouchers = _get_vouchers_collection()
        doc = vouchers.find_one({'_id': oid})
        if not doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy voucher'}), 404

        fields, error = _parse_voucher_payload(request.get_json(silent=True) or {}, partial=True)
        if error:
            return jsonify({'success': False, 'message': error}), 400

        merged = Voucher.from_dict({**doc, **fields})
        if merged.endDate <= merged.startDate:
            return jsonify({'success': False, 'message': 'Ngày kết thúc phải sau ngày bắt đầu'}), 400
        if merged.isPercent and merged.discountValue > 100:
            return jsonify({'success': False, 'message': 'Phần trăm giảm giá không được vượt quá 100'}), 400

        fields['updated_at'] = datetime.now(timezone.utc)
        try:
            vouchers.update_one({'_id': oid}, {'$set': fields})
        except DuplicateKeyError:
            return jsonify({'success': False, 'message': 'Mã voucher đã tồn tại'}), 409

        return jsonify({'success': True, 'message': 'Cập nhật voucher thành công',
                        'data': Voucher.from_dict(vouchers.find_one({'_id': oid})).to_public_dict()})

    except Exception as e:
        logger.exception("Update voucher failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@vouchers_bp.route('/<voucher_id>', methods=['DELETE'])
@require_seller
def delete_voucher(voucher_id: str):
    try:
        oid = parse_object_id(voucher_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID voucher không hợp lệ'}), 400

        result = _get_vouchers_collection().delete_one({'_id': oid})
        if result.deleted_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy voucher'}), 404
        return jsonify({'success': True, 'message': 'Xóa voucher thành công'})

    except Exception as e:
        logger.exception("Delete voucher failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


# Customer routes

@vouchers_bp.route('/available', methods=['GET'])
@require_auth
def available_vouchers():
    """Active, currently valid, not exhausted"""
    try:
        now = datetime.now(timezone.utc)
        docs = _get_vouchers_collection().find({
            'active': True,
            'startDate': {'$lte': now},
            'endDate': {'$gte': now},
        }).sort('endDate', 1)
        vouchers = [Voucher.from_dict(doc) for doc in docs]
        return jsonify({
            'success': True,
            'message': 'OK',
            'data': [v.to_public_dict() for v in vouchers if not v.is_exhausted]
        })

    except Exception as e:
        logger.exception("Available vouchers failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@vouchers_bp.route('/apply', methods=['POST'])
@require_auth
def apply_voucher():
    """Preview a DISCOUNT code against an order value"""
    try:
        data = request.get_json(silent=True) or {}
        code = (data.get('code') or '').strip()
        if not code:
            return jsonify({'success': False, 'message': 'Vui lòng nhập mã giảm giá'}), 400
        for name in ('orderValue', 'shippingFee'):
            is_valid, error = validate_positive_number(data.get(name, 0), name, min_val=0)
            if not is_valid:
                return jsonify({'success': False, 'message': error}), 400

        order_value = float(data.get('orderValue', 0))
        shipping_fee = float(data.get('shippingFee', 0))
        voucher, error, status = resolve_discount_voucher(code, order_value)
        if error:
            return jsonify({'success': False, 'message': error}), status

        discount = voucher.compute_discount(order_value)
        return jsonify({
            'success': True,
            'message': 'Áp dụng mã giảm giá thành công',
            'data': {
                'code': voucher.code,
                'type': voucher.type.value,
                'discount': discount,
                'finalPrice': max(order_value + shipping_fee - discount, 0),
            }
        })

    except Exception as e:
        logger.exception("Apply voucher failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@vouchers_bp.route('/apply/freeship', methods=['POST'])
@require_auth
def apply_freeship():
    """Pick the FREESHIP voucher that saves the most on shipping"""
    try:
        data = request.get_json(silent=True) or {}
        for name in ('orderValue', 'shippingFee'):
            is_valid, error = validate_positive_number(data.get(name, 0), name, min_val=0)
            if not is_valid:
                return jsonify({'success': False, 'message': error}), 400

        order_value = float(data.get('orderValue', 0))
        shipping_fee = float(data.get('shippingFee', 0))
        voucher, saving = best_freeship_voucher(order_value, shipping_fee)
        if voucher is None:
            return jsonify({'success': True, 'message': 'Không có mã miễn phí vận chuyển phù hợp',
                            'data': {'code': None, 'freeship': 0}})

        return jsonify({
            'success': True,
            'message': 'Đã áp dụng mã miễn phí vận chuyển',
            'data': {'code': voucher.code, 'freeship': saving}
        })

    except Exception as e:
        logger.exception("Apply freeship failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
