"""
Address Routes
CRUD over the shipping addresses embedded in the user document
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id
from models.user import ShippingAddress
from routes.auth import require_auth
from utils.validators import validate_phone, validate_required_fields

logger = logging.getLogger(__name__)

addresses_bp = Blueprint('addresses', __name__, url_prefix='/api/address')


def _load_user():
    users = get_collection('users')
    return users, users.find_one({'_id': parse_object_id(request.user_info['userId'])})


def _save_addresses(users, user_doc, addresses):
    users.update_one(
        {'_id': user_doc['_id']},
        {'$set': {'shipping_addresses': addresses, 'updated_at': datetime.now(timezone.utc)}}
    )


def _ensure_single_default(addresses: list, default_id: str | None = None) -> list:
    """Exactly one default when the list is non-empty"""
    if not addresses:
        return addresses
    if default_id is None:
        defaults = [a for a in addresses if a.get('is_default')]
        default_id = defaults[-1]['_id'] if defaults else addresses[0]['_id']
    for address in addresses:
        address['is_default'] = address['_id'] == default_id
    return addresses


@addresses_bp.route('/', methods=['GET'])
@require_auth
def list_addresses():
    try:
        _, user_doc = _load_user()
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404
        return jsonify({'success': True, 'message': 'OK', 'addresses': user_doc.get('shipping_addresses', [])})

    except Exception as e:
        logger.exception("List addresses failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@addresses_bp.route('/', methods=['POST'])
@require_auth
def add_address():
    """Add an address; the first one becomes the default"""
    try:
        data = request.get_json(silent=True) or {}
        is_valid, missing = validate_required_fields(data, ['full_name', 'phone'])
        if not is_valid:
            return jsonify({'success': False, 'message': 'Họ tên và số điện thoại là bắt buộc',
                            'errors': missing}), 400
        is_valid, error = validate_phone(data['phone'])
        if not is_valid:
            return jsonify({'success': False, 'message': error}), 400

        users, user_doc = _load_user()
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        address = ShippingAddress.from_dict({k: v for k, v in data.items() if k != '_id'}).to_dict()
        addresses = list(user_doc.get('shipping_addresses', []))
        addresses.append(address)
        default_id = address['_id'] if (address['is_default'] or len(addresses) == 1) else None
        addresses = _ensure_single_default(addresses, default_id)
        _save_addresses(users, user_doc, addresses)

        return jsonify({'success': True, 'message': 'Thêm địa chỉ thành công',
                        'address': address, 'addresses': addresses}), 201

    except Exception as e:
        logger.exception("Add address failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@addresses_bp.route('/<address_id>', methods=['PUT'])
@require_auth
def update_address(address_id: str):
    try:
        data = request.get_json(silent=True) or {}
        if 'phone' in data:
            is_valid, error = validate_phone(data['phone'])
            if not is_valid:
                return jsonify({'success': False, 'message': error}), 400

        users, user_doc = _load_user()
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        addresses = list(user_doc.get('shipping_addresses', []))
        index = next((i for i, a in enumerate(addresses) if a.get('_id') == address_id), None)
        if index is None:
            return jsonify({'success': False, 'message': 'Không tìm thấy địa chỉ'}), 404

        merged = {**addresses[index], **{k: v for k, v in data.items() if k != '_id'}}
        if 'full_address' not in data:
            merged['full_address'] = ''
        address = ShippingAddress.from_dict(merged)
        if not address.full_name or not address.phone:
            return jsonify({'success': False, 'message': 'Họ tên và số điện thoại là bắt buộc'}), 400
        addresses[index] = address.to_dict()

        default_id = address_id if data.get('is_default') else None
        addresses = _ensure_single_default(addresses, default_id)
        _save_addresses(users, user_doc, addresses)

        return jsonify({'success': True, 'message': 'Cập nhật địa chỉ thành công',
                        'address': addresses[index], 'addresses': addresses})

    except Exception as e:
        logger.exception("Update address failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@addresses_bp.route('/<address_id>', methods=['DELETE'])
@require_auth
def delete_address(address_id: str):
    """Delete an address; removing the default promotes the first remaining one"""
    try:
        users, user_doc = _load_user()
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        addresses = list(user_doc.get('shipping_addresses', []))
        remaining = [a for a in addresses if a.get('_id') != address_id]
        if len(remaining) == len(addresses):
            return jsonify({'success': False, 'message': 'Không tìm thấy địa chỉ'}), 404

        if remaining and not any(a.get('is_default') for a in remaining):
            remaining = _ensure_single_default(remaining, remaining[0]['_id'])
        _save_addresses(users, user_doc, remaining)

        return jsonify({'success': True, 'message': 'Xóa địa chỉ thành công', 'addresses': remaining})

    except Exception as e:
        logger.exception("Delete address failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@addresses_bp.route('/<address_id>/default', methods=['PATCH'])
@require_auth
def set_default_address(address_id: str):
    try:
        users, user_doc = _load_user()
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        addresses = list(user_doc.get('shipping_addresses', []))
        if not any(a.get('_id') == address_id for a in addresses):
            return jsonify({'success': False, 'message': 'Không tìm thấy địa chỉ'}), 404

        addresses = _ensure_single_default(addresses, address_id)
        _save_addresses(users, user_doc, addresses)
        return jsonify({'success': True, 'message': 'Đã đặt làm địa chỉ mặc định', 'addresses': addresses})

    except Exception as e:
        logger.exception("Set default address failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
