"""
User Routes
Profile management for customers and account administration for sellers
"""

from __future__ import annotations
from datetime import datetime, timezone
import logging
import re

from flask import Blueprint, jsonify, request

from db import get_collection, parse_object_id, parse_datetime
from models.user import User, GENDERS
from routes.auth import require_auth, require_seller
from utils.pagination import get_page_params, pagination_dict
from utils.validators import validate_name, validate_phone, validate_username

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


def _get_users_collection():
    """Get MongoDB users collection"""
    return get_collection('users')


@users_bp.route('/profile/me', methods=['GET'])
@require_auth
def get_my_profile():
    """Get current user's profile"""
    try:
        users_collection = _get_users_collection()
        if users_collection is None:
            return jsonify({'success': False, 'message': 'Database not available'}), 503

        user_doc = users_collection.find_one({'_id': parse_object_id(request.user_info['userId'])})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        return jsonify({'success': True, 'message': 'OK', 'user': User.from_dict(user_doc).to_public_dict()})

    except Exception as e:
        logger.exception("Get profile failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@users_bp.route('/profile/update', methods=['PUT'])
@require_auth
def update_my_profile():
    """
    Update current user's profile
    Updatable fields: name, username, phone, gender, date_of_birth, avatar
    """
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'success': False, 'message': 'No data provided'}), 400

        users_collection = _get_users_collection()
        user_id = parse_object_id(request.user_info['userId'])
        update_data = {}

        if 'name' in data:
            is_valid, error = validate_name(data['name'])
            if not is_valid:
                return jsonify({'success': False, 'message': error}), 400
            update_data['name'] = data['name'].strip()

        if 'username' in data and data['username']:
            username = data['username'].strip()
            is_valid, error = validate_username(username)
            if not is_valid:
                return jsonify({'success': False, 'message': error}), 400
            if users_collection.find_one({'username': username, '_id': {'$ne': user_id}}):
                return jsonify({'success': False, 'message': 'Tên đăng nhập đã được sử dụng'}), 400
            update_data['username'] = username

        if 'phone' in data:
            is_valid, error = validate_phone(data['phone'])
            if not is_valid:
                return jsonify({'success': False, 'message': error}), 400
            update_data['phone'] = (data['phone'] or '').strip() or None

        if 'gender' in data:
            if data['gender'] and data['gender'] not in GENDERS:
                return jsonify({'success': False, 'message': 'Giới tính không hợp lệ'}), 400
            update_data['gender'] = data['gender'] or None

        if 'date_of_birth' in data:
            dob = parse_datetime(data['date_of_birth'])
            if data['date_of_birth'] and dob is None:
                return jsonify({'success': False, 'message': 'Ngày sinh không hợp lệ'}), 400
            if dob and dob > datetime.now(timezone.utc):
                return jsonify({'success': False, 'message': 'Ngày sinh không được ở tương lai'}), 400
            update_data['date_of_birth'] = dob

        if 'avatar' in data:
            update_data['avatar'] = data['avatar'] or None

        if not update_data:
            return jsonify({'success': False, 'message': 'Không có trường hợp lệ để cập nhật'}), 400

        update_data['updated_at'] = datetime.now(timezone.utc)
        result = users_collection.update_one({'_id': user_id}, {'$set': update_data})
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        user_doc = users_collection.find_one({'_id': user_id})
        return jsonify({
            'success': True,
            'message': 'Cập nhật hồ sơ thành công',
            'user': User.from_dict(user_doc).to_public_dict()
        })

    except Exception as e:
        logger.exception("Update profile failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


# Seller routes

@users_bp.route('/admin/list', methods=['GET'])
@require_seller
def admin_list_users():
    """List accounts with search, role and active filters"""
    try:
        users_collection = _get_users_collection()
        page, limit, skip = get_page_params(request.args)

        query = {}
        search = (request.args.get('search') or '').strip()
        if search:
            pattern = re.escape(search)
            query['$or'] = [
                {'name': {'$regex': pattern, '$options': 'i'}},
                {'email': {'$regex': pattern, '$options': 'i'}},
            ]
        role = request.args.get('role')
        if role:
            query['role'] = role
        active = request.args.get('active')
        if active in ('true', 'false'):
            query['active'] = active == 'true'

        total = users_collection.count_documents(query)
        cursor = users_collection.find(query).sort('created_at', -1).skip(skip).limit(limit)
        users = [User.from_dict(doc).to_public_dict() for doc in cursor]

        return jsonify({
            'success': True,
            'message': 'OK',
            'users': users,
            'pagination': pagination_dict(page, limit, total)
        })

    except Exception as e:
        logger.exception("List users failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@users_bp.route('/admin/<user_id>', methods=['GET'])
@require_seller
def admin_get_user(user_id: str):
    try:
        oid = parse_object_id(user_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID người dùng không hợp lệ'}), 400

        user_doc = _get_users_collection().find_one({'_id': oid})
        if not user_doc:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        orders = get_collection('orders')
        order_count = orders.count_documents({'user_id': user_id})
        total_spent = sum(doc.get('total_amount', 0) for doc in orders.find(
            {'user_id': user_id, 'status': 'delivered'}, {'total_amount': 1}))

        return jsonify({
            'success': True,
            'message': 'OK',
            'user': User.from_dict(user_doc).to_public_dict(),
            'stats': {'order_count': order_count, 'total_spent': total_spent}
        })

    except Exception as e:
        logger.exception("Get user failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500


@users_bp.route('/admin/<user_id>/status', methods=['PUT'])
@require_seller
def admin_update_user_status(user_id: str):
    """Activate or lock an account"""
    try:
        oid = parse_object_id(user_id)
        if oid is None:
            return jsonify({'success': False, 'message': 'ID người dùng không hợp lệ'}), 400

        data = request.get_json(silent=True) or {}
        if not isinstance(data.get('active'), bool):
            return jsonify({'success': False, 'message': 'Trường active (true/false) là bắt buộc'}), 400

        if user_id == request.user_info['userId'] and not data['active']:
            return jsonify({'success': False, 'message': 'Bạn không thể khóa tài khoản của chính mình'}), 400

        update = {'active': data['active'], 'updated_at': datetime.now(timezone.utc)}
        if not data['active']:
            # locking also signs the account out everywhere
            update['refresh_tokens'] = []

        users_collection = _get_users_collection()
        result = users_collection.update_one({'_id': oid}, {'$set': update})
        if result.matched_count == 0:
            return jsonify({'success': False, 'message': 'Không tìm thấy người dùng'}), 404

        user_doc = users_collection.find_one({'_id': oid})
        return jsonify({
            'success': True,
            'message': 'Đã kích hoạt tài khoản' if data['active'] else 'Đã khóa tài khoản',
            'user': User.from_dict(user_doc).to_public_dict()
        })

    except Exception as e:
        logger.exception("Update user status failed: %s", e)
        return jsonify({'success': False, 'message': str(e)}), 500
